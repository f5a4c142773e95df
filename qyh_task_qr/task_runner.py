"""
任务运行器 (Task Runner)

命令行加载任务 JSON，同步执行，输出最终状态和 QR 度量报告:

    qyh_qr_runner task.json --max-ticks 100 --preset-dir ./presets
"""

import argparse
import json
import logging
import sys

from .engine import BehaviorTreeEngine, TaskState
from .errors import TaskQRError
from .parser import TaskParser
from .preset_loader import PresetLoader, preset_loader


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a behavior tree task and report quality-requirement metrics"
    )
    parser.add_argument("task_file", help="Task JSON file")
    parser.add_argument("--max-ticks", type=int, default=1000,
                        help="Stop after this many ticks (default: 1000)")
    parser.add_argument("--preset-dir", default=None,
                        help="Directory with qr_weights.json / task_templates.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        with open(args.task_file, 'r', encoding='utf-8') as f:
            task_json = f.read()
    except OSError as e:
        print(f"Cannot read task file: {e}", file=sys.stderr)
        return 2

    presets = PresetLoader(args.preset_dir) if args.preset_dir else preset_loader
    engine = BehaviorTreeEngine(parser=TaskParser(presets=presets))

    ok, task_id, message = engine.load_task(task_json)
    if not ok:
        print(message, file=sys.stderr)
        return 2

    try:
        state = engine.run_until_complete(max_ticks=args.max_ticks)
    except (TaskQRError, ValueError) as e:
        # 引擎已经把任务置为 FAILURE 并记录错误
        print(f"Task aborted: {e}", file=sys.stderr)
        state = engine.task_state

    status = engine.get_status()
    report = {
        'task_id': task_id,
        'status': status['status'],
        'tick_count': status['tick_count'],
        'error': status['error'],
        'qr_metrics': status['qr_metrics'],
    }
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0 if state == TaskState.SUCCESS else 1


if __name__ == '__main__':
    sys.exit(main())
