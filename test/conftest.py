import json

import pytest

from qyh_task_qr.parser import TaskParser
from qyh_task_qr.preset_loader import PresetLoader


@pytest.fixture
def preset_dir(tmp_path):
    (tmp_path / "qr_weights.json").write_text(json.dumps({
        "items": [
            {"id": "w_safety", "name": "安全优先", "weight": 4.0},
            {"id": "w_power", "name": "节能", "weight": 0.5},
        ]
    }), encoding="utf-8")
    (tmp_path / "task_templates.json").write_text(json.dumps({
        "templates": [
            {
                "id": "tpl_move",
                "name": "移动",
                "root": {
                    "type": "BlackboardTaskQR",
                    "id": "move_qr",
                    "name": "move_power",
                    "params": {
                        "quality_attribute": "Power",
                        "weight": 1.0,
                        "measurement": "{power.move}"
                    },
                    "child": {"type": "StatusSequence", "params": {"statuses": ["running"]}}
                }
            },
            {
                "id": "tpl_loop",
                "root": {"type": "SubTree", "params": {"template": "tpl_loop"}}
            }
        ]
    }), encoding="utf-8")
    return tmp_path


@pytest.fixture
def presets(preset_dir):
    return PresetLoader(preset_dir)


@pytest.fixture
def parser(presets):
    return TaskParser(presets=presets)
