"""
Tests for qyh_task_qr.engine: synchronous ticking, task state and the
QR metrics report.
"""

import pytest

from qyh_task_qr.base_node import NodeStatus
from qyh_task_qr.engine import BehaviorTreeEngine, TaskState
from qyh_task_qr.errors import LogicError, MissingInputError, TaskQRError


def power_task(statuses=("running", "running", "success")):
    return {
        "task_id": "qr_e2e",
        "name": "Power scenario",
        "blackboard": {"power": {"task1": 0.8}, "safety": {"task2": 0.99}},
        "root": {
            "type": "WeightedSystemQR",
            "id": "sys",
            "name": "system_power",
            "params": {"quality_attribute": "Power", "weight": 1.0,
                       "mean_metric": "{report.power_mean}"},
            "child": {
                "type": "Sequence",
                "children": [
                    {
                        "type": "BlackboardTaskQR",
                        "id": "t1",
                        "name": "task1",
                        "params": {"quality_attribute": "Power", "weight": 1.0,
                                   "measurement": "{power.task1}"},
                        "child": {"type": "StatusSequence", "params": {"statuses": list(statuses)}}
                    },
                    {
                        "type": "BlackboardTaskQR",
                        "id": "t2",
                        "name": "task2",
                        "params": {"quality_attribute": "Safety", "weight": 1.0,
                                   "measurement": "{safety.task2}"},
                        "child": {"type": "Wait", "params": {"duration": 0.0}}
                    }
                ]
            }
        }
    }


@pytest.fixture
def engine(parser):
    return BehaviorTreeEngine(parser=parser)


def test_load_task(engine):
    ok, task_id, message = engine.load_task(power_task())
    assert ok is True
    assert task_id == "qr_e2e"
    assert engine.task_state == TaskState.IDLE


def test_load_invalid_task(engine):
    ok, task_id, message = engine.load_task({"root": {"type": "Nope"}})
    assert ok is False
    assert task_id is None
    assert "unknown node type" in message


def test_tick_without_task(engine):
    with pytest.raises(TaskQRError):
        engine.tick_once()


def test_end_to_end_power_scenario(engine):
    engine.load_task(power_task())
    sys_qr = engine.root_node

    assert engine.tick_once() == NodeStatus.RUNNING
    assert sys_qr.sub_qr_metrics == {"task1": 0.8}

    sys_qr.write_to_blackboard("power.task1", 0.6)
    assert engine.tick_once() == NodeStatus.RUNNING
    assert sys_qr.sub_qr_metrics == {"task1": 0.6}
    assert sys_qr.read_from_blackboard("report.power_mean") == pytest.approx(0.7)

    report = {entry['node_name']: entry for entry in engine.get_qr_report()}
    assert report['system_power']['level'] == 'system'
    assert report['system_power']['sub_qr_metrics'] == {"task1": 0.6}
    assert report['task1']['times_calculated'] == 2
    assert report['task2']['times_calculated'] == 0


def test_run_until_complete(engine):
    engine.load_task(power_task())
    assert engine.run_until_complete() == TaskState.SUCCESS

    status = engine.get_status()
    assert status['status'] == 'success'
    assert status['tick_count'] == 3
    assert status['total_nodes'] == 6
    report = {entry['node_name']: entry for entry in status['qr_metrics']}
    # 第三次 tick: task1 成功并做最终度量，task2 前后各度量一次
    assert report['task1']['times_calculated'] == 4
    assert report['task2']['times_calculated'] == 2
    assert report['task2']['metric'] == 0.99


def test_run_until_complete_max_ticks(engine):
    engine.load_task(power_task(statuses=("running",)))
    assert engine.run_until_complete(max_ticks=5) == TaskState.RUNNING
    assert engine.get_status()['tick_count'] == 5


def test_finished_task_cannot_tick(engine):
    engine.load_task(power_task(statuses=("failure",)))
    assert engine.run_until_complete() == TaskState.FAILURE
    with pytest.raises(TaskQRError):
        engine.tick_once()


def test_missing_weight_aborts_task(engine):
    task = power_task()
    task['root']['params']['weight'] = "{config.weight}"
    engine.load_task(task)
    with pytest.raises(MissingInputError):
        engine.tick_once()
    status = engine.get_status()
    assert status['status'] == 'failure'
    assert "weight" in status['error']


def test_non_finite_measurement_aborts_task(engine):
    task = power_task()
    task['blackboard']['power']['task1'] = "nan"
    engine.load_task(task)
    with pytest.raises(ValueError, match="finite"):
        engine.tick_once()

    assert engine.task_state == TaskState.FAILURE
    assert "finite" in engine.get_status()['error']
    report = {entry['node_name']: entry for entry in engine.get_qr_report()}
    assert report['task1']['times_calculated'] == 0
    assert report['task1']['metric'] is None

    # 终态后可以加载新任务
    ok, _, _ = engine.load_task(power_task())
    assert ok is True


def test_idle_child_aborts_task(engine):
    engine.load_task(power_task())
    engine.root_node.child_node.tick = lambda: NodeStatus.IDLE
    with pytest.raises(LogicError, match="system_power"):
        engine.tick_once()
    assert engine.task_state == TaskState.FAILURE


def test_status_update_callback(parser):
    updates = []
    engine = BehaviorTreeEngine(parser=parser, on_status_update=updates.append)
    engine.load_task(power_task())
    engine.run_until_complete()
    assert len(updates) == 3
    assert updates[-1]['status'] == 'success'


def test_pause_resume_cancel(engine):
    engine.load_task(power_task(statuses=("running",)))
    assert engine.pause() == (False, "Task not running")

    engine.tick_once()
    assert engine.pause() == (True, "Task paused")
    with pytest.raises(TaskQRError):
        engine.tick_once()
    assert engine.resume() == (True, "Task resumed")
    assert engine.cancel() == (True, "Task cancelled")
    assert engine.task_state == TaskState.CANCELLED
    assert engine.root_node.status == NodeStatus.IDLE


def test_background_loop(parser):
    engine = BehaviorTreeEngine(parser=parser, tick_rate=200.0)
    engine.load_task(power_task())
    ok, _ = engine.start()
    assert ok is True
    assert engine.wait(timeout=5.0)
    assert engine.task_state == TaskState.SUCCESS
