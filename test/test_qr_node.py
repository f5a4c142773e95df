"""
Tests for qyh_task_qr.qr_node: QRNode / TaskLevelQR tick protocol,
measurement timing, running mean and port handling.
"""

import math

import pytest

from qyh_task_qr.base_node import NodeStatus
from qyh_task_qr.errors import LogicError, MissingInputError
from qyh_task_qr.qr_kinds import BlackboardTaskQR
from qyh_task_qr.qr_node import QRNode, QualityAttribute, TaskLevelQR

from qr_test_utils import CountingTaskQR, ScriptedNode, running


def make_qr(child, values=(), weight=1.0, **kwargs) -> CountingTaskQR:
    params = {'weight': weight}
    params.update(kwargs.pop('params', {}))
    qr = CountingTaskQR("qr", QualityAttribute.POWER, values=values,
                        node_name="power_qr", params=params, **kwargs)
    qr.set_child(child)
    return qr


class TestQualityAttribute:

    def test_values(self):
        assert [qa.value for qa in QualityAttribute] == [
            "Power", "Safety", "TaskEfficiency", "MovementEfficiency", "Test"
        ]

    @pytest.mark.parametrize("text,expected", [
        ("Power", QualityAttribute.POWER),
        ("taskefficiency", QualityAttribute.TASK_EFFICIENCY),
        ("MOVEMENT_EFFICIENCY", QualityAttribute.MOVEMENT_EFFICIENCY),
        (QualityAttribute.SAFETY, QualityAttribute.SAFETY),
    ])
    def test_parse(self, text, expected):
        assert QualityAttribute.parse(text) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            QualityAttribute.parse("Comfort")


class TestStatusTransparency:

    @pytest.mark.parametrize("status", [
        NodeStatus.SUCCESS, NodeStatus.FAILURE, NodeStatus.RUNNING, NodeStatus.SKIPPED,
    ])
    def test_returns_child_status(self, status):
        qr = make_qr(ScriptedNode("child", [status]), values=[0.5])
        assert qr.tick() == status
        assert qr.status == status

    def test_base_qr_node_is_transparent(self):
        qr = QRNode("qr", "Safety", params={'weight': 2.0},
                    child=ScriptedNode("child", [NodeStatus.RUNNING, NodeStatus.SUCCESS]))
        assert qr.tick() == NodeStatus.RUNNING
        assert qr.tick() == NodeStatus.SUCCESS
        # 基类不计算度量值
        assert qr.current_metric() is None
        assert qr.times_calculated == 0
        assert qr.current_weight() == 2.0


class TestIdleRejection:

    def test_idle_raises_logic_error_with_name(self):
        qr = make_qr(ScriptedNode("child", [NodeStatus.IDLE]), values=[0.5])
        with pytest.raises(LogicError) as exc_info:
            qr.tick()
        assert "[power_qr]" in str(exc_info.value)
        assert exc_info.value.node_name == "power_qr"

    def test_idle_does_not_update_metric_state(self):
        child = ScriptedNode("child", [NodeStatus.RUNNING, NodeStatus.IDLE])
        qr = make_qr(child, values=[1.0, 5.0])
        qr.tick()
        before = (qr.metric, qr.mean_metric, qr.times_calculated)

        with pytest.raises(LogicError):
            qr.tick()

        assert (qr.metric, qr.mean_metric, qr.times_calculated) == before
        assert qr.blackboard['qr']['metric'] == 1.0

    def test_idle_on_first_tick_leaves_node_unmeasured(self):
        qr = make_qr(ScriptedNode("child", [NodeStatus.IDLE]), values=[3.0])
        with pytest.raises(LogicError):
            qr.tick()
        assert qr.current_metric() is None
        assert qr.times_calculated == 0
        assert qr.mean_metric == 0.0
        # 观察者在黑板上也看不到本次的度量值
        assert qr.read_from_blackboard('qr.metric') is None
        assert qr.read_from_blackboard('qr.mean_metric') is None
        assert qr.read_from_blackboard('qr.out_status') == "not measured"


class TestMeasurementTiming:

    @pytest.mark.parametrize("status,expected_calls", [
        (NodeStatus.SUCCESS, 2),
        (NodeStatus.FAILURE, 1),
        (NodeStatus.RUNNING, 1),
        (NodeStatus.SKIPPED, 1),
    ])
    def test_measurements_per_outcome(self, status, expected_calls):
        qr = make_qr(ScriptedNode("child", [status]), values=[0.5])
        qr.tick()
        assert qr.measure_calls == expected_calls
        assert qr.times_calculated == expected_calls

    def test_measures_before_child_tick(self):
        seen = []
        qr = make_qr(ScriptedNode("child", [NodeStatus.SUCCESS],
                                  on_tick=lambda node: seen.append(qr.measure_calls)),
                     values=[0.5])
        qr.tick()
        assert seen == [1]
        assert qr.measure_calls == 2

    def test_final_measurement_on_success_captures_latest(self):
        qr = make_qr(ScriptedNode("child", [NodeStatus.SUCCESS]), values=[0.2, 0.9])
        qr.tick()
        assert qr.current_metric() == 0.9
        assert qr.mean() == pytest.approx(0.55)

    @pytest.mark.parametrize("status,resets", [
        (NodeStatus.SUCCESS, 1),
        (NodeStatus.FAILURE, 1),
        (NodeStatus.RUNNING, 0),
        (NodeStatus.SKIPPED, 0),
    ])
    def test_child_reset(self, status, resets):
        child = ScriptedNode("child", [status])
        qr = make_qr(child, values=[0.5])
        qr.tick()
        assert child.resets == resets


class TestRunningMean:

    def test_first_pass_mean_equals_metric(self):
        qr = make_qr(running(), values=[-7.5])
        qr.tick()
        assert qr.times_calculated == 1
        assert qr.mean_metric == -7.5

    def test_mean_after_every_pass(self):
        values = [3.0, -1.5, 0.0, 2.25, -4.0, 10.0, 0.0]
        qr = make_qr(running(), values=values)
        for k in range(1, len(values) + 1):
            qr.tick()
            assert qr.times_calculated == k
            assert qr.current_metric() == values[k - 1]
            assert qr.mean_metric == pytest.approx(sum(values[:k]) / k)

    def test_times_calculated_only_increases(self):
        child = ScriptedNode("child", [NodeStatus.RUNNING, NodeStatus.SUCCESS, NodeStatus.FAILURE])
        qr = make_qr(child, values=[1.0])
        counts = []
        for _ in range(3):
            qr.tick()
            counts.append(qr.times_calculated)
        assert counts == sorted(counts)
        assert counts == [1, 3, 4]

    @pytest.mark.parametrize("bad", [math.nan, math.inf, "abc"])
    def test_record_metric_rejects_invalid_values(self, bad):
        qr = make_qr(running(), values=[1.0])
        qr.tick()
        with pytest.raises(ValueError):
            qr.record_metric(bad)
        assert qr.current_metric() == 1.0
        assert qr.times_calculated == 1
        assert qr.mean_metric == 1.0


class TestPorts:

    def test_provided_ports(self):
        ports = QRNode.provided_ports()
        assert set(ports) == {'weight', 'metric', 'mean_metric', 'out_status'}

    def test_missing_weight_raises(self):
        qr = CountingTaskQR("qr", "Power", values=[1.0], child=running())
        with pytest.raises(MissingInputError) as exc_info:
            qr.tick()
        assert exc_info.value.port_name == 'weight'
        assert qr.times_calculated == 0

    def test_weight_remapped_to_blackboard(self):
        qr = make_qr(running(), values=[1.0], weight="{config.power_weight}")
        qr.blackboard['config'] = {'power_weight': 0.75}
        qr.tick()
        assert qr.current_weight() == 0.75

    def test_remapped_weight_not_set(self):
        qr = make_qr(running(), values=[1.0], weight="{config.power_weight}")
        with pytest.raises(MissingInputError):
            qr.tick()

    def test_outputs_published_to_remapped_keys(self):
        qr = make_qr(running(), values=[0.4, 0.8],
                     params={'metric': '{qr.power.now}', 'mean_metric': '{qr.power.mean}'})
        qr.tick()
        qr.tick()
        assert qr.blackboard['qr']['power']['now'] == 0.8
        assert qr.blackboard['qr']['power']['mean'] == pytest.approx(0.6)

    def test_unremapped_outputs_use_node_scope(self):
        qr = make_qr(running(), values=[0.4])
        qr.tick()
        assert qr.read_from_blackboard('qr.metric') == 0.4
        assert qr.read_from_blackboard('qr.mean_metric') == 0.4
        assert qr.read_from_blackboard('qr.out_status') == qr.qr_status


class TestAccessors:

    def test_defaults(self):
        qr = TaskLevelQR("t", QualityAttribute.SAFETY, params={'weight': 1.0})
        assert qr.qa_type() is QualityAttribute.SAFETY
        assert qr.current_metric() is None
        assert qr.is_higher_better() is True
        assert qr.NODE_TYPE == "TaskLevelQR"

    def test_higher_is_better_param(self):
        qr = TaskLevelQR("t", "Power", params={'weight': 1.0, 'higher_is_better': 'false'})
        assert qr.is_higher_better() is False

    def test_get_state(self):
        qr = make_qr(running(), values=[0.3])
        qr.tick()
        state = qr.get_state()
        assert state['quality_attribute'] == "Power"
        assert state['metric'] == 0.3
        assert state['times_calculated'] == 1
        assert state['status'] == 'running'

    def test_tick_without_child(self):
        qr = TaskLevelQR("t", "Power", params={'weight': 1.0})
        with pytest.raises(LogicError):
            qr.tick()


class TestBlackboardTaskQR:

    @staticmethod
    def make(blackboard, measurement="{m}"):
        params = {'weight': 1.0}
        if measurement is not None:
            params['measurement'] = measurement
        return BlackboardTaskQR("bb", QualityAttribute.POWER, node_name="bb_qr",
                                params=params, blackboard=blackboard, child=running())

    def test_waits_until_key_is_written(self):
        blackboard = {}
        qr = self.make(blackboard)
        assert qr.tick() == NodeStatus.RUNNING
        assert qr.times_calculated == 0
        assert qr.qr_status == "waiting for measurement"

        blackboard['m'] = 0.5
        qr.tick()
        assert qr.times_calculated == 1
        assert qr.current_metric() == 0.5

    def test_unbound_measurement_raises(self):
        qr = self.make({}, measurement=None)
        with pytest.raises(MissingInputError) as exc_info:
            qr.tick()
        assert exc_info.value.port_name == 'measurement'
        assert qr.times_calculated == 0

    def test_unconvertible_measurement_raises(self):
        qr = self.make({'m': 'abc'})
        with pytest.raises(MissingInputError) as exc_info:
            qr.tick()
        assert exc_info.value.port_name == 'measurement'
        assert qr.times_calculated == 0

    def test_literal_measurement(self):
        qr = self.make({}, measurement="0.25")
        qr.tick()
        assert qr.current_metric() == 0.25

    def test_non_finite_measurement_keeps_state(self):
        blackboard = {'m': 0.5}
        qr = self.make(blackboard)
        qr.tick()

        blackboard['m'] = "nan"
        with pytest.raises(ValueError, match="finite"):
            qr.tick()
        assert (qr.current_metric(), qr.mean_metric, qr.times_calculated) == (0.5, 0.5, 1)
        assert qr.read_from_blackboard('bb.metric') == 0.5
