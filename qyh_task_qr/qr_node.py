"""
质量需求节点 (Quality Requirement Nodes)

QR 节点是装饰节点，在子树正常执行的同时度量某个非功能质量属性:
- QRNode: 基类，负责单次度量、滑动平均和两阶段 tick 协议
- TaskLevelQR: 任务级 QR，只度量它直接包裹的子树
- SystemLevelQR: 系统级 QR，遍历子树收集同一质量属性的 TaskLevelQR 度量值

QR 节点对执行透明: 永远原样返回子节点的 SUCCESS / FAILURE / RUNNING / SKIPPED。
"""

import math
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from .base_node import TreeNode, NodeStatus
from .decorator_nodes import DecoratorNode
from .errors import LogicError
from .ports import InputPort, OutputPort, PortsList, convert_value, make_ports
from .visitor import apply_recursive_visitor


class QualityAttribute(Enum):
    """质量属性（固定集合）"""
    POWER = "Power"
    SAFETY = "Safety"
    TASK_EFFICIENCY = "TaskEfficiency"
    MOVEMENT_EFFICIENCY = "MovementEfficiency"
    TEST = "Test"

    @classmethod
    def parse(cls, value: Union[str, 'QualityAttribute']) -> 'QualityAttribute':
        """
        解析质量属性

        Args:
            value: 枚举值、值字符串（如 "TaskEfficiency"）或成员名（如 "TASK_EFFICIENCY"），不区分大小写

        Raises:
            ValueError: 未知的质量属性
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown quality attribute: {value!r}")


class QRNode(DecoratorNode):
    """
    QR 节点基类

    tick 协议:
    1. 状态置为 RUNNING
    2. tick 子节点之前先度量一次
    3. tick 子节点
    4. SUCCESS: 再度量一次（记录结束时状态），重置子节点，返回 SUCCESS
    5. FAILURE: 重置子节点，返回 FAILURE（失败不重复计分）
    6. RUNNING / SKIPPED: 原样返回
    7. IDLE: 抛出 LogicError

    具体的 QR 类型重写 calculate_measure()，计算出度量值后调用 record_metric()。

    Attributes:
        quality_attribute: 度量的质量属性（构造后不可变）
        weight: 最近一次读取的权重
        metric: 最近一次的度量值
        mean_metric: 所有度量值的滑动平均
        times_calculated: 参与平均的度量次数
        higher_is_better: 度量值越大是否越好
        qr_status: 诊断信息
    """

    NODE_TYPE: str = "QRNode"

    # 度量值越大越好（子类可重写，也可以通过参数 higher_is_better 配置）
    HIGHER_IS_BETTER: bool = True

    # 端口名称
    WEIGHT = "weight"
    METRIC = "metric"
    MEAN_METRIC = "mean_metric"
    QR_STATUS = "out_status"

    PARAM_SCHEMA = {
        'quality_attribute': {'type': 'string', 'required': True},
        'weight': {'type': 'float', 'required': True},
        'higher_is_better': {'type': 'bool', 'required': False},
    }

    def __init__(
        self,
        node_id: str,
        quality_attribute: Union[str, QualityAttribute],
        child: TreeNode = None,
        node_name: str = None,
        blackboard: Dict[str, Any] = None,
        ros_node=None,
        params: Dict[str, Any] = None
    ):
        super().__init__(node_id, child, node_name, blackboard, ros_node, params)
        self._quality_attribute = QualityAttribute.parse(quality_attribute)

        self.weight: Optional[float] = None
        self.metric: Optional[float] = None
        self.mean_metric: float = 0.0
        self.times_calculated: int = 0
        self.qr_status: str = "not measured"

        self.higher_is_better = self.HIGHER_IS_BETTER
        if 'higher_is_better' in self.params:
            self.higher_is_better = convert_value(self.params['higher_is_better'], bool)

    @classmethod
    def provided_ports(cls) -> PortsList:
        return make_ports(
            InputPort(cls.WEIGHT, float,
                      "How much influence this QR should have in the calculation of system utility"),
            OutputPort(cls.METRIC, float, "To what extent is this property fulfilled"),
            OutputPort(cls.MEAN_METRIC, float, "To what extent is this property fulfilled on average"),
            OutputPort(cls.QR_STATUS, str, "Information as to the state the QR is currently in"),
        )

    def qa_type(self) -> QualityAttribute:
        return self._quality_attribute

    def current_metric(self) -> Optional[float]:
        """最近一次度量值（首次度量前为 None）"""
        return self.metric

    def current_weight(self) -> Optional[float]:
        return self.weight

    def mean(self) -> float:
        return self.mean_metric

    def is_higher_better(self) -> bool:
        return self.higher_is_better

    def tick(self) -> NodeStatus:
        self.status = NodeStatus.RUNNING
        snapshot = self._snapshot()

        # 执行子节点之前先度量
        self.calculate_measure()
        child_status = self.tick_child()

        if child_status == NodeStatus.SUCCESS:
            # 结束时再度量一次
            self.calculate_measure()
            self.reset_child()
        elif child_status == NodeStatus.FAILURE:
            self.reset_child()
        elif child_status == NodeStatus.IDLE:
            self._restore(snapshot)
            raise LogicError(self.node_name, "A child should not return IDLE")

        self.status = child_status
        return child_status

    def calculate_measure(self):
        """
        度量扩展点

        基类只读取 weight 输入端口，不计算度量值。

        Raises:
            MissingInputError: weight 没有绑定值
        """
        self.weight = self.get_input(self.WEIGHT)
        self.log_debug(f"Weight port info received: {self.weight}")
        self.set_qr_status(f"weight={self.weight}, no measure implemented")

    def metric_mean(self, value: float, times_calculated: int) -> float:
        """增量平均: mean + (value - mean) / n，第一次度量时直接取 value"""
        if times_calculated <= 1:
            return value
        return self.mean_metric + (value - self.mean_metric) / times_calculated

    def record_metric(self, value: float):
        """
        记录一次度量值

        metric、times_calculated、mean_metric 要么一起更新，要么都不更新。

        Raises:
            ValueError: 度量值不是有限浮点数
        """
        metric = convert_value(value, float)
        if not math.isfinite(metric):
            raise ValueError(f"[{self.node_name}]: metric must be finite, got {value!r}")

        times_calculated = self.times_calculated + 1
        mean_metric = self.metric_mean(metric, times_calculated)

        self.metric = metric
        self.times_calculated = times_calculated
        self.mean_metric = mean_metric

        self._publish_outputs()

    def set_qr_status(self, text: str):
        self.qr_status = text
        self.set_output(self.QR_STATUS, text)

    def _publish_outputs(self):
        self.set_output(self.METRIC, self.metric)
        self.set_output(self.MEAN_METRIC, self.mean_metric)

    def _snapshot(self) -> Tuple:
        return (self.weight, self.metric, self.mean_metric, self.times_calculated, self.qr_status)

    def _restore(self, snapshot: Tuple):
        """回滚本次 tick 内的度量"""
        if snapshot == self._snapshot():
            return
        self.weight, self.metric, self.mean_metric, self.times_calculated, qr_status = snapshot
        self.set_qr_status(qr_status)
        if self.times_calculated > 0:
            self._publish_outputs()
        else:
            # 尚未度量: 撤回本次 tick 发布的输出
            self.set_output(self.METRIC, None)
            self.set_output(self.MEAN_METRIC, None)

    def get_state(self) -> Dict[str, Any]:
        state = super().get_state()
        state.update({
            'quality_attribute': self._quality_attribute.value,
            'metric': self.metric,
            'mean_metric': self.mean_metric,
            'times_calculated': self.times_calculated,
            'weight': self.weight,
            'higher_is_better': self.higher_is_better,
            'qr_status': self.qr_status,
        })
        return state


class TaskLevelQR(QRNode):
    """
    任务级 QR

    与 QRNode 协议相同，只作为类型标识: SystemLevelQR 按类型和质量属性查找它。
    """

    NODE_TYPE = "TaskLevelQR"


class SystemLevelQR(QRNode):
    """
    系统级 QR

    与基类相反的度量顺序:
    - 先 tick 子节点，不预先度量
    - SUCCESS / FAILURE: 重置子节点，不度量
    - RUNNING: 收集子树中同一质量属性的 TaskLevelQR 度量值，然后度量

    子类重写 fold_metrics()，把 sub_qr_metrics 合并为自身的度量值。
    """

    NODE_TYPE = "SystemLevelQR"

    def __init__(self, node_id: str, quality_attribute: Union[str, QualityAttribute], **kwargs):
        super().__init__(node_id, quality_attribute, **kwargs)
        self.sub_qr_metrics: Dict[str, float] = {}
        self.sub_qr_weights: Dict[str, Optional[float]] = {}

    def tick(self) -> NodeStatus:
        self.status = NodeStatus.RUNNING
        child_status = self.tick_child()

        if child_status in (NodeStatus.SUCCESS, NodeStatus.FAILURE):
            self.reset_child()
        elif child_status == NodeStatus.RUNNING:
            self.calculate_measure()
        elif child_status == NodeStatus.IDLE:
            raise LogicError(self.node_name, "A child should not return IDLE")

        self.status = child_status
        return child_status

    def calculate_measure(self):
        self.weight = self.get_input(self.WEIGHT)
        self.gather_child_metrics()

        value = self.fold_metrics()
        if value is None:
            if self.sub_qr_metrics:
                self.set_qr_status(f"collected {len(self.sub_qr_metrics)} task-level metrics")
            else:
                self.set_qr_status("no task-level metrics")
            return
        self.record_metric(value)
        self.set_qr_status(
            f"aggregated {len(self.sub_qr_metrics)} task-level metrics: {self.metric:.4f}"
        )

    def gather_child_metrics(self) -> Dict[str, float]:
        """
        重新收集子树中同一质量属性的 TaskLevelQR 度量值

        每次都重建 sub_qr_metrics，不与上一次合并。尚未度量过的 TaskLevelQR 不计入。

        Returns:
            节点名称 -> 最近一次度量值
        """
        metrics: Dict[str, float] = {}
        weights: Dict[str, Optional[float]] = {}

        def visit(node: TreeNode):
            if not isinstance(node, TaskLevelQR):
                return
            if node.qa_type() != self._quality_attribute:
                return
            if node.times_calculated == 0:
                return
            if node.node_name in metrics:
                self.log_warn(f"Duplicate task-level QR name '{node.node_name}', keeping the last one")
            metrics[node.node_name] = node.current_metric()
            weights[node.node_name] = node.current_weight()

        if self.child_node is not None:
            apply_recursive_visitor(self.child_node, visit)

        self.sub_qr_metrics = metrics
        self.sub_qr_weights = weights
        return metrics

    def fold_metrics(self) -> Optional[float]:
        """合并扩展点，返回 None 表示不产生自身度量值"""
        return None

    def get_state(self) -> Dict[str, Any]:
        state = super().get_state()
        state['sub_qr_metrics'] = dict(self.sub_qr_metrics)
        return state
