"""
具体 QR 类型 (Concrete QR Kinds)

- BlackboardTaskQR: 从 measurement 输入端口读取度量值（通常重映射到黑板上由技能写入的键）
- WeightedSystemQR: 按各 TaskLevelQR 自身的权重对收集到的度量值做加权平均
"""

from typing import Dict, Optional, Type

from .ports import InputPort, PortsList, make_ports, remapped_key
from .qr_node import QRNode, SystemLevelQR, TaskLevelQR


_MISSING = object()


class BlackboardTaskQR(TaskLevelQR):
    """
    黑板任务级 QR

    参数:
        quality_attribute: 质量属性
        weight: 权重（字面量或 "{key}"）
        measurement: 度量值来源（通常为 "{key}"）
    """

    NODE_TYPE = "BlackboardTaskQR"

    MEASUREMENT = "measurement"

    PARAM_SCHEMA = dict(TaskLevelQR.PARAM_SCHEMA)
    PARAM_SCHEMA['measurement'] = {'type': 'float', 'required': True}

    @classmethod
    def provided_ports(cls) -> PortsList:
        ports = dict(super().provided_ports())
        ports.update(make_ports(
            InputPort(cls.MEASUREMENT, float, "Instantaneous measurement of the quality attribute"),
        ))
        return ports

    def calculate_measure(self):
        self.weight = self.get_input(self.WEIGHT)

        key = remapped_key(self.params.get(self.MEASUREMENT))
        if key is not None and self.read_from_blackboard(key, _MISSING) is _MISSING:
            # 子节点还没有写入度量值，本次不计数
            self.log_debug(f"No measurement yet on blackboard key '{key}'")
            self.set_qr_status("waiting for measurement")
            return

        # 未绑定或无法转换时抛出 MissingInputError
        value = self.get_input(self.MEASUREMENT)
        self.record_metric(value)
        self.set_qr_status(f"measured {self.metric:.4f} (mean {self.mean_metric:.4f}, n={self.times_calculated})")


class WeightedSystemQR(SystemLevelQR):
    """
    加权系统级 QR

    度量值 = sum(w_i * m_i) / sum(w_i)，w_i 为各 TaskLevelQR 最近一次读取的权重
    （缺失时按 1.0 计）。权重全为 0 时退化为算术平均。
    """

    NODE_TYPE = "WeightedSystemQR"

    def fold_metrics(self) -> Optional[float]:
        if not self.sub_qr_metrics:
            return None

        total_weight = 0.0
        weighted_sum = 0.0
        for name, value in self.sub_qr_metrics.items():
            weight = self.sub_qr_weights.get(name)
            if weight is None:
                weight = 1.0
            total_weight += weight
            weighted_sum += weight * value

        if total_weight == 0.0:
            return sum(self.sub_qr_metrics.values()) / len(self.sub_qr_metrics)
        return weighted_sum / total_weight


# 任务级 QR 类型注册表
TASK_QR_TYPES: Dict[str, Type[QRNode]] = {
    TaskLevelQR.NODE_TYPE: TaskLevelQR,
    BlackboardTaskQR.NODE_TYPE: BlackboardTaskQR,
}

# 系统级 QR 类型注册表
SYSTEM_QR_TYPES: Dict[str, Type[QRNode]] = {
    SystemLevelQR.NODE_TYPE: SystemLevelQR,
    WeightedSystemQR.NODE_TYPE: WeightedSystemQR,
}

QR_REGISTRY: Dict[str, Type[QRNode]] = {**TASK_QR_TYPES, **SYSTEM_QR_TYPES}
