"""
脚本技能节点 (Scripted Skills)

按预设序列返回状态，用于在没有真实机器人时演示 QR 度量。
"""

from typing import Any, Dict, List

from ..base_node import SkillNode, NodeStatus, SkillResult


class StatusSequenceNode(SkillNode):
    """
    状态序列节点

    每次 tick 返回 statuses 中的下一个状态，序列用完后重复最后一个。
    如果同时配置了 values 和 output_key，第 i 次 tick 把 values[i] 写入黑板。

    参数:
        statuses: 状态名称列表，如 ["running", "running", "success"]
        values: 每次 tick 写入的值（可选，用完后重复最后一个）
        output_key: 写入的黑板键（可选）
    """

    NODE_TYPE = "StatusSequence"

    PARAM_SCHEMA = {
        'statuses': {'type': 'list', 'required': True},
        'values': {'type': 'list', 'required': False},
        'output_key': {'type': 'string', 'required': False},
    }

    def __init__(self, node_id: str, params: Dict[str, Any] = None, **kwargs):
        super().__init__(node_id, params, **kwargs)
        self._statuses: List[NodeStatus] = [
            NodeStatus(str(s).lower()) for s in self.params.get('statuses', [])
        ]
        # 跨 reset 保留，保证序列可以跨多次执行推进
        self.ticks = 0

    def setup(self) -> bool:
        return bool(self._statuses)

    def execute(self) -> SkillResult:
        index = min(self.ticks, len(self._statuses) - 1)
        status = self._statuses[index]

        values = self.params.get('values')
        output_key = self.params.get('output_key')
        data = {}
        if values and output_key:
            value = values[min(self.ticks, len(values) - 1)]
            self.write_to_blackboard(output_key, value)
            data = {output_key: value}

        self.ticks += 1
        return SkillResult(status=status, message=f"tick {self.ticks}: {status.value}", data=data)
