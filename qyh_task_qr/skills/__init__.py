"""
原子技能节点模块 (Skill Nodes)

包含所有可用的原子技能:
- 逻辑技能: Wait, CheckCondition, SetBlackboard
- 脚本技能: StatusSequence（按预设序列返回状态并写入度量值，用于演示与测试）
"""

from .logic_skills import WaitNode, CheckConditionNode, SetBlackboardNode
from .script_skills import StatusSequenceNode

__all__ = [
    # 逻辑
    'WaitNode',
    'CheckConditionNode',
    'SetBlackboardNode',
    # 脚本
    'StatusSequenceNode',
]

# 节点类型注册表（用于 JSON 解析）
SKILL_REGISTRY = {
    'Wait': WaitNode,
    'CheckCondition': CheckConditionNode,
    'SetBlackboard': SetBlackboardNode,
    'StatusSequence': StatusSequenceNode,
}
