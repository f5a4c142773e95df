"""
QYH Task QR - 行为树质量需求 (QR) 度量

在任务执行树上附加质量需求跟踪:
- QR 装饰节点在不改变子树执行结果的前提下度量质量属性
- 任务级 QR 度量它包裹的子树，系统级 QR 汇总子树中同属性的任务级度量值
- 滑动平均、权重输入、状态输出通过黑板端口发布
"""

from .base_node import TreeNode, SkillNode, NodeStatus, SkillResult
from .composite_nodes import CompositeNode, SequenceNode, ParallelNode, SelectorNode, LoopNode
from .decorator_nodes import DecoratorNode
from .engine import BehaviorTreeEngine, TaskState
from .errors import TaskQRError, LogicError, MissingInputError, TaskParseError
from .parser import TaskParser
from .qr_kinds import BlackboardTaskQR, WeightedSystemQR
from .qr_node import QualityAttribute, QRNode, TaskLevelQR, SystemLevelQR
from .visitor import apply_recursive_visitor, iterate_tree

__all__ = [
    'TreeNode',
    'SkillNode',
    'NodeStatus',
    'SkillResult',
    'CompositeNode',
    'SequenceNode',
    'ParallelNode',
    'SelectorNode',
    'LoopNode',
    'DecoratorNode',
    'BehaviorTreeEngine',
    'TaskState',
    'TaskQRError',
    'LogicError',
    'MissingInputError',
    'TaskParseError',
    'TaskParser',
    'QualityAttribute',
    'QRNode',
    'TaskLevelQR',
    'SystemLevelQR',
    'BlackboardTaskQR',
    'WeightedSystemQR',
    'apply_recursive_visitor',
    'iterate_tree',
]
