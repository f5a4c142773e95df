"""
装饰节点 (Decorator Nodes)

装饰节点只有一个子节点，在子节点执行前后附加行为，不改变树的结构。
"""

from typing import Any, Dict, List, Optional

from .base_node import TreeNode, NodeStatus
from .errors import LogicError


class DecoratorNode(TreeNode):
    """
    装饰节点基类

    子类重写 tick()，通过 tick_child() 执行唯一的子节点。
    """

    NODE_TYPE: str = "Decorator"

    def __init__(
        self,
        node_id: str,
        child: TreeNode = None,
        node_name: str = None,
        blackboard: Dict[str, Any] = None,
        ros_node=None,
        params: Dict[str, Any] = None
    ):
        super().__init__(node_id, params, blackboard, ros_node, node_name)
        self._child: Optional[TreeNode] = None
        if child is not None:
            self.set_child(child)

    @property
    def child_node(self) -> Optional[TreeNode]:
        return self._child

    def set_child(self, child: TreeNode):
        """设置子节点（装饰节点只允许一个子节点）"""
        if self._child is not None and self._child is not child:
            raise LogicError(self.node_name, "A decorator can only have one child")
        self._child = child
        child.attach_blackboard(self.blackboard)

    def children(self) -> List[TreeNode]:
        return [self._child] if self._child is not None else []

    def tick_child(self) -> NodeStatus:
        """tick 子节点，返回子节点状态（包括 IDLE，由调用方处理）"""
        if self._child is None:
            raise LogicError(self.node_name, "Decorator has no child")
        return self._child.tick()

    def reset_child(self):
        """重置子节点，可以多次调用"""
        if self._child is not None:
            self._child.reset()

    def reset(self):
        super().reset()
        self.reset_child()
