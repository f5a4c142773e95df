"""
复合节点 (Composite Nodes)

实现行为树的控制流节点:
- Sequence: 顺序执行，全部成功才成功
- Parallel: 并行执行，可配置成功策略
- Selector: 选择执行，一个成功即成功
- Loop: 循环执行子节点

SKIPPED 的子节点既不算成功也不算失败；全部子节点都被跳过时复合节点返回 SKIPPED。
"""

import time
from typing import Any, Dict, List

from .base_node import TreeNode, NodeStatus
from .errors import LogicError


class CompositeNode(TreeNode):
    """
    复合节点基类

    复合节点包含多个子节点，负责控制子节点的执行流程。
    """

    NODE_TYPE: str = "Composite"

    def __init__(
        self,
        node_id: str,
        children: List[TreeNode] = None,
        node_name: str = None,
        blackboard: Dict[str, Any] = None,
        ros_node=None,
        params: Dict[str, Any] = None
    ):
        super().__init__(node_id, params, blackboard, ros_node, node_name)
        self._children: List[TreeNode] = []
        self._current_child_index = 0
        self._skipped_count = 0
        for child in children or []:
            self.add_child(child)

    def children(self) -> List[TreeNode]:
        return list(self._children)

    def add_child(self, child: TreeNode):
        """添加子节点"""
        self._children.append(child)
        # 共享黑板
        child.attach_blackboard(self.blackboard)

    def remove_child(self, child: TreeNode):
        """移除子节点"""
        self._children.remove(child)

    def tick_child(self, child: TreeNode) -> NodeStatus:
        """tick 子节点，并拒绝 IDLE"""
        child_status = child.tick()
        if child_status == NodeStatus.IDLE:
            raise LogicError(self.node_name, f"Child '{child.node_name}' should not return IDLE")
        return child_status

    def _start(self):
        if self.status == NodeStatus.IDLE:
            self._start_time = time.time()
            self.status = NodeStatus.RUNNING
            self._skipped_count = 0
            return True
        return False

    def _finish(self, status: NodeStatus) -> NodeStatus:
        self.status = status
        self._end_time = time.time()
        return status

    def reset(self):
        """重置所有子节点"""
        super().reset()
        self._current_child_index = 0
        self._skipped_count = 0
        for child in self._children:
            child.reset()

    def get_state(self) -> Dict[str, Any]:
        state = super().get_state()
        state['current_child_index'] = self._current_child_index
        state['children_count'] = len(self._children)
        return state


class SequenceNode(CompositeNode):
    """
    顺序节点 (Sequence)

    按顺序执行子节点:
    - 子节点返回 SUCCESS / SKIPPED -> 继续执行下一个
    - 子节点返回 RUNNING -> 返回 RUNNING
    - 子节点返回 FAILURE -> 立即返回 FAILURE
    - 所有子节点都 SUCCESS -> 返回 SUCCESS
    """

    NODE_TYPE = "Sequence"

    def tick(self) -> NodeStatus:
        if self._start():
            self.log_debug(f"Starting sequence ({len(self._children)} steps)")
        elif self.status != NodeStatus.RUNNING:
            return self.status

        # 从当前子节点开始执行
        while self._current_child_index < len(self._children):
            child = self._children[self._current_child_index]
            child_status = self.tick_child(child)

            if child_status == NodeStatus.RUNNING:
                return NodeStatus.RUNNING

            if child_status == NodeStatus.FAILURE:
                self.log_info(
                    f"Sequence FAILED at step {self._current_child_index+1}/{len(self._children)}: "
                    f"{child.node_name}"
                )
                return self._finish(NodeStatus.FAILURE)

            if child_status == NodeStatus.SKIPPED:
                self._skipped_count += 1

            self._current_child_index += 1

        if self._children and self._skipped_count == len(self._children):
            return self._finish(NodeStatus.SKIPPED)

        # 所有子节点都成功
        self._finish(NodeStatus.SUCCESS)
        self.log_debug(f"Sequence completed ({self.get_duration():.1f}s)")
        return self.status


class ParallelNode(CompositeNode):
    """
    并行节点 (Parallel)

    同时执行所有子节点:
    - success_threshold: 需要多少个子节点成功才算成功 (默认全部未跳过的子节点)
    - failure_threshold: 多少个子节点失败就算失败 (默认 1)
    """

    NODE_TYPE = "Parallel"

    def __init__(
        self,
        node_id: str,
        children: List[TreeNode] = None,
        node_name: str = None,
        blackboard: Dict[str, Any] = None,
        ros_node=None,
        params: Dict[str, Any] = None,
        success_threshold: int = None,
        failure_threshold: int = 1
    ):
        super().__init__(node_id, children, node_name, blackboard, ros_node, params)
        self.success_threshold = success_threshold  # None 表示需要全部成功
        self.failure_threshold = failure_threshold

    def tick(self) -> NodeStatus:
        if not self._start() and self.status != NodeStatus.RUNNING:
            return self.status

        success_count = 0
        failure_count = 0
        skipped_count = 0
        running_count = 0

        for child in self._children:
            # 已完成的节点不再 tick
            if child.status == NodeStatus.SUCCESS:
                success_count += 1
                continue
            if child.status == NodeStatus.FAILURE:
                failure_count += 1
                continue
            if child.status == NodeStatus.SKIPPED:
                skipped_count += 1
                continue

            child_status = self.tick_child(child)

            if child_status == NodeStatus.SUCCESS:
                success_count += 1
            elif child_status == NodeStatus.FAILURE:
                failure_count += 1
            elif child_status == NodeStatus.SKIPPED:
                skipped_count += 1
            else:
                running_count += 1

        if failure_count >= self.failure_threshold:
            return self._finish(NodeStatus.FAILURE)

        active = len(self._children) - skipped_count
        if self._children and active == 0:
            return self._finish(NodeStatus.SKIPPED)

        threshold = self.success_threshold or active
        if success_count >= threshold:
            return self._finish(NodeStatus.SUCCESS)

        if running_count > 0:
            return NodeStatus.RUNNING

        # 所有节点都完成了，但没达到成功阈值
        return self._finish(NodeStatus.FAILURE)


class SelectorNode(CompositeNode):
    """
    选择节点 (Selector / Fallback)

    按顺序尝试子节点，直到有一个成功:
    - 子节点返回 SUCCESS -> 立即返回 SUCCESS
    - 子节点返回 RUNNING -> 返回 RUNNING
    - 子节点返回 FAILURE / SKIPPED -> 继续尝试下一个
    - 所有子节点都 FAILURE -> 返回 FAILURE
    """

    NODE_TYPE = "Selector"

    def tick(self) -> NodeStatus:
        if not self._start() and self.status != NodeStatus.RUNNING:
            return self.status

        while self._current_child_index < len(self._children):
            child = self._children[self._current_child_index]
            child_status = self.tick_child(child)

            if child_status == NodeStatus.RUNNING:
                return NodeStatus.RUNNING

            if child_status == NodeStatus.SUCCESS:
                return self._finish(NodeStatus.SUCCESS)

            if child_status == NodeStatus.SKIPPED:
                self._skipped_count += 1

            self._current_child_index += 1

        if self._children and self._skipped_count == len(self._children):
            return self._finish(NodeStatus.SKIPPED)

        return self._finish(NodeStatus.FAILURE)


class LoopNode(CompositeNode):
    """
    循环节点 (Loop / Repeat)

    循环执行子节点指定次数:
    - count: 循环次数，0 表示无限循环
    - break_on_failure: 子节点失败时是否退出循环

    行为:
    - 按顺序执行所有子节点（类似 Sequence）
    - 一轮完成后重置子节点状态，开始下一轮
    - 达到循环次数后返回 SUCCESS
    """

    NODE_TYPE = "Loop"

    def __init__(
        self,
        node_id: str,
        children: List[TreeNode] = None,
        node_name: str = None,
        blackboard: Dict[str, Any] = None,
        ros_node=None,
        params: Dict[str, Any] = None,
        count: int = 1,
        break_on_failure: bool = True
    ):
        super().__init__(node_id, children, node_name, blackboard, ros_node, params)
        self.count = count
        self.break_on_failure = break_on_failure
        self._current_iteration = 0

    def tick(self) -> NodeStatus:
        if self._start():
            self._current_iteration = 0
            self._current_child_index = 0
            loop_desc = f"{self.count} times" if self.count > 0 else "infinite"
            self.log_debug(f"Starting loop ({loop_desc})")
        elif self.status != NodeStatus.RUNNING:
            return self.status

        while self._current_child_index < len(self._children):
            child = self._children[self._current_child_index]
            child_status = self.tick_child(child)

            if child_status == NodeStatus.RUNNING:
                return NodeStatus.RUNNING

            if child_status == NodeStatus.FAILURE and self.break_on_failure:
                self.log_info(f"Loop FAILED at iteration {self._current_iteration+1}: {child.node_name}")
                return self._finish(NodeStatus.FAILURE)

            self._current_child_index += 1

        # 一轮完成，重置并开始下一轮
        self._current_iteration += 1
        self._current_child_index = 0
        for child in self._children:
            child.reset()

        loop_desc = f"{self.count}" if self.count > 0 else "inf"
        self.log_debug(f"Loop iteration {self._current_iteration}/{loop_desc} completed")

        if self.count > 0 and self._current_iteration >= self.count:
            self._finish(NodeStatus.SUCCESS)
            self.log_info(f"Loop completed ({self.count} iterations, {self.get_duration():.1f}s)")
            return self.status

        return NodeStatus.RUNNING

    def reset(self):
        super().reset()
        self._current_iteration = 0

    def get_state(self) -> Dict[str, Any]:
        state = super().get_state()
        state['current_iteration'] = self._current_iteration
        state['total_iterations'] = self.count if self.count > 0 else 'infinite'
        return state
