"""
树遍历 (Tree Visitor)

深度优先、先序遍历整棵子树，穿过复合节点与装饰节点。
"""

from typing import Callable, Iterator

from .base_node import TreeNode


def iterate_tree(root: TreeNode) -> Iterator[TreeNode]:
    """按深度优先先序顺序产出 root 及其所有后代"""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        # 反向入栈，保证左侧子节点先被访问
        stack.extend(reversed(node.children()))


def apply_recursive_visitor(root: TreeNode, visitor: Callable[[TreeNode], None]):
    """
    对子树中的每个节点调用一次 visitor

    Args:
        root: 子树根节点
        visitor: 回调函数，参数为被访问的节点
    """
    if root is None:
        raise ValueError("apply_recursive_visitor: root node is None")
    for node in iterate_tree(root):
        visitor(node)
