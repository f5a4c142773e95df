"""
逻辑技能节点 (Logic Skills)
"""

import time
from typing import Any, Dict

from ..base_node import SkillNode, NodeStatus, SkillResult


class WaitNode(SkillNode):
    """
    等待节点

    参数:
        duration: 等待时间 (秒)
    """

    NODE_TYPE = "Wait"

    PARAM_SCHEMA = {
        'duration': {'type': 'float', 'required': True},
    }

    def __init__(self, node_id: str, params: Dict[str, Any] = None, **kwargs):
        super().__init__(node_id, params, **kwargs)
        self._wait_start = None

    def setup(self) -> bool:
        return 'duration' in self.params

    def execute(self) -> SkillResult:
        duration = float(self.params.get('duration', 1.0))

        if self._wait_start is None:
            self._wait_start = time.time()
            self.log_debug(f"Waiting for {duration}s...")

        elapsed = time.time() - self._wait_start

        if elapsed >= duration:
            return SkillResult(
                status=NodeStatus.SUCCESS,
                message=f"Wait completed ({duration}s)"
            )

        return SkillResult(
            status=NodeStatus.RUNNING,
            message=f"Waiting... {elapsed:.1f}/{duration}s"
        )

    def reset(self):
        """重置节点状态，确保下次执行时重新计时"""
        super().reset()
        self._wait_start = None


class CheckConditionNode(SkillNode):
    """
    条件检查节点

    参数:
        condition: 条件表达式 (从黑板读取变量)
        - 格式: "blackboard_key operator value"
        - 例如: "battery.level >= 0.2"
        - 支持的操作符: ==, !=, >, <, >=, <=
    """

    NODE_TYPE = "CheckCondition"

    PARAM_SCHEMA = {
        'condition': {'type': 'string', 'required': True},
    }

    # 两字符操作符必须排在前面
    OPERATORS = ['==', '!=', '>=', '<=', '>', '<']

    def setup(self) -> bool:
        return bool(self.params.get('condition'))

    def execute(self) -> SkillResult:
        condition = self.params.get('condition', '')

        try:
            result = self._evaluate_condition(condition)
        except TypeError as e:
            self.log_error(f"Error evaluating '{condition}': {e}")
            return SkillResult(
                status=NodeStatus.FAILURE,
                message=f"Failed to evaluate condition: {e}"
            )

        if result:
            return SkillResult(
                status=NodeStatus.SUCCESS,
                message=f"Condition '{condition}' is True"
            )
        return SkillResult(
            status=NodeStatus.FAILURE,
            message=f"Condition '{condition}' is False"
        )

    def _evaluate_condition(self, condition: str) -> bool:
        """评估条件表达式"""
        for op in self.OPERATORS:
            if op in condition:
                parts = condition.split(op)
                if len(parts) == 2:
                    key = parts[0].strip()
                    actual_value = self.read_from_blackboard(key)
                    expected_value = self._parse_value(parts[1])
                    return self._compare(actual_value, expected_value, op)

        # 没有操作符时直接作为布尔值检查
        return bool(self.read_from_blackboard(condition.strip()))

    @staticmethod
    def _parse_value(value_str: str) -> Any:
        """解析值字符串"""
        value_str = value_str.strip()

        if value_str.lower() == 'true':
            return True
        if value_str.lower() == 'false':
            return False
        if value_str.lower() == 'none':
            return None

        try:
            return int(value_str)
        except ValueError:
            pass

        try:
            return float(value_str)
        except ValueError:
            pass

        # 字符串（去掉引号）
        if len(value_str) >= 2 and value_str[0] == value_str[-1] and value_str[0] in ('"', "'"):
            return value_str[1:-1]

        return value_str

    @staticmethod
    def _compare(actual: Any, expected: Any, op: str) -> bool:
        """比较两个值"""
        if op == '==':
            return actual == expected
        if op == '!=':
            return actual != expected
        if actual is None:
            return False
        if op == '>':
            return actual > expected
        if op == '<':
            return actual < expected
        if op == '>=':
            return actual >= expected
        if op == '<=':
            return actual <= expected
        return False


class SetBlackboardNode(SkillNode):
    """
    黑板写入节点

    参数:
        key: 黑板键名（支持点分隔）
        value: 写入的值
    """

    NODE_TYPE = "SetBlackboard"

    PARAM_SCHEMA = {
        'key': {'type': 'string', 'required': True},
        'value': {'type': 'any', 'required': True},
    }

    def setup(self) -> bool:
        return self.validate_params()

    def execute(self) -> SkillResult:
        key = self.params['key']
        value = self.params['value']
        self.write_to_blackboard(key, value)
        return SkillResult(
            status=NodeStatus.SUCCESS,
            message=f"{key} = {value!r}",
            data={'key': key, 'value': value}
        )
