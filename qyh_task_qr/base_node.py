"""
节点基类 (Tree Node Base Class)

定义所有行为树节点的公共接口:
- TreeNode: 节点标识、黑板、端口、日志、状态
- SkillNode: 叶子节点，setup -> execute 生命周期
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .errors import MissingInputError, TaskQRError
from .ports import PortDirection, PortsList, convert_value, remapped_key

if TYPE_CHECKING:
    import rclpy.node


logger = logging.getLogger(__name__)

_MISSING = object()


class NodeStatus(Enum):
    """节点执行状态"""
    IDLE = "idle"           # 空闲，未开始（子节点不允许向父节点返回）
    RUNNING = "running"     # 执行中
    SUCCESS = "success"     # 成功完成
    FAILURE = "failure"     # 执行失败
    SKIPPED = "skipped"     # 被跳过


@dataclass
class SkillResult:
    """技能执行结果"""
    status: NodeStatus
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


class TreeNode(ABC):
    """
    行为树节点基类

    Attributes:
        node_id: 节点唯一标识符
        node_type: 节点类型名称
        node_name: 节点注册名称（在树的生命周期内不变）
        params: 节点参数（包括端口绑定）
        status: 当前执行状态
        blackboard: 共享数据黑板（用于节点间通信）
        ros_node: ROS2 节点引用（可选，用于日志）
    """

    # 节点类型名称（子类必须重写）
    NODE_TYPE: str = "TreeNode"

    # 参数定义（子类应该重写，用于参数校验）
    PARAM_SCHEMA: Dict[str, Any] = {}

    def __init__(
        self,
        node_id: str,
        params: Dict[str, Any] = None,
        blackboard: Dict[str, Any] = None,
        ros_node: 'rclpy.node.Node' = None,
        node_name: str = None
    ):
        self.node_id = node_id
        self.node_type = self.__class__.NODE_TYPE
        self.node_name = node_name or self.node_type
        self.params = params or {}
        self.blackboard = blackboard if blackboard is not None else {}
        self.ros_node = ros_node

        self.status = NodeStatus.IDLE
        self._start_time: Optional[float] = None
        self._end_time: Optional[float] = None

    @abstractmethod
    def tick(self) -> NodeStatus:
        """执行一次 tick，返回当前状态"""

    def reset(self):
        """重置节点状态，以便重新执行"""
        self.status = NodeStatus.IDLE
        self._start_time = None
        self._end_time = None

    def children(self) -> List['TreeNode']:
        """直接子节点（叶子节点为空）"""
        return []

    def attach_blackboard(self, blackboard: Dict[str, Any]):
        """递归共享黑板"""
        self.blackboard = blackboard
        for child in self.children():
            child.attach_blackboard(blackboard)

    @classmethod
    def provided_ports(cls) -> PortsList:
        """声明的端口（子类按需重写）"""
        return {}

    def get_input(self, name: str) -> Any:
        """
        读取输入端口

        Args:
            name: 端口名称

        Returns:
            按端口类型转换后的值

        Raises:
            MissingInputError: 端口没有绑定值或黑板上没有对应的键
            TaskQRError: 端口未声明
        """
        port = self.provided_ports().get(name)
        if port is None or port.direction != PortDirection.INPUT:
            raise TaskQRError(f"[{self.node_name}]: '{name}' is not a declared input port")

        if name not in self.params:
            raise MissingInputError(self.node_name, name, "no binding")

        binding = self.params[name]
        key = remapped_key(binding)
        if key is not None:
            value = self.read_from_blackboard(key, _MISSING)
            if value is _MISSING:
                raise MissingInputError(self.node_name, name, f"blackboard key '{key}' not set")
        else:
            value = binding

        try:
            return convert_value(value, port.type)
        except ValueError as e:
            raise MissingInputError(self.node_name, name, str(e)) from e

    def set_output(self, name: str, value: Any) -> str:
        """
        写入输出端口

        未重映射的输出端口发布到 "<node_id>.<port>"

        Returns:
            实际写入的黑板键
        """
        port = self.provided_ports().get(name)
        if port is None or port.direction != PortDirection.OUTPUT:
            raise TaskQRError(f"[{self.node_name}]: '{name}' is not a declared output port")

        key = remapped_key(self.params.get(name))
        if key is None:
            key = f"{self.node_id}.{name}"
        self.write_to_blackboard(key, value)
        return key

    def read_from_blackboard(self, key: str, default: Any = None) -> Any:
        """
        从黑板读取数据

        Args:
            key: 数据键名（支持点分隔的嵌套键，如 'objects.cup.pose'）
            default: 默认值

        Returns:
            读取到的数据或默认值
        """
        keys = key.split('.')
        data = self.blackboard
        for k in keys:
            if isinstance(data, dict) and k in data:
                data = data[k]
            else:
                return default
        return data

    def write_to_blackboard(self, key: str, value: Any):
        """
        向黑板写入数据

        Args:
            key: 数据键名（支持点分隔的嵌套键）
            value: 要写入的值
        """
        keys = key.split('.')
        data = self.blackboard
        for k in keys[:-1]:
            if not isinstance(data.get(k), dict):
                data[k] = {}
            data = data[k]
        data[keys[-1]] = value

    def get_duration(self) -> float:
        """获取执行耗时（秒）"""
        if self._start_time is None:
            return 0.0
        end = self._end_time or time.time()
        return end - self._start_time

    def get_state(self) -> Dict[str, Any]:
        """
        获取节点状态（用于状态上报）

        Returns:
            包含节点 ID、类型、状态等信息的字典
        """
        return {
            'node_id': self.node_id,
            'node_type': self.node_type,
            'node_name': self.node_name,
            'status': self.status.value,
            'duration': self.get_duration(),
        }

    def log_debug(self, msg: str):
        if self.ros_node:
            self.ros_node.get_logger().debug(f"[{self.node_name}] {msg}")
        else:
            logger.debug("[%s] %s", self.node_name, msg)

    def log_info(self, msg: str):
        """输出信息日志"""
        if self.ros_node:
            self.ros_node.get_logger().info(f"[{self.node_name}] {msg}")
        else:
            logger.info("[%s] %s", self.node_name, msg)

    def log_warn(self, msg: str):
        """输出警告日志"""
        if self.ros_node:
            self.ros_node.get_logger().warn(f"[{self.node_name}] {msg}")
        else:
            logger.warning("[%s] %s", self.node_name, msg)

    def log_error(self, msg: str):
        """输出错误日志"""
        if self.ros_node:
            self.ros_node.get_logger().error(f"[{self.node_name}] {msg}")
        else:
            logger.error("[%s] %s", self.node_name, msg)

    def __repr__(self) -> str:
        return f"<{self.node_type}(id={self.node_id}, name={self.node_name}, status={self.status.value})>"


class SkillNode(TreeNode):
    """
    技能节点基类

    所有叶子技能（如 Wait, CheckCondition 等）都应该继承此类。
    每个节点封装一个原子操作。
    """

    NODE_TYPE: str = "BaseSkill"

    def __init__(self, node_id: str, params: Dict[str, Any] = None, **kwargs):
        super().__init__(node_id, params, **kwargs)
        self._result: Optional[SkillResult] = None

    def validate_params(self) -> bool:
        """
        验证节点参数

        Returns:
            参数是否有效
        """
        for param_name, param_def in self.PARAM_SCHEMA.items():
            if param_def.get('required', False):
                if param_name not in self.params:
                    return False
        return True

    @abstractmethod
    def setup(self) -> bool:
        """
        节点初始化（在首次 tick 前调用）

        Returns:
            初始化是否成功
        """

    @abstractmethod
    def execute(self) -> SkillResult:
        """
        执行技能的核心逻辑

        Returns:
            SkillResult 包含执行状态和结果
        """

    def tick(self) -> NodeStatus:
        # 如果还没开始，先执行 setup
        if self.status == NodeStatus.IDLE:
            self._start_time = time.time()
            if not self.setup():
                self.log_warn("setup() failed")
                self.status = NodeStatus.FAILURE
                self._result = SkillResult(
                    status=NodeStatus.FAILURE,
                    message="Setup failed"
                )
                self._end_time = time.time()
                return self.status
            self.status = NodeStatus.RUNNING

        # 已结束的节点保持最终状态，直到 reset
        if self.status != NodeStatus.RUNNING:
            return self.status

        try:
            result = self.execute()
        except Exception as e:
            self.log_error(f"execute() raised: {e}")
            result = SkillResult(
                status=NodeStatus.FAILURE,
                message=f"Execution error: {e}"
            )

        if result.status == NodeStatus.IDLE:
            result = SkillResult(
                status=NodeStatus.FAILURE,
                message="execute() returned IDLE"
            )
        self._result = result
        self.status = result.status
        if self.status != NodeStatus.RUNNING:
            self._end_time = time.time()
        return self.status

    def reset(self):
        super().reset()
        self._result = None

    def get_result(self) -> Optional[SkillResult]:
        """获取执行结果"""
        return self._result

    def get_state(self) -> Dict[str, Any]:
        state = super().get_state()
        state['params'] = self.params
        state['result'] = {
            'message': self._result.message,
            'data': self._result.data
        } if self._result else None
        return state
