"""
行为树引擎 (Behavior Tree Engine)

负责行为树的执行、状态管理和 QR 度量上报。
同一棵树同一时刻只有一个 tick 在执行（由锁保证）。
"""

import json
import logging
import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .base_node import TreeNode, NodeStatus
from .errors import TaskQRError
from .parser import TaskParser
from .qr_node import QRNode, SystemLevelQR
from .visitor import iterate_tree


logger = logging.getLogger(__name__)


class TaskState(Enum):
    """任务状态"""
    IDLE = "idle"           # 空闲
    RUNNING = "running"     # 执行中
    PAUSED = "paused"       # 已暂停
    SUCCESS = "success"     # 成功完成
    FAILURE = "failure"     # 执行失败
    SKIPPED = "skipped"     # 根节点被跳过
    CANCELLED = "cancelled" # 已取消


# 根节点状态 -> 任务终态
_FINAL_STATES = {
    NodeStatus.SUCCESS: TaskState.SUCCESS,
    NodeStatus.FAILURE: TaskState.FAILURE,
    NodeStatus.SKIPPED: TaskState.SKIPPED,
}


class BehaviorTreeEngine:
    """
    行为树执行引擎

    负责:
    - 解析任务 JSON
    - 执行行为树 (同步 tick_once / run_until_complete，或后台 Tick 循环)
    - 管理任务状态 (暂停/恢复/取消)
    - 汇总 QR 节点的度量值
    """

    def __init__(
        self,
        ros_node=None,
        tick_rate: float = 10.0,
        on_status_update: Callable[[Dict[str, Any]], None] = None,
        parser: TaskParser = None
    ):
        """
        初始化引擎

        Args:
            ros_node: ROS2 节点引用
            tick_rate: Tick 频率 (Hz)
            on_status_update: 状态更新回调函数
            parser: 任务解析器，默认新建
        """
        self.ros_node = ros_node
        self.tick_rate = tick_rate
        self.tick_period = 1.0 / tick_rate
        self.on_status_update = on_status_update

        self.parser = parser if parser is not None else TaskParser(ros_node)

        self._task_id: Optional[str] = None
        self._task_name: Optional[str] = None
        self._root_node: Optional[TreeNode] = None
        self._task_state: TaskState = TaskState.IDLE
        self._start_time: Optional[float] = None
        self._tick_count = 0
        self._last_error: Optional[str] = None

        # 执行控制
        self._running = False
        self._paused = False
        self._cancel_requested = False
        self._exec_thread: Optional[threading.Thread] = None
        # on_status_update 回调中会调用 get_status()，需要可重入锁
        self._lock = threading.RLock()

    @property
    def root_node(self) -> Optional[TreeNode]:
        return self._root_node

    @property
    def task_state(self) -> TaskState:
        return self._task_state

    def load_task(self, task_json: Union[str, dict]) -> Tuple[bool, Optional[str], str]:
        """
        加载任务

        Args:
            task_json: 任务 JSON

        Returns:
            (success, task_id, message)
        """
        with self._lock:
            if self.is_running():
                return False, None, "Another task is running"

            is_valid, error = self.parser.validate(task_json)
            if not is_valid:
                return False, None, f"Invalid task: {error}"

            task_data = json.loads(task_json) if isinstance(task_json, str) else task_json

            try:
                self._root_node = self.parser.parse(task_data)
            except TaskQRError as e:
                return False, None, f"Failed to load task: {e}"

            self._task_id = task_data.get('task_id', str(uuid.uuid4())[:8])
            self._task_name = task_data.get('name', 'Unnamed Task')
            self._task_state = TaskState.IDLE
            self._start_time = None
            self._tick_count = 0
            self._last_error = None

            self._log_info(f"Task loaded: {self._task_name} ({self._task_id})")
            return True, self._task_id, "Task loaded successfully"

    def tick_once(self) -> NodeStatus:
        """
        同步执行一次 tick

        Returns:
            根节点状态

        Raises:
            LogicError / MissingInputError: 树的契约错误
            ValueError: 度量值无效（例如非有限浮点数）

            以上错误都会先把任务置为 FAILURE 并记录错误，再继续抛出
        """
        with self._lock:
            if self._root_node is None:
                raise TaskQRError("No task loaded")

            if self._task_state == TaskState.IDLE:
                self._start_time = time.time()
                self._task_state = TaskState.RUNNING
            elif self._task_state == TaskState.PAUSED:
                raise TaskQRError("Task paused")
            elif self._task_state != TaskState.RUNNING:
                raise TaskQRError(f"Task already finished ({self._task_state.value})")

            self._tick_count += 1
            try:
                status = self._root_node.tick()
            except Exception as e:
                # 契约错误和度量错误都使任务进入终态，然后继续抛出
                self._task_state = TaskState.FAILURE
                self._running = False
                self._last_error = str(e)
                self._log_error(f"Tick #{self._tick_count} aborted: {e}")
                raise

            self._log_debug(f"[Tick #{self._tick_count}] Status: {status.value}")

            if status in _FINAL_STATES:
                self._task_state = _FINAL_STATES[status]
                self._running = False
                self._log_info(
                    f"Task {self._task_state.value} after {self._tick_count} ticks "
                    f"({self._elapsed():.2f}s)"
                )

            if self.on_status_update:
                self.on_status_update(self.get_status())
            return status

    def run_until_complete(self, max_ticks: int = None) -> TaskState:
        """
        同步执行直到任务结束（不休眠）

        Args:
            max_ticks: 最多 tick 次数，None 表示不限

        Returns:
            任务状态（达到 max_ticks 时仍为 RUNNING）
        """
        ticks = 0
        while self._task_state in (TaskState.IDLE, TaskState.RUNNING):
            if max_ticks is not None and ticks >= max_ticks:
                break
            self.tick_once()
            ticks += 1
        return self._task_state

    def start(self) -> Tuple[bool, str]:
        """
        在后台线程中开始执行任务

        Returns:
            (success, message)
        """
        with self._lock:
            if self._root_node is None:
                return False, "No task loaded"

            if self.is_running():
                return False, "Task already running"

            if self._task_state != TaskState.IDLE:
                return False, f"Task already finished ({self._task_state.value})"

            self._running = True
            self._paused = False
            self._cancel_requested = False
            self._task_state = TaskState.RUNNING
            self._start_time = time.time()

            self._exec_thread = threading.Thread(target=self._execution_loop, daemon=True)
            self._exec_thread.start()

            self._log_info(f"Task started: {self._task_name}")
            return True, "Task started"

    def pause(self) -> Tuple[bool, str]:
        """暂停任务"""
        with self._lock:
            if self._task_state != TaskState.RUNNING:
                return False, "Task not running"

            self._paused = True
            self._task_state = TaskState.PAUSED
            self._log_info("Task paused")
            return True, "Task paused"

    def resume(self) -> Tuple[bool, str]:
        """恢复任务"""
        with self._lock:
            if self._task_state != TaskState.PAUSED:
                return False, "Task not paused"

            self._paused = False
            self._task_state = TaskState.RUNNING
            self._log_info("Task resumed")
            return True, "Task resumed"

    def cancel(self) -> Tuple[bool, str]:
        """取消任务（重置整棵树）"""
        with self._lock:
            if self._task_state not in (TaskState.RUNNING, TaskState.PAUSED):
                return False, "No active task to cancel"

            self._cancel_requested = True
            self._running = False
            if self._root_node:
                self._root_node.reset()

            self._task_state = TaskState.CANCELLED
            self._log_info("Task cancelled")
            return True, "Task cancelled"

    def wait(self, timeout: float = None) -> bool:
        """等待后台执行线程结束"""
        thread = self._exec_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def get_qr_report(self) -> List[Dict[str, Any]]:
        """汇总树中所有 QR 节点的度量状态"""
        with self._lock:
            if self._root_node is None:
                return []
            report = []
            for node in iterate_tree(self._root_node):
                if not isinstance(node, QRNode):
                    continue
                entry = {
                    'node_id': node.node_id,
                    'node_name': node.node_name,
                    'node_type': node.node_type,
                    'level': 'system' if isinstance(node, SystemLevelQR) else 'task',
                    'quality_attribute': node.qa_type().value,
                    'metric': node.current_metric(),
                    'mean_metric': node.mean_metric,
                    'times_calculated': node.times_calculated,
                    'weight': node.current_weight(),
                    'higher_is_better': node.is_higher_better(),
                    'qr_status': node.qr_status,
                }
                if isinstance(node, SystemLevelQR):
                    entry['sub_qr_metrics'] = dict(node.sub_qr_metrics)
                report.append(entry)
            return report

    def get_status(self) -> Dict[str, Any]:
        """获取当前任务状态"""
        with self._lock:
            node_states = []
            if self._root_node:
                node_states = [node.get_state() for node in iterate_tree(self._root_node)]

            completed = sum(1 for s in node_states if s['status'] in ('success', 'failure', 'skipped'))
            total = len(node_states)
            progress = completed / total if total > 0 else 0.0

            # 当前节点 - 找最深层（最后一个）running 的节点
            current_node_id = None
            for state in node_states:
                if state['status'] == 'running':
                    current_node_id = state['node_id']

            return {
                'task_id': self._task_id,
                'task_name': self._task_name,
                'status': self._task_state.value,
                'current_node_id': current_node_id,
                'completed_nodes': completed,
                'total_nodes': total,
                'progress': progress,
                'tick_count': self._tick_count,
                'elapsed_time': self._elapsed(),
                'error': self._last_error,
                'node_statuses': node_states,
                'qr_metrics': self.get_qr_report(),
            }

    def _execution_loop(self):
        """执行循环（在独立线程中运行）"""
        self._log_info(f"Execution loop started for task: {self._task_name} ({self.tick_rate} Hz)")

        try:
            while self._running and not self._cancel_requested:
                if self._paused:
                    time.sleep(0.1)
                    continue

                tick_start = time.time()
                with self._lock:
                    # 可能在等待锁期间被取消或暂停
                    if not self._running or self._paused:
                        continue
                    self.tick_once()
                    if self._task_state != TaskState.RUNNING:
                        break

                # 控制 Tick 频率
                sleep_time = self.tick_period - (time.time() - tick_start)
                if sleep_time > 0:
                    time.sleep(sleep_time)

        except Exception:
            # tick_once 已经记录了契约错误；这里只保证任务进入终态
            logger.exception("[TaskEngine] Execution error")
            with self._lock:
                self._task_state = TaskState.FAILURE
                self._running = False

        finally:
            if self.on_status_update:
                self.on_status_update(self.get_status())
            self._log_info("Execution loop ended")

    def _elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    def _log_debug(self, msg: str):
        if self.ros_node:
            self.ros_node.get_logger().debug(f"[TaskEngine] {msg}")
        else:
            logger.debug("[TaskEngine] %s", msg)

    def _log_info(self, msg: str):
        if self.ros_node:
            self.ros_node.get_logger().info(f"[TaskEngine] {msg}")
        else:
            logger.info("[TaskEngine] %s", msg)

    def _log_error(self, msg: str):
        if self.ros_node:
            self.ros_node.get_logger().error(f"[TaskEngine] {msg}")
        else:
            logger.error("[TaskEngine] %s", msg)

    def is_running(self) -> bool:
        """是否有任务正在运行"""
        return self._task_state in (TaskState.RUNNING, TaskState.PAUSED)

    def get_current_task_id(self) -> Optional[str]:
        """获取当前任务 ID"""
        return self._task_id
