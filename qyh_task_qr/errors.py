"""
异常定义 (Errors)

行为树契约错误:
- LogicError: 子节点违反 tick 协议（例如返回 IDLE）
- MissingInputError: 必需的输入端口没有绑定值
- TaskParseError: 任务 JSON 无法解析
"""


class TaskQRError(Exception):
    """任务引擎异常基类"""


class LogicError(TaskQRError):
    """行为树契约错误，不可恢复，直接抛给引擎"""

    def __init__(self, node_name: str, message: str):
        self.node_name = node_name
        super().__init__(f"[{node_name}]: {message}")


class MissingInputError(TaskQRError, KeyError):
    """输入端口缺少绑定值"""

    def __init__(self, node_name: str, port_name: str, detail: str = ""):
        self.node_name = node_name
        self.port_name = port_name
        message = f"[{node_name}]: missing required input '{port_name}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError 会给消息加引号
        return self.args[0]


class TaskParseError(TaskQRError, ValueError):
    """任务 JSON 格式错误或节点类型未知"""
