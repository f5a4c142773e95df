"""
端口定义 (Ports)

节点通过端口读取配置输入、发布计算输出:
- 参数值为 "{key}" 时，端口重映射到黑板上的 key（支持点分隔嵌套键）
- 其他参数值视为字面量（仅输入端口），按端口类型转换
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class PortDirection(Enum):
    """端口方向"""
    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class Port:
    """端口声明"""
    name: str
    direction: PortDirection
    type: type = float
    description: str = ""


PortsList = Dict[str, Port]


def InputPort(name: str, port_type: type = float, description: str = "") -> Port:
    return Port(name, PortDirection.INPUT, port_type, description)


def OutputPort(name: str, port_type: type = float, description: str = "") -> Port:
    return Port(name, PortDirection.OUTPUT, port_type, description)


def make_ports(*ports: Port) -> PortsList:
    """按名称索引端口列表"""
    return {port.name: port for port in ports}


def remapped_key(value: Any) -> Optional[str]:
    """
    解析黑板重映射

    Args:
        value: 参数值

    Returns:
        "{key}" 形式时返回 key，否则返回 None
    """
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 2 and text.startswith('{') and text.endswith('}'):
            return text[1:-1].strip()
    return None


def convert_value(value: Any, port_type: type) -> Any:
    """
    按端口类型转换字面量

    Raises:
        ValueError: 无法转换
    """
    if port_type is Any or value is None or isinstance(value, port_type):
        return value
    if port_type is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ('true', '1', 'yes'):
                return True
            if lowered in ('false', '0', 'no'):
                return False
            raise ValueError(f"cannot convert '{value}' to bool")
        return bool(value)
    if port_type is float and isinstance(value, bool):
        raise ValueError(f"cannot convert bool {value} to float")
    try:
        return port_type(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"cannot convert {value!r} to {port_type.__name__}: {e}")
