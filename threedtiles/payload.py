"""
不透明负载模块

extensions/extras字段的内容不被解释，只在解码和编码之间原样保留
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class PayloadKind(Enum):
    """负载的JSON类型"""
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


def _kind_of(value: Any) -> PayloadKind:
    # bool是int的子类，必须先判断
    if isinstance(value, bool):
        return PayloadKind.BOOLEAN
    if value is None:
        return PayloadKind.NULL
    if isinstance(value, dict):
        return PayloadKind.OBJECT
    if isinstance(value, list):
        return PayloadKind.ARRAY
    if isinstance(value, str):
        return PayloadKind.STRING
    if isinstance(value, (int, float)):
        return PayloadKind.NUMBER
    raise TypeError(f"不支持的负载类型: {type(value).__name__}")


@dataclass(frozen=True)
class Payload:
    """带类型标记的无模式结构化值"""
    value: Any

    def __post_init__(self):
        _kind_of(self.value)
        # 与调用方的对象解耦，保证原样往返
        object.__setattr__(self, "value", copy.deepcopy(self.value))

    @property
    def kind(self) -> PayloadKind:
        return _kind_of(self.value)

    def to_json(self) -> Any:
        return copy.deepcopy(self.value)


Extensions = Dict[str, Payload]


def extensions_from_json(data: Optional[Dict[str, Any]]) -> Extensions:
    if not data:
        return {}
    return {name: Payload(value) for name, value in data.items()}


def extensions_to_json(extensions: Extensions) -> Dict[str, Any]:
    return {name: payload.to_json() for name, payload in extensions.items()}
