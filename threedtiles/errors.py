"""
异常定义模块

FormatError: 文档格式错误（单个文档致命，解析器层面可恢复）
TypeMismatch: 不同类型包围体合并（编程错误，不可恢复）
TileReferenceError: 外部文档不存在或不可读（可恢复）
"""

from typing import Optional


class ThreeDTilesError(Exception):
    """所有库异常的基类"""


class FormatError(ThreeDTilesError, ValueError):
    """文档格式错误"""

    def __init__(self, message: str, location: str = ""):
        self.message = message
        self.location = location
        if location:
            message = f"{location}: {message}"
        super().__init__(message)


class MalformedDocument(FormatError):
    """文档不是合法的JSON或字段类型错误"""


class UnknownBoundingVolumeKind(FormatError):
    """boundingVolume不包含box/region/sphere中的任何一种"""


class MissingRequiredField(FormatError):
    """缺少必需字段"""

    def __init__(self, field: str, location: str = ""):
        self.field = field
        super().__init__(f"缺少必需字段 '{field}'", location)


class TypeMismatch(ThreeDTilesError, TypeError):
    """合并了不同类型的包围体"""

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"无法合并不同类型的包围体: {left} 与 {right}")


class TileReferenceError(ThreeDTilesError):
    """外部引用无法读取"""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        message = f"无法读取外部引用: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ReferenceNotFound(TileReferenceError):
    """外部引用的文档不存在"""


class ReferenceIOError(TileReferenceError):
    """外部引用的文档读取失败"""
