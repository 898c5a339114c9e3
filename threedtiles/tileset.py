"""
Tileset 根容器模块
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .payload import Extensions, Payload
from .tile import Tile


@dataclass
class Asset:
    """资产元数据"""
    version: str = "1.0"
    tileset_version: Optional[str] = None
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None


@dataclass
class Property:
    """属性取值范围"""
    minimum: float = 0.0
    maximum: float = 0.0
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def widen(self, other: "Property") -> None:
        self.minimum = min(self.minimum, other.minimum)
        self.maximum = max(self.maximum, other.maximum)


@dataclass
class Tileset:
    """tileset文档"""
    asset: Asset = field(default_factory=Asset)
    properties: Dict[str, Property] = field(default_factory=dict)
    geometric_error: float = 0.0
    root: Optional[Tile] = None
    extensions_used: List[str] = field(default_factory=list)
    extensions_required: List[str] = field(default_factory=list)
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def walk(self) -> Iterator[Tile]:
        if self.root is not None:
            yield from self.root.walk()

    def tree_size(self) -> int:
        """瓦片总数，空tileset为0"""
        return self.root.subtree_size() if self.root is not None else 0

    def merge_metadata(self, other: "Tileset") -> None:
        """
        合并被引用tileset的元数据

        扩展列表取并集（保持顺序、不重复），属性范围取并集；asset版本不合并
        """
        for name in other.extensions_used:
            if name not in self.extensions_used:
                self.extensions_used.append(name)
        for name in other.extensions_required:
            if name not in self.extensions_required:
                self.extensions_required.append(name)

        for name, prop in other.properties.items():
            if name in self.properties:
                self.properties[name].widen(prop)
            else:
                self.properties[name] = Property(prop.minimum, prop.maximum,
                                                 dict(prop.extensions), prop.extras)
