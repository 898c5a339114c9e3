"""
瓦片树模块

Tile 独占其子瓦片列表（树结构，无共享、无环）
遍历顺序为文档顺序：先自身，再按列表顺序遍历子瓦片
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

import numpy as np

from .bounding_volume import BoundingVolume, merge
from .payload import Extensions, Payload

DEFAULT_TILESET_SUFFIXES: Tuple[str, ...] = (".json",)


class Refinement(Enum):
    """细化方式"""
    REPLACE = "REPLACE"
    ADD = "ADD"


def is_absolute_uri(uri: str) -> bool:
    """带协议或网络位置的URI视为外部数据（单字母协议视为Windows盘符）"""
    parts = urlsplit(uri)
    return len(parts.scheme) > 1 or bool(parts.netloc)


@dataclass
class TileContent:
    """瓦片内容：外部几何数据或另一个tileset文档"""
    uri: str
    bounding_volume: Optional[BoundingVolume] = None
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    @property
    def is_absolute(self) -> bool:
        return is_absolute_uri(self.uri)

    def references_tileset(self, suffixes: Sequence[str] = DEFAULT_TILESET_SUFFIXES) -> bool:
        path = urlsplit(self.uri).path.lower()
        return any(path.endswith(suffix.lower()) for suffix in suffixes)


@dataclass(eq=False)
class Tile:
    """瓦片节点"""
    bounding_volume: BoundingVolume
    geometric_error: float = 0.0
    viewer_request_volume: Optional[BoundingVolume] = None
    refine: Optional[Refinement] = None
    # 4x4仿射矩阵（内存中按行存储，序列化时按列主序）
    transform: Optional[np.ndarray] = None
    content: Optional[TileContent] = None
    children: List["Tile"] = field(default_factory=list)
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def __post_init__(self):
        if self.transform is not None:
            self.transform = np.array(self.transform, dtype=np.float64).reshape(4, 4)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tile):
            return NotImplemented
        if (self.transform is None) != (other.transform is None):
            return False
        if self.transform is not None and not np.array_equal(self.transform, other.transform):
            return False
        return (self.bounding_volume == other.bounding_volume
                and self.geometric_error == other.geometric_error
                and self.viewer_request_volume == other.viewer_request_volume
                and self.refine == other.refine
                and self.content == other.content
                and self.children == other.children
                and self.extensions == other.extensions
                and self.extras == other.extras)

    def walk(self) -> Iterator["Tile"]:
        """前序遍历（自身在前，子瓦片按列表顺序）"""
        stack = [self]
        while stack:
            tile = stack.pop()
            yield tile
            stack.extend(reversed(tile.children))

    def subtree_size(self) -> int:
        """子树节点数（包括自身）"""
        return sum(1 for _ in self.walk())

    def depth(self) -> int:
        """子树层数"""
        if not self.children:
            return 1
        return 1 + max(child.depth() for child in self.children)

    def has_external_reference(self, suffixes: Sequence[str] = DEFAULT_TILESET_SUFFIXES) -> bool:
        """叶子瓦片的内容是否指向可解析的外部tileset"""
        if self.children or self.content is None:
            return False
        if self.content.is_absolute:
            return False
        return self.content.references_tileset(suffixes)

    def aggregate_bounding_volume(self) -> BoundingVolume:
        """
        合并自身与所有同类型后代的包围体

        不同类型的后代包围体被跳过
        """
        aggregate = self.bounding_volume
        for tile in self.walk():
            if tile.bounding_volume.kind == aggregate.kind:
                aggregate = merge(aggregate, tile.bounding_volume)
        return aggregate
