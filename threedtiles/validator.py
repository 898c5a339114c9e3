"""
瓦片树验证模块

检测解码后的瓦片树中可能导致渲染或解析问题的结构错误，包括：
- 缺少根瓦片
- 几何误差为负或子瓦片大于父瓦片
- region 范围无效
- 空瓦片、未解析的外部引用、绝对URI引用（警告）
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from .bounding_volume import BoundingVolume, Region
from .tile import DEFAULT_TILESET_SUFFIXES, Tile
from .tileset import Tileset


class IssueSeverity(Enum):
    """问题严重程度"""
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """验证问题数据类"""
    code: str
    severity: IssueSeverity
    message: str
    location: str = ""
    fix: Optional[str] = None


@dataclass
class ValidationResult:
    """验证结果"""
    passed: bool
    errors: int
    warnings: int
    issues: List[ValidationIssue]


class TilesetValidator:
    """瓦片树验证器"""

    def __init__(self, tileset_suffixes: Sequence[str] = DEFAULT_TILESET_SUFFIXES):
        """
        初始化验证器

        Args:
            tileset_suffixes: 视为外部tileset的content后缀
        """
        self.tileset_suffixes = tuple(tileset_suffixes)
        self.issues: List[ValidationIssue] = []

    def validate(self, tileset: Tileset) -> ValidationResult:
        """
        验证tileset

        Args:
            tileset: 待验证的tileset

        Returns:
            ValidationResult: 验证结果
        """
        self.issues = []

        if tileset.geometric_error < 0:
            self._error("INVALID_GEOMETRIC_ERROR", "/geometricError",
                        f"geometricError is negative: {tileset.geometric_error}",
                        fix="geometricError must be non-negative")

        if tileset.root is None:
            self._error("MISSING_ROOT_TILE", "/root", "tileset missing 'root' tile")
        else:
            if tileset.root.geometric_error > tileset.geometric_error:
                self._warning("ROOT_ERROR_EXCEEDS_TILESET", "/root",
                              f"Root geometricError ({tileset.root.geometric_error}) is larger "
                              f"than tileset geometricError ({tileset.geometric_error})")
            self._validate_tile(tileset.root, "/root")

        errors = len([i for i in self.issues if i.severity == IssueSeverity.ERROR])
        warnings = len([i for i in self.issues if i.severity == IssueSeverity.WARNING])
        return ValidationResult(
            passed=errors == 0,
            errors=errors,
            warnings=warnings,
            issues=list(self.issues)
        )

    def _error(self, code: str, location: str, message: str, fix: Optional[str] = None):
        self.issues.append(ValidationIssue(code, IssueSeverity.ERROR, message, location, fix))

    def _warning(self, code: str, location: str, message: str, fix: Optional[str] = None):
        self.issues.append(ValidationIssue(code, IssueSeverity.WARNING, message, location, fix))

    def _validate_tile(self, root: Tile, root_location: str) -> None:
        """遍历瓦片树，逐个检查"""
        stack = [(root, root_location)]
        while stack:
            tile, location = stack.pop()

            if tile.geometric_error < 0:
                self._error("INVALID_GEOMETRIC_ERROR", location,
                            f"geometricError is negative: {tile.geometric_error}",
                            fix="geometricError must be non-negative")

            self._validate_volume(tile.bounding_volume, f"{location}/boundingVolume")
            if tile.viewer_request_volume is not None:
                self._validate_volume(tile.viewer_request_volume, f"{location}/viewerRequestVolume")

            if tile.content is not None:
                if tile.content.bounding_volume is not None:
                    self._validate_volume(tile.content.bounding_volume,
                                          f"{location}/content/boundingVolume")
                if tile.content.is_absolute:
                    self._warning("ABSOLUTE_CONTENT_URI", f"{location}/content",
                                  f"Content refers to external data: {tile.content.uri}")
                elif tile.has_external_reference(self.tileset_suffixes):
                    self._warning("UNRESOLVED_EXTERNAL_TILESET", f"{location}/content",
                                  f"External tileset not resolved: {tile.content.uri}")
            elif not tile.children:
                self._warning("EMPTY_TILE", location, "Tile has no content or children")

            children = []
            for index, child in enumerate(tile.children):
                child_location = f"{location}/children/{index}"
                # 检查LOD结构
                if child.geometric_error > tile.geometric_error:
                    self._error("INVALID_LOD_STRUCTURE", child_location,
                                f"Child tile has larger geometricError than parent: "
                                f"{child.geometric_error} > {tile.geometric_error}",
                                fix="Child tiles should have smaller geometricError than parent")
                children.append((child, child_location))
            stack.extend(reversed(children))

    def _validate_volume(self, volume: BoundingVolume, location: str) -> None:
        if not isinstance(volume, Region):
            return

        if volume.is_empty:
            self._error("EMPTY_BOUNDING_VOLUME_REGION", location, "boundingVolume.region is empty")
            return

        if not -math.pi <= volume.west <= math.pi:
            self._error("INVALID_BOUNDING_VOLUME_REGION", location,
                        f"boundingVolume.region west must be in [-π, π] radians, got: {volume.west}")
        if not -math.pi <= volume.east <= math.pi:
            self._error("INVALID_BOUNDING_VOLUME_REGION", location,
                        f"boundingVolume.region east must be in [-π, π] radians, got: {volume.east}")
        if not -math.pi / 2 <= volume.south <= math.pi / 2:
            self._error("INVALID_BOUNDING_VOLUME_REGION", location,
                        f"boundingVolume.region south must be in [-π/2, π/2] radians, got: {volume.south}")
        if not -math.pi / 2 <= volume.north <= math.pi / 2:
            self._error("INVALID_BOUNDING_VOLUME_REGION", location,
                        f"boundingVolume.region north must be in [-π/2, π/2] radians, got: {volume.north}")

        if volume.south > volume.north:
            self._error("INVALID_BOUNDING_VOLUME_REGION_LATITUDE", location,
                        f"boundingVolume.region south ({volume.south}) must be <= north ({volume.north})")
        if volume.min_height > volume.max_height:
            self._error("INVALID_BOUNDING_VOLUME_REGION_HEIGHT", location,
                        f"boundingVolume.region minHeight ({volume.min_height}) "
                        f"must be <= maxHeight ({volume.max_height})")
