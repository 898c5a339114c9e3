"""
包围体模块

3D Tiles 支持 box/region/sphere 三种包围体，三者互不兼容：
- box: 中心点 + 三个半轴向量，描述有向包围盒
- region: 经纬度范围（弧度）+ 高度范围（米），默认构造为空区域
- sphere: 中心点 + 半径

merge() 返回包含两个输入的同类型最小（或保守）包围体，不同类型合并抛出 TypeMismatch
"""

import dataclasses
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import TypeMismatch
from .payload import Extensions, Payload

Point3 = Tuple[float, float, float]

_EPSILON = 1e-12
_TWO_PI = 2.0 * math.pi


class VolumeKind(Enum):
    """包围体类型"""
    BOX = "box"
    REGION = "region"
    SPHERE = "sphere"


def _point3(value: Sequence[float], name: str) -> Point3:
    values = tuple(float(v) for v in value)
    if len(values) != 3:
        raise ValueError(f"{name} 必须是3个数值，实际为 {len(values)} 个")
    return values  # type: ignore[return-value]


@dataclass(frozen=True)
class Box:
    """有向包围盒"""
    center: Point3 = (0.0, 0.0, 0.0)
    x: Point3 = (0.0, 0.0, 0.0)
    y: Point3 = (0.0, 0.0, 0.0)
    z: Point3 = (0.0, 0.0, 0.0)
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def __post_init__(self):
        for name in ("center", "x", "y", "z"):
            object.__setattr__(self, name, _point3(getattr(self, name), name))

    @property
    def kind(self) -> VolumeKind:
        return VolumeKind.BOX

    @classmethod
    def from_values(cls, values: Sequence[float], **kwargs) -> "Box":
        """从12个数值构造（center, x, y, z）"""
        values = list(values)
        if len(values) != 12:
            raise ValueError(f"box 必须是12个数值，实际为 {len(values)} 个")
        return cls(values[0:3], values[3:6], values[6:9], values[9:12], **kwargs)

    def values(self) -> Tuple[float, ...]:
        return self.center + self.x + self.y + self.z

    def axes(self) -> np.ndarray:
        """3x3 半轴矩阵，每行一个半轴"""
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def corners(self) -> np.ndarray:
        """8个角点，形状为 (8, 3)"""
        center = np.array(self.center, dtype=np.float64)
        axes = self.axes()
        signs = np.array([[sx, sy, sz]
                          for sx in (-1.0, 1.0)
                          for sy in (-1.0, 1.0)
                          for sz in (-1.0, 1.0)])
        return center + signs @ axes

    def contains_point(self, point: Sequence[float], tolerance: float = 1e-9) -> bool:
        offset = np.asarray(point, dtype=np.float64) - np.array(self.center)
        matrix = self.axes().T
        coefficients, _, _, _ = np.linalg.lstsq(matrix, offset, rcond=None)
        if not np.allclose(matrix @ coefficients, offset, atol=tolerance):
            # 点在退化包围盒所在平面/直线之外
            return False
        return bool(np.all(np.abs(coefficients) <= 1.0 + tolerance))

    def almost_equal(self, other: "BoundingVolume", tolerance: float = 1e-9) -> bool:
        return isinstance(other, Box) and np.allclose(
            self.values(), other.values(), rtol=0.0, atol=tolerance)

    def update(self, other: "BoundingVolume") -> "Box":
        return merge(self, other)


@dataclass(frozen=True)
class Region:
    """地理区域（弧度/米）；无参数构造时为空区域"""
    west: float = math.inf
    south: float = math.inf
    east: float = -math.inf
    north: float = -math.inf
    min_height: float = math.inf
    max_height: float = -math.inf
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def __post_init__(self):
        for name in ("west", "south", "east", "north", "min_height", "max_height"):
            object.__setattr__(self, name, float(getattr(self, name)))

    @property
    def kind(self) -> VolumeKind:
        return VolumeKind.REGION

    @classmethod
    def empty(cls) -> "Region":
        return cls()

    @classmethod
    def from_values(cls, values: Sequence[float], **kwargs) -> "Region":
        """从6个数值构造（west, south, east, north, minHeight, maxHeight）"""
        values = list(values)
        if len(values) != 6:
            raise ValueError(f"region 必须是6个数值，实际为 {len(values)} 个")
        return cls(*values, **kwargs)

    @property
    def is_empty(self) -> bool:
        """是否为空区域哨兵（存在非有限分量）"""
        return not all(math.isfinite(v) for v in self.values())

    @property
    def is_valid(self) -> bool:
        # west > east 表示跨越180度经线，是合法的
        return (not self.is_empty
                and self.south <= self.north
                and self.min_height <= self.max_height)

    @property
    def crosses_antimeridian(self) -> bool:
        return self.is_valid and self.west > self.east

    def values(self) -> Tuple[float, ...]:
        return (self.west, self.south, self.east, self.north,
                self.min_height, self.max_height)

    def contains_point(self, point: Sequence[float], tolerance: float = 1e-9) -> bool:
        """point 为 (经度, 纬度, 高度)"""
        if not self.is_valid:
            return False
        lon, lat, height = (float(v) for v in point)
        if self.crosses_antimeridian:
            in_longitude = lon >= self.west - tolerance or lon <= self.east + tolerance
        else:
            in_longitude = self.west - tolerance <= lon <= self.east + tolerance
        return (in_longitude
                and self.south - tolerance <= lat <= self.north + tolerance
                and self.min_height - tolerance <= height <= self.max_height + tolerance)

    def almost_equal(self, other: "BoundingVolume", tolerance: float = 1e-9) -> bool:
        return isinstance(other, Region) and np.allclose(
            self.values(), other.values(), rtol=0.0, atol=tolerance)

    def update(self, other: "BoundingVolume") -> "Region":
        return merge(self, other)


@dataclass(frozen=True)
class Sphere:
    """包围球"""
    center: Point3 = (0.0, 0.0, 0.0)
    radius: float = 0.0
    extensions: Extensions = field(default_factory=dict)
    extras: Optional[Payload] = None

    def __post_init__(self):
        object.__setattr__(self, "center", _point3(self.center, "center"))
        object.__setattr__(self, "radius", float(self.radius))
        if not self.radius >= 0.0:
            raise ValueError(f"sphere 半径必须非负: {self.radius}")

    @property
    def kind(self) -> VolumeKind:
        return VolumeKind.SPHERE

    @classmethod
    def from_values(cls, values: Sequence[float], **kwargs) -> "Sphere":
        """从4个数值构造（centerX, centerY, centerZ, radius）"""
        values = list(values)
        if len(values) != 4:
            raise ValueError(f"sphere 必须是4个数值，实际为 {len(values)} 个")
        return cls(values[0:3], values[3], **kwargs)

    def values(self) -> Tuple[float, ...]:
        return self.center + (self.radius,)

    def contains_point(self, point: Sequence[float], tolerance: float = 1e-9) -> bool:
        distance = np.linalg.norm(np.asarray(point, dtype=np.float64) - np.array(self.center))
        return bool(distance <= self.radius + tolerance)

    def almost_equal(self, other: "BoundingVolume", tolerance: float = 1e-9) -> bool:
        return isinstance(other, Sphere) and np.allclose(
            self.values(), other.values(), rtol=0.0, atol=tolerance)

    def update(self, other: "BoundingVolume") -> "Sphere":
        return merge(self, other)


BoundingVolume = Union[Box, Region, Sphere]


def merge(a: Optional[BoundingVolume], b: Optional[BoundingVolume]) -> Optional[BoundingVolume]:
    """
    合并两个包围体

    Args:
        a: 第一个包围体（可为None）
        b: 第二个包围体（可为None）

    Returns:
        包含a和b的a类型包围体；任一为None时返回另一个

    Raises:
        TypeMismatch: a和b类型不同
    """
    if a is None:
        return b
    if b is None:
        return a

    if a.kind != b.kind:
        raise TypeMismatch(a.kind.value, b.kind.value)

    if a == b:
        return a

    if a.kind == VolumeKind.BOX:
        return _merge_boxes(a, b)
    if a.kind == VolumeKind.REGION:
        return _merge_regions(a, b)
    return _merge_spheres(a, b)


def update(running: Optional[BoundingVolume],
           volume: Optional[BoundingVolume]) -> Optional[BoundingVolume]:
    """用新发现的包围体扩展累计包围体"""
    return merge(running, volume)


def _longitude_span(region: Region) -> float:
    if region.west > region.east:
        return region.east - region.west + _TWO_PI
    return region.east - region.west


def _merge_longitudes(a: Region, b: Region) -> Tuple[float, float]:
    """
    在经度圆上合并两个经度区间

    候选区间分别从 a.west 和 b.west 出发，取覆盖两者的较短者；
    覆盖整圈时返回 [-π, π]

    Returns:
        Tuple[float, float]: (west, east)
    """
    span_a = _longitude_span(a)
    span_b = _longitude_span(b)
    from_a = max(span_a, (b.west - a.west) % _TWO_PI + span_b)
    from_b = max(span_b, (a.west - b.west) % _TWO_PI + span_a)

    west, span = (a.west, from_a) if from_a <= from_b else (b.west, from_b)
    if span >= _TWO_PI:
        return -math.pi, math.pi

    east = west + span
    if east > math.pi:
        east -= _TWO_PI
    return west, east


def _merge_regions(a: Region, b: Region) -> Region:
    # 空区域是合并的单位元；上下颠倒的有限区域仍参与合并
    if a.is_empty:
        return b
    if b.is_empty:
        return a

    if a.crosses_antimeridian or b.crosses_antimeridian:
        west, east = _merge_longitudes(a, b)
    else:
        west, east = min(a.west, b.west), max(a.east, b.east)

    return dataclasses.replace(
        a,
        west=west,
        south=min(a.south, b.south),
        east=east,
        north=max(a.north, b.north),
        min_height=min(a.min_height, b.min_height),
        max_height=max(a.max_height, b.max_height),
    )


def _merge_spheres(a: Sphere, b: Sphere) -> Sphere:
    center_a = np.array(a.center)
    center_b = np.array(b.center)
    offset = center_b - center_a
    distance = float(np.linalg.norm(offset))

    if distance + b.radius <= a.radius:
        return a
    if distance + a.radius <= b.radius:
        return b

    # 两球的最小外接球，球心位于两球心连线上
    radius = (distance + a.radius + b.radius) / 2.0
    center = center_a + offset * ((radius - a.radius) / distance)
    return dataclasses.replace(a, center=tuple(center.tolist()), radius=radius)


def _orthonormal_frame(box: Box) -> Optional[np.ndarray]:
    axes = box.axes()
    lengths = np.linalg.norm(axes, axis=1)
    if np.any(lengths <= _EPSILON):
        return None

    units = axes / lengths[:, np.newaxis]
    if not np.allclose(units @ units.T, np.eye(3), atol=1e-9):
        return None
    return units


def _same_frame(frame_a: np.ndarray, frame_b: np.ndarray) -> bool:
    # 每个轴方向都能在另一个坐标系中找到平行轴（顺序、正负号不限）
    alignment = np.abs(frame_a @ frame_b.T)
    return bool(np.allclose(alignment.max(axis=1), 1.0, atol=1e-9))


def _merge_boxes(a: Box, b: Box) -> Box:
    corners = np.vstack([a.corners(), b.corners()])

    frame_a = _orthonormal_frame(a)
    frame_b = _orthonormal_frame(b)
    if frame_a is not None and frame_b is not None and _same_frame(frame_a, frame_b):
        frame = frame_a
    else:
        # 朝向不一致时退化为世界坐标轴对齐的包围盒
        frame = np.eye(3)

    projected = corners @ frame.T
    low = projected.min(axis=0)
    high = projected.max(axis=0)

    center = ((low + high) / 2.0) @ frame
    halves = (high - low) / 2.0
    axes = halves[:, np.newaxis] * frame

    return dataclasses.replace(
        a,
        center=tuple(center.tolist()),
        x=tuple(axes[0].tolist()),
        y=tuple(axes[1].tolist()),
        z=tuple(axes[2].tolist()),
    )
