"""
瓦片几何内容加载模块

解析 b3dm 容器（或直接的 GLB），取出 RTC_CENTER 并组合变换后交给外部网格解码器

B3DM 文件结构:
- Header (28 bytes): magic (4) + version (4) + byteLength (4) +
                   featureTableJSONByteLength (4) + featureTableBinaryByteLength (4) +
                   batchTableJSONByteLength (4) + batchTableBinaryByteLength (4)
- Feature Table JSON
- Feature Table Binary
- Batch Table JSON
- Batch Table Binary
- glTF Binary
"""

import json
import struct
from dataclasses import dataclass, field
from typing import IO, Any, Dict, Optional, Protocol

import numpy as np

from .archive import Archive
from .errors import MalformedDocument

B3DM_MAGIC = b"b3dm"
GLB_MAGIC = b"glTF"
B3DM_HEADER = struct.Struct("<4sIIIIII")


@dataclass
class B3dm:
    """b3dm 容器内容"""
    version: int = 1
    feature_table: Dict[str, Any] = field(default_factory=dict)
    feature_table_binary: bytes = b""
    batch_table: Dict[str, Any] = field(default_factory=dict)
    batch_table_binary: bytes = b""
    gltf: bytes = b""

    @property
    def rtc_center(self) -> np.ndarray:
        """RTC_CENTER，未定义时为零向量"""
        value = self.feature_table.get("RTC_CENTER")
        if value is None:
            return np.zeros(3)
        if isinstance(value, dict):
            # 引用二进制表中的 float32[3]
            offset = int(value.get("byteOffset", 0))
            return np.array(struct.unpack_from("<3f", self.feature_table_binary, offset),
                            dtype=np.float64)
        return np.array(value, dtype=np.float64).reshape(3)


class MeshLoader(Protocol):
    """外部网格解码器接口"""

    def decode(self, gltf: bytes, trafo: np.ndarray) -> Any:
        ...


def _json_chunk(data: bytes, path: str, name: str) -> Dict[str, Any]:
    try:
        text = data.decode("utf-8").rstrip(" \x00")
    except UnicodeDecodeError as e:
        raise MalformedDocument(f"无效的{name}: {e}", path) from e
    # 只有对齐填充
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocument(f"无效的{name}: {e}", path) from e


def read_b3dm(stream: IO[bytes], path: str = "") -> B3dm:
    """
    读取 b3dm 文件；GLB 文件作为无表格的 b3dm 返回

    Args:
        stream: 二进制流
        path: 文件路径（用于错误信息）

    Returns:
        B3dm: 解析结果

    Raises:
        MalformedDocument: 文件头无效或长度不足
    """
    data = stream.read()

    if data[:4] == GLB_MAGIC:
        return B3dm(gltf=data)

    if len(data) < B3DM_HEADER.size:
        raise MalformedDocument(f"b3dm 文件头不完整: {len(data)} bytes", path)

    (magic, version, byte_length, ft_json_len, ft_bin_len,
     bt_json_len, bt_bin_len) = B3DM_HEADER.unpack_from(data)

    if magic != B3DM_MAGIC:
        raise MalformedDocument(f"无效的 B3DM magic number: {magic!r}", path)
    if byte_length > len(data):
        raise MalformedDocument(f"b3dm 长度不足: 声明 {byte_length}，实际 {len(data)}", path)

    offset = B3DM_HEADER.size
    sections = []
    for length in (ft_json_len, ft_bin_len, bt_json_len, bt_bin_len):
        sections.append(data[offset:offset + length])
        offset += length

    return B3dm(
        version=version,
        feature_table=_json_chunk(sections[0], path, "Feature Table JSON"),
        feature_table_binary=sections[1],
        batch_table=_json_chunk(sections[2], path, "Batch Table JSON"),
        batch_table_binary=sections[3],
        gltf=data[offset:byte_length]
    )


def yup2zup() -> np.ndarray:
    """glTF的Y轴向上坐标系转换为Z轴向上"""
    return np.array([
        [1.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, -1.0, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])


def translation(offset) -> np.ndarray:
    matrix = np.eye(4)
    matrix[0:3, 3] = np.asarray(offset, dtype=np.float64)
    return matrix


def load_mesh(archive: Archive, loader: MeshLoader, path: str,
              trafo: Optional[np.ndarray] = None) -> Any:
    """
    加载瓦片几何内容并交给解码器

    组合变换为 trafo x RTC平移 x Y-up转Z-up

    Args:
        archive: 文档来源
        loader: 网格解码器
        path: 内容路径（归档内）
        trafo: 调用方的变换（瓦片变换链），默认为单位矩阵

    Returns:
        解码器的返回值
    """
    with archive.open_stream(path) as stream:
        model = read_b3dm(stream, path)

    combined = np.eye(4) if trafo is None else np.asarray(trafo, dtype=np.float64)
    combined = combined @ translation(model.rtc_center)
    combined = combined @ yup2zup()

    return loader.decode(model.gltf, combined)
