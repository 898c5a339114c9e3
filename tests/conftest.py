"""
测试公共工具：在临时目录或内存中构造 tileset 文档
"""

import json
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def box(center=(0, 0, 0), half=(1, 1, 1)) -> Dict[str, Any]:
    cx, cy, cz = center
    hx, hy, hz = half
    return {"box": [cx, cy, cz, hx, 0, 0, 0, hy, 0, 0, 0, hz]}


def tile_doc(
    error: float = 10.0,
    uri: Optional[str] = None,
    children: Optional[List[Dict[str, Any]]] = None,
    volume: Optional[Dict[str, Any]] = None,
    **extra
) -> Dict[str, Any]:
    """构造瓦片JSON"""
    tile: Dict[str, Any] = {
        "boundingVolume": volume or box(),
        "geometricError": error,
    }
    if uri is not None:
        tile["content"] = {"uri": uri}
    if children:
        tile["children"] = children
    tile.update(extra)
    return tile


def tileset_doc(root: Optional[Dict[str, Any]] = None, error: float = 500.0, **extra) -> Dict[str, Any]:
    """构造tileset JSON"""
    document: Dict[str, Any] = {
        "asset": {"version": "1.0", "tilesetVersion": "1.0.0"},
        "geometricError": error,
    }
    if root is not None:
        document["root"] = root
    document.update(extra)
    return document


def dumps(document: Dict[str, Any]) -> bytes:
    return json.dumps(document).encode("utf-8")


def write_json(path: Path, document: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2)
    return path


def make_b3dm(gltf_data: bytes = b"glTF-payload", feature_table: Optional[Dict[str, Any]] = None) -> bytes:
    """构造 B3DM 文件内容"""
    ft_json = json.dumps(feature_table).encode("utf-8") if feature_table else b""
    # 8字节对齐
    ft_json += b" " * ((8 - (28 + len(ft_json)) % 8) % 8)

    header = struct.pack('<4sIIIIII',
                         b'b3dm',
                         1,
                         28 + len(ft_json) + len(gltf_data),
                         len(ft_json),
                         0,
                         0,
                         0)
    return header + ft_json + gltf_data


@pytest.fixture
def external_dir(tmp_path: Path) -> Path:
    """两级tileset：根瓦片的唯一子瓦片引用 child.json，后者的根瓦片有两个叶子"""
    write_json(tmp_path / "tileset.json", tileset_doc(
        tile_doc(100.0, refine="ADD", children=[
            tile_doc(50.0, uri="child.json"),
        ])
    ))
    write_json(tmp_path / "child.json", tileset_doc(
        tile_doc(50.0, refine="REPLACE", children=[
            tile_doc(5.0, uri="a.b3dm", volume=box((-1, 0, 0))),
            tile_doc(5.0, uri="b.b3dm", volume=box((1, 0, 0))),
        ]),
        extensionsUsed=["EXT_child"]
    ))
    (tmp_path / "a.b3dm").write_bytes(make_b3dm())
    (tmp_path / "b.b3dm").write_bytes(make_b3dm())
    return tmp_path
