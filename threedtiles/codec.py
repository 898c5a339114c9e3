"""
tileset.json 编解码模块

负责在内存中的瓦片树与JSON文本之间转换：
- 解码时将content中的相对URI相对于文档路径解析，下游无需再次处理路径
- 编码结果确定（固定字段顺序），extensions/extras 原样保留
- transform 在JSON中按列主序存储
"""

import io
import json
import math
import os
import posixpath
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

import numpy as np

from .bounding_volume import Box, BoundingVolume, Region, Sphere
from .errors import MalformedDocument, MissingRequiredField, UnknownBoundingVolumeKind
from .payload import Payload, extensions_from_json, extensions_to_json
from .tile import Refinement, Tile, TileContent, is_absolute_uri
from .tileset import Asset, Property, Tileset

Source = Union[bytes, str, IO]
PathLike = Union[str, "os.PathLike[str]"]

_VOLUME_LENGTHS = {"box": 12, "region": 6, "sphere": 4}
_VOLUME_TYPES = {"box": Box, "region": Region, "sphere": Sphere}


def resolve_uri(base_path: str, uri: str) -> str:
    """
    将相对URI解析为相对于文档所在目录的路径

    Args:
        base_path: 文档自身的路径（如 "sub/tileset.json"）
        uri: content中的URI

    Returns:
        str: 规范化后的路径；绝对URI原样返回
    """
    if not uri or not base_path or is_absolute_uri(uri):
        return uri
    base_dir = posixpath.dirname(base_path.replace("\\", "/"))
    return posixpath.normpath(posixpath.join(base_dir, uri))


def rebase_uris(tileset: Tileset, prefix: str) -> None:
    """
    为瓦片树中所有相对content URI加上目录前缀（原地修改）

    解码后的URI相对于归档根目录，写到其他目录前需要重新定位

    Args:
        tileset: 待修改的tileset
        prefix: 从新文档目录到归档根目录的POSIX路径
    """
    prefix = prefix.replace("\\", "/")
    if not prefix or prefix == ".":
        return
    for tile in tileset.walk():
        if tile.content is not None and tile.content.uri and not tile.content.is_absolute:
            tile.content.uri = posixpath.normpath(posixpath.join(prefix, tile.content.uri))


# ---------------------------------------------------------------------------
# 解码
# ---------------------------------------------------------------------------

def _reject_constant(name: str) -> Any:
    raise MalformedDocument(f"不支持的数值常量: {name}")


def _load_json(data: Source) -> Any:
    if hasattr(data, "read"):
        data = data.read()
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedDocument(f"文档不是有效的UTF-8文本: {e}") from e
    try:
        return json.loads(data, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MalformedDocument(f"无效的JSON: {e}") from e


def _require(data: Dict[str, Any], key: str, location: str) -> Any:
    if key not in data:
        raise MissingRequiredField(key, location or "/")
    return data[key]


def _object(value: Any, location: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedDocument(f"应为对象，实际为 {type(value).__name__}", location)
    return value


def _number(value: Any, location: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedDocument(f"应为数值，实际为 {value!r}", location)
    value = float(value)
    if not math.isfinite(value):
        raise MalformedDocument(f"数值必须有限: {value}", location)
    return value


def _numbers(value: Any, count: int, location: str) -> List[float]:
    if not isinstance(value, list) or len(value) != count:
        actual = len(value) if isinstance(value, list) else type(value).__name__
        raise MalformedDocument(f"应为{count}个数值的数组，实际为 {actual}", location)
    return [_number(v, f"{location}/{i}") for i, v in enumerate(value)]


def _string(value: Any, location: str) -> str:
    if not isinstance(value, str):
        raise MalformedDocument(f"应为字符串，实际为 {value!r}", location)
    return value


def _string_list(value: Any, location: str) -> List[str]:
    if not isinstance(value, list):
        raise MalformedDocument("应为字符串数组", location)
    return [_string(v, f"{location}/{i}") for i, v in enumerate(value)]


def _common(data: Dict[str, Any], location: str) -> Dict[str, Any]:
    """解析 extensions/extras"""
    common: Dict[str, Any] = {}
    if "extensions" in data:
        common["extensions"] = extensions_from_json(
            _object(data["extensions"], f"{location}/extensions"))
    if "extras" in data:
        common["extras"] = Payload(data["extras"])
    return common


def _decode_volume(data: Any, location: str) -> BoundingVolume:
    data = _object(data, location)

    kinds = [kind for kind in _VOLUME_LENGTHS if kind in data]
    if not kinds:
        raise UnknownBoundingVolumeKind(
            f"包围体必须包含 box/region/sphere 之一，实际字段: {sorted(data.keys())}", location)
    if len(kinds) > 1:
        raise MalformedDocument(f"包围体只能包含一种类型，实际为: {kinds}", location)

    kind = kinds[0]
    values = _numbers(data[kind], _VOLUME_LENGTHS[kind], f"{location}/{kind}")
    try:
        return _VOLUME_TYPES[kind].from_values(values, **_common(data, location))
    except MalformedDocument:
        raise
    except ValueError as e:
        raise MalformedDocument(str(e), location) from e


def _decode_content(data: Any, base_path: str, location: str) -> TileContent:
    data = _object(data, location)

    # 3D Tiles 0.0 使用 url
    if "uri" in data:
        uri = _string(data["uri"], f"{location}/uri")
    elif "url" in data:
        uri = _string(data["url"], f"{location}/url")
    else:
        raise MissingRequiredField("uri", location)

    volume = None
    if "boundingVolume" in data:
        volume = _decode_volume(data["boundingVolume"], f"{location}/boundingVolume")

    return TileContent(
        uri=resolve_uri(base_path, uri),
        bounding_volume=volume,
        **_common(data, location)
    )


def _decode_tile(data: Any, base_path: str, location: str) -> Tile:
    data = _object(data, location)

    volume = _decode_volume(_require(data, "boundingVolume", location),
                            f"{location}/boundingVolume")
    geometric_error = _number(_require(data, "geometricError", location),
                              f"{location}/geometricError")

    viewer_request_volume = None
    if "viewerRequestVolume" in data:
        viewer_request_volume = _decode_volume(data["viewerRequestVolume"],
                                               f"{location}/viewerRequestVolume")

    refine = None
    if "refine" in data:
        value = _string(data["refine"], f"{location}/refine")
        try:
            refine = Refinement(value.upper())
        except ValueError as e:
            raise MalformedDocument(f"无效的refine值: {value}", f"{location}/refine") from e

    transform = None
    if "transform" in data:
        values = _numbers(data["transform"], 16, f"{location}/transform")
        transform = np.array(values, dtype=np.float64).reshape((4, 4), order="F")

    content = None
    if "content" in data:
        content = _decode_content(data["content"], base_path, f"{location}/content")

    children = []
    if "children" in data:
        if not isinstance(data["children"], list):
            raise MalformedDocument("children 应为数组", f"{location}/children")
        children = [
            _decode_tile(child, base_path, f"{location}/children/{i}")
            for i, child in enumerate(data["children"])
        ]

    return Tile(
        bounding_volume=volume,
        geometric_error=geometric_error,
        viewer_request_volume=viewer_request_volume,
        refine=refine,
        transform=transform,
        content=content,
        children=children,
        **_common(data, location)
    )


def _decode_asset(data: Any, location: str) -> Asset:
    data = _object(data, location)
    version = _string(_require(data, "version", location), f"{location}/version")
    tileset_version = None
    if "tilesetVersion" in data:
        tileset_version = _string(data["tilesetVersion"], f"{location}/tilesetVersion")
    return Asset(version=version, tileset_version=tileset_version, **_common(data, location))


def _decode_properties(data: Any, location: str) -> Dict[str, Property]:
    data = _object(data, location)
    properties = {}
    for name, value in data.items():
        prop_location = f"{location}/{name}"
        value = _object(value, prop_location)
        properties[name] = Property(
            minimum=_number(_require(value, "minimum", prop_location), f"{prop_location}/minimum"),
            maximum=_number(_require(value, "maximum", prop_location), f"{prop_location}/maximum"),
            **_common(value, prop_location)
        )
    return properties


def from_dict(document: Any, base_path: str = "") -> Tileset:
    """从已解析的JSON对象构造Tileset"""
    document = _object(document, "/")

    asset = _decode_asset(_require(document, "asset", ""), "/asset")
    geometric_error = _number(_require(document, "geometricError", ""), "/geometricError")

    properties = {}
    if "properties" in document:
        properties = _decode_properties(document["properties"], "/properties")

    root = None
    if "root" in document:
        root = _decode_tile(document["root"], base_path, "/root")

    extensions_used = []
    if "extensionsUsed" in document:
        extensions_used = _string_list(document["extensionsUsed"], "/extensionsUsed")
    extensions_required = []
    if "extensionsRequired" in document:
        extensions_required = _string_list(document["extensionsRequired"], "/extensionsRequired")

    return Tileset(
        asset=asset,
        properties=properties,
        geometric_error=geometric_error,
        root=root,
        extensions_used=extensions_used,
        extensions_required=extensions_required,
        **_common(document, "")
    )


def decode(data: Source, base_path: str = "") -> Tileset:
    """
    解析tileset文档

    Args:
        data: 文档内容（bytes、str或可读流）
        base_path: 文档路径，用于解析content中的相对URI

    Returns:
        Tileset: 解析结果

    Raises:
        FormatError: 文档格式错误（MalformedDocument / UnknownBoundingVolumeKind / MissingRequiredField）
    """
    return from_dict(_load_json(data), base_path)


def read(source: Union[PathLike, IO], base_path: Optional[str] = None) -> Tileset:
    """从文件路径或流读取tileset；路径读取时默认以文件路径作为base_path"""
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            return decode(f, str(source) if base_path is None else base_path)
    return decode(source, base_path or "")


# ---------------------------------------------------------------------------
# 编码
# ---------------------------------------------------------------------------

def _encode_common(obj: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    if obj.extensions:
        data["extensions"] = extensions_to_json(obj.extensions)
    if obj.extras is not None:
        data["extras"] = obj.extras.to_json()
    return data


def _encode_volume(volume: BoundingVolume) -> Dict[str, Any]:
    if isinstance(volume, Region) and volume.is_empty:
        raise MalformedDocument("空region没有有限的JSON表示，无法编码")
    return _encode_common(volume, {volume.kind.value: list(volume.values())})


def _encode_content(content: TileContent) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if content.bounding_volume is not None:
        data["boundingVolume"] = _encode_volume(content.bounding_volume)
    data["uri"] = content.uri
    return _encode_common(content, data)


def _encode_tile(tile: Tile) -> Dict[str, Any]:
    data: Dict[str, Any] = {"boundingVolume": _encode_volume(tile.bounding_volume)}
    if tile.viewer_request_volume is not None:
        data["viewerRequestVolume"] = _encode_volume(tile.viewer_request_volume)
    data["geometricError"] = float(tile.geometric_error)
    if tile.refine is not None:
        data["refine"] = tile.refine.value
    if tile.transform is not None:
        # 列主序
        data["transform"] = np.asarray(tile.transform, dtype=np.float64).flatten(order="F").tolist()
    if tile.content is not None:
        data["content"] = _encode_content(tile.content)
    if tile.children:
        data["children"] = [_encode_tile(child) for child in tile.children]
    return _encode_common(tile, data)


def to_dict(tileset: Tileset) -> Dict[str, Any]:
    """将Tileset转换为JSON对象"""
    asset: Dict[str, Any] = {"version": tileset.asset.version}
    if tileset.asset.tileset_version is not None:
        asset["tilesetVersion"] = tileset.asset.tileset_version

    document: Dict[str, Any] = {"asset": _encode_common(tileset.asset, asset)}
    if tileset.properties:
        document["properties"] = {
            name: _encode_common(prop, {"minimum": float(prop.minimum),
                                        "maximum": float(prop.maximum)})
            for name, prop in tileset.properties.items()
        }
    document["geometricError"] = float(tileset.geometric_error)
    if tileset.root is not None:
        document["root"] = _encode_tile(tileset.root)
    if tileset.extensions_used:
        document["extensionsUsed"] = list(tileset.extensions_used)
    if tileset.extensions_required:
        document["extensionsRequired"] = list(tileset.extensions_required)
    return _encode_common(tileset, document)


def encode(tileset: Tileset, indent: Optional[int] = None) -> bytes:
    """
    将Tileset编码为UTF-8 JSON

    Args:
        tileset: 待编码的tileset
        indent: 缩进（None为紧凑格式）

    Returns:
        bytes: 编码结果
    """
    try:
        text = json.dumps(to_dict(tileset), indent=indent, ensure_ascii=False, allow_nan=False)
    except ValueError as e:
        if isinstance(e, MalformedDocument):
            raise
        raise MalformedDocument(f"无法编码非有限数值: {e}") from e
    return text.encode("utf-8")


def write(target: Union[PathLike, IO], tileset: Tileset, indent: Optional[int] = 2) -> None:
    """将Tileset写入文件路径或流"""
    data = encode(tileset, indent=indent)
    if isinstance(target, (str, os.PathLike)):
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    elif isinstance(target, io.TextIOBase):
        target.write(data.decode("utf-8"))
    else:
        target.write(data)
