"""
3D Tiles tileset 数据模型

提供瓦片树、包围体合并、tileset.json 编解码，以及外部tileset的并发解析
"""

__version__ = "1.0.0"

from .errors import (
    ThreeDTilesError,
    FormatError,
    MalformedDocument,
    UnknownBoundingVolumeKind,
    MissingRequiredField,
    TypeMismatch,
    TileReferenceError,
    ReferenceNotFound,
    ReferenceIOError,
)
from .payload import Payload, PayloadKind
from .bounding_volume import BoundingVolume, Box, Region, Sphere, VolumeKind, merge, update
from .tile import Refinement, Tile, TileContent, is_absolute_uri
from .tileset import Asset, Property, Tileset
from .codec import decode, encode, read, write, to_dict, from_dict, resolve_uri, rebase_uris
from .archive import Archive, DirectoryArchive, ZipArchive, MemoryArchive, open_archive
from .config import Config, ResolverConfig, ComparisonConfig
from .resolver import (
    Resolver,
    ResolutionResult,
    ResolutionFailure,
    PolicyViolation,
    FailureKind,
    NodeState,
    node_state,
    resolve,
    splice,
)
from .mesh import B3dm, MeshLoader, read_b3dm, load_mesh, yup2zup
from .reader import TilesetArchive
from .validator import TilesetValidator, ValidationResult, ValidationIssue, IssueSeverity
from .comparator import TilesetComparator, ComparisonReport, DiffItem, ComparisonResult

__all__ = [
    # Errors
    "ThreeDTilesError",
    "FormatError",
    "MalformedDocument",
    "UnknownBoundingVolumeKind",
    "MissingRequiredField",
    "TypeMismatch",
    "TileReferenceError",
    "ReferenceNotFound",
    "ReferenceIOError",
    # Model
    "Payload",
    "PayloadKind",
    "BoundingVolume",
    "Box",
    "Region",
    "Sphere",
    "VolumeKind",
    "merge",
    "update",
    "Refinement",
    "Tile",
    "TileContent",
    "is_absolute_uri",
    "Asset",
    "Property",
    "Tileset",
    # Codec
    "decode",
    "encode",
    "read",
    "write",
    "to_dict",
    "from_dict",
    "resolve_uri",
    "rebase_uris",
    # Archive
    "Archive",
    "DirectoryArchive",
    "ZipArchive",
    "MemoryArchive",
    "open_archive",
    "TilesetArchive",
    # Config
    "Config",
    "ResolverConfig",
    "ComparisonConfig",
    # Resolver
    "Resolver",
    "ResolutionResult",
    "ResolutionFailure",
    "PolicyViolation",
    "FailureKind",
    "NodeState",
    "node_state",
    "resolve",
    "splice",
    # Mesh
    "B3dm",
    "MeshLoader",
    "read_b3dm",
    "load_mesh",
    "yup2zup",
    # Validation / comparison
    "TilesetValidator",
    "ValidationResult",
    "ValidationIssue",
    "IssueSeverity",
    "TilesetComparator",
    "ComparisonReport",
    "DiffItem",
    "ComparisonResult",
]
