"""
tileset归档读取模块

打开归档、读取默认文档、按需内联外部tileset，并提供几何内容加载入口
"""

import logging
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

import numpy as np

from .archive import Archive, open_archive
from .codec import decode
from .config import ResolverConfig
from .mesh import MeshLoader, load_mesh
from .resolver import ResolutionResult, Resolver
from .tileset import Tileset

logger = logging.getLogger(__name__)


class TilesetArchive:
    """tileset归档"""

    def __init__(
        self,
        root: Union[str, Path],
        include_external: Optional[bool] = None,
        config: Optional[ResolverConfig] = None
    ):
        """
        打开归档并读取tileset

        Args:
            root: 目录、zip文件、JSON文件或 "archive#document" 形式的路径
            include_external: 是否内联外部tileset（默认取配置）
            config: 解析配置
        """
        self.config = config or ResolverConfig()
        archive, document = open_archive(root, self.config.hint)
        self._init(archive, document, include_external)

    @classmethod
    def from_archive(
        cls,
        archive: Archive,
        include_external: Optional[bool] = None,
        config: Optional[ResolverConfig] = None
    ) -> "TilesetArchive":
        """从已打开的归档构造；归档归实例所有，构造失败时关闭"""
        instance = cls.__new__(cls)
        instance.config = config or ResolverConfig()
        try:
            document = archive.apply_hint(instance.config.hint)
        except Exception:
            archive.close()
            raise
        instance._init(archive, document, include_external)
        return instance

    def _init(self, archive: Archive, document: str, include_external: Optional[bool]) -> None:
        if include_external is None:
            include_external = self.config.include_external

        self.archive = archive
        self.document = document
        self.resolution: Optional[ResolutionResult] = None
        try:
            self.tileset = self.read_tileset(document, include_external)
        except Exception:
            archive.close()
            raise
        self.tree_size = self.tileset.tree_size()
        logger.info("已加载 %s: %d 个瓦片", document, self.tree_size)

    def istream(self, path: str) -> BinaryIO:
        return self.archive.open_stream(path)

    def read_tileset(self, path: str, include_external: bool = False) -> Tileset:
        """
        读取归档中的tileset文档

        Args:
            path: 文档路径
            include_external: 是否内联外部tileset；结果记录在 self.resolution

        Returns:
            Tileset: 读取结果
        """
        with self.istream(path) as stream:
            tileset = decode(stream, base_path=path)

        if include_external:
            self.resolution = Resolver(self.archive, self.config).resolve(tileset, document=path)
        return tileset

    def load_mesh(self, loader: MeshLoader, path: str,
                  trafo: Optional[np.ndarray] = None) -> Any:
        return load_mesh(self.archive, loader, path, trafo)

    def close(self) -> None:
        self.archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        return f"TilesetArchive(archive={self.archive!r}, document={self.document})"
