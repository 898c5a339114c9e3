"""
归档读取模块

为解析器提供只读、可并发访问的文档来源：
- DirectoryArchive: 普通目录
- ZipArchive: zip压缩包（成员读取加锁）
- MemoryArchive: 内存中的文件表

缺失的文档抛出 ReferenceNotFound，读取失败抛出 ReferenceIOError
"""

import io
import logging
import posixpath
import threading
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import ReferenceIOError, ReferenceNotFound

logger = logging.getLogger(__name__)

DEFAULT_HINT = "tileset.json"
INLINE_HINT_SEPARATOR = "#"


def normalize_path(path: str) -> str:
    """
    规范化归档内路径

    Raises:
        ReferenceNotFound: 路径超出归档根目录
    """
    normalized = posixpath.normpath(str(path).replace("\\", "/").lstrip("/"))
    if normalized == ".." or normalized.startswith("../"):
        raise ReferenceNotFound(str(path), "路径超出归档范围")
    return normalized


class Archive(ABC):
    """只读归档基类"""

    def __init__(self, hint: str = DEFAULT_HINT):
        self.hint = hint
        self._used_hint: Optional[str] = None

    @property
    def used_hint(self) -> Optional[str]:
        """apply_hint() 实际选中的文档路径"""
        return self._used_hint

    @abstractmethod
    def _read(self, path: str) -> bytes:
        """读取规范化后的路径"""

    @abstractmethod
    def list_files(self) -> Iterable[str]:
        """列出归档内所有文件（POSIX相对路径）"""

    def exists(self, path: str) -> bool:
        try:
            normalized = normalize_path(path)
        except ReferenceNotFound:
            return False
        return normalized in set(self.list_files())

    def read_bytes(self, path: str) -> bytes:
        normalized = normalize_path(path)
        logger.debug("读取归档文件: %s", normalized)
        return self._read(normalized)

    def open_stream(self, path: str) -> BinaryIO:
        return io.BytesIO(self.read_bytes(path))

    def apply_hint(self, hint: Optional[str] = None) -> str:
        """
        定位默认文档

        优先使用根目录下的同名文件，否则选择层级最浅的同名文件

        Returns:
            str: 文档在归档内的路径
        """
        hint = hint or self.hint
        if self.exists(hint):
            self._used_hint = normalize_path(hint)
            return self._used_hint

        name = posixpath.basename(hint)
        candidates = sorted(
            (p for p in self.list_files() if posixpath.basename(p) == name),
            key=lambda p: (p.count("/"), p)
        )
        if not candidates:
            raise ReferenceNotFound(hint, "归档中找不到默认文档")

        self._used_hint = candidates[0]
        logger.debug("默认文档 %s 位于 %s", hint, self._used_hint)
        return self._used_hint

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class DirectoryArchive(Archive):
    """目录归档（无状态，线程安全）"""

    def __init__(self, root: Union[str, Path], hint: str = DEFAULT_HINT):
        super().__init__(hint)
        self.root = Path(root)

    def _read(self, path: str) -> bytes:
        full_path = self.root / path
        try:
            return full_path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise ReferenceNotFound(path, str(e)) from e
        except OSError as e:
            raise ReferenceIOError(path, str(e)) from e

    def exists(self, path: str) -> bool:
        try:
            return (self.root / normalize_path(path)).is_file()
        except ReferenceNotFound:
            return False

    def list_files(self) -> Iterable[str]:
        return sorted(p.relative_to(self.root).as_posix()
                      for p in self.root.rglob("*") if p.is_file())

    def __repr__(self) -> str:
        return f"DirectoryArchive(root={self.root})"


class ZipArchive(Archive):
    """zip归档"""

    def __init__(self, path: Union[str, Path], hint: str = DEFAULT_HINT):
        super().__init__(hint)
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self._zip = zipfile.ZipFile(self.path)
        except FileNotFoundError as e:
            raise ReferenceNotFound(str(path), str(e)) from e
        except (zipfile.BadZipFile, OSError) as e:
            raise ReferenceIOError(str(path), str(e)) from e
        self._names = [name for name in self._zip.namelist() if not name.endswith("/")]

    def _read(self, path: str) -> bytes:
        with self._lock:
            try:
                return self._zip.read(path)
            except KeyError as e:
                raise ReferenceNotFound(path, "zip中不存在该成员") from e
            except (zipfile.BadZipFile, OSError) as e:
                raise ReferenceIOError(path, str(e)) from e

    def list_files(self) -> Iterable[str]:
        return list(self._names)

    def close(self) -> None:
        self._zip.close()

    def __repr__(self) -> str:
        return f"ZipArchive(path={self.path})"


class MemoryArchive(Archive):
    """内存归档（只读，线程安全）"""

    def __init__(self, files: Mapping[str, Union[bytes, str]], hint: str = DEFAULT_HINT):
        super().__init__(hint)
        self._files = {
            normalize_path(name): data.encode("utf-8") if isinstance(data, str) else bytes(data)
            for name, data in files.items()
        }

    def _read(self, path: str) -> bytes:
        try:
            return self._files[path]
        except KeyError as e:
            raise ReferenceNotFound(path) from e

    def list_files(self) -> List[str]:
        return sorted(self._files)

    def __repr__(self) -> str:
        return f"MemoryArchive(files={len(self._files)})"


def open_archive(path: Union[str, Path], hint: str = DEFAULT_HINT) -> Tuple[Archive, str]:
    """
    打开归档并定位tileset文档

    支持目录、zip文件、单个JSON文件，以及 "archive.zip#inner/tileset.json" 形式的内联文档名

    Args:
        path: 归档路径
        hint: 默认文档名

    Returns:
        Tuple[Archive, str]: 归档对象与文档路径
    """
    path = str(path)
    inline = None
    if INLINE_HINT_SEPARATOR in path:
        path, inline = path.split(INLINE_HINT_SEPARATOR, 1)

    location = Path(path)
    if location.is_dir():
        archive: Archive = DirectoryArchive(location, hint)
    elif location.is_file() and zipfile.is_zipfile(location):
        archive = ZipArchive(location, hint)
    elif location.is_file():
        archive = DirectoryArchive(location.parent, location.name)
    else:
        raise ReferenceNotFound(path, "归档不存在")

    try:
        if inline:
            if not archive.exists(inline):
                raise ReferenceNotFound(inline, "归档中找不到指定文档")
            document = archive.apply_hint(inline)
        else:
            document = archive.apply_hint()
    except Exception:
        archive.close()
        raise

    logger.debug("打开归档 %r，文档: %s", archive, document)
    return archive, document
