"""
外部tileset解析模块

深度优先遍历瓦片树，将引用其他tileset文档的叶子瓦片替换为被引用文档的内容：
- 工作线程只负责读取和解码外部文档，不访问瓦片树
- 协调线程独占瓦片树，负责拼接结果并提交新发现的引用
- 单个节点的格式错误或读取失败只记录，不影响其他节点
- 绝对URI不读取，仅记录为策略跳过
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .archive import Archive, normalize_path
from .codec import decode
from .config import ResolverConfig
from .errors import FormatError, MissingRequiredField, TileReferenceError
from .tile import DEFAULT_TILESET_SUFFIXES, Tile
from .tileset import Tileset

logger = logging.getLogger(__name__)


class NodeState(Enum):
    """节点解析状态"""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    TERMINAL = "terminal"


class FailureKind(Enum):
    """解析失败类型"""
    FORMAT = "format"
    REFERENCE = "reference"
    CYCLE = "cycle"
    DEPTH = "depth"


def _location(path: Tuple[int, ...]) -> str:
    return "/root" + "".join(f"/children/{index}" for index in path)


def node_state(tile: Tile, suffixes: Sequence[str] = DEFAULT_TILESET_SUFFIXES) -> NodeState:
    """未经解析器处理的瓦片状态：UNRESOLVED 或 TERMINAL"""
    if tile.has_external_reference(suffixes):
        return NodeState.UNRESOLVED
    return NodeState.TERMINAL


@dataclass
class ResolutionFailure:
    """单个节点的解析失败记录"""
    location: str
    uri: str
    kind: FailureKind
    message: str
    path: Tuple[int, ...] = ()


@dataclass
class PolicyViolation:
    """按策略未解析的绝对URI引用（不是错误）"""
    location: str
    uri: str
    reason: str = "不读取外部归档中的数据"
    path: Tuple[int, ...] = ()


@dataclass
class ResolutionResult:
    """解析结果"""
    tileset: Tileset
    failures: List[ResolutionFailure] = field(default_factory=list)
    skipped: List[PolicyViolation] = field(default_factory=list)
    resolved: int = 0
    duration_ms: int = 0
    resolved_tiles: Set[int] = field(default_factory=set, repr=False)
    suffixes: Tuple[str, ...] = DEFAULT_TILESET_SUFFIXES

    @property
    def complete(self) -> bool:
        """除策略跳过外是否全部解析成功"""
        return not self.failures

    def state(self, tile: Tile) -> NodeState:
        """解析后瓦片的状态"""
        if id(tile) in self.resolved_tiles:
            return NodeState.RESOLVED
        return node_state(tile, self.suffixes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": self.resolved,
            "complete": self.complete,
            "duration_ms": self.duration_ms,
            "tree_size": self.tileset.tree_size(),
            "failures": [
                {
                    "location": failure.location,
                    "uri": failure.uri,
                    "kind": failure.kind.value,
                    "message": failure.message,
                }
                for failure in self.failures
            ],
            "skipped": [
                {"location": skip.location, "uri": skip.uri, "reason": skip.reason}
                for skip in self.skipped
            ],
        }


@dataclass
class _Reference:
    """待解析的引用；tile 由持有该引用的任务独占"""
    tile: Tile
    path: Tuple[int, ...]
    chain: Tuple[str, ...]
    # 拼接会替换 tile.content，引用的URI必须在提交时固定
    uri: str = ""

    def __post_init__(self):
        if not self.uri:
            self.uri = self.tile.content.uri

    @property
    def location(self) -> str:
        return _location(self.path)


class _Run:
    """一次解析过程的状态，只在协调线程中修改"""

    def __init__(self, resolver: "Resolver", tileset: Tileset):
        self.resolver = resolver
        self.config = resolver.config
        self.tileset = tileset
        self.failures: List[ResolutionFailure] = []
        self.skipped: List[PolicyViolation] = []
        self.resolved: Set[int] = set()
        self.claimed: Set[int] = set()
        self.included: List[Tuple[Tuple[int, ...], Tileset]] = []
        self.resolved_count = 0

    def scan(self, tile: Tile, path: Tuple[int, ...], chain: Tuple[str, ...]) -> List[_Reference]:
        """前序遍历子树，收集待解析的引用"""
        suffixes = self.config.tileset_suffixes
        references = []
        stack = [(tile, path)]
        while stack:
            node, node_path = stack.pop()
            if node.children:
                for index in reversed(range(len(node.children))):
                    stack.append((node.children[index], node_path + (index,)))
            elif node.content is not None and node.content.references_tileset(suffixes):
                if node.content.is_absolute:
                    logger.warning("跳过绝对URI引用: %s (%s)", node.content.uri, _location(node_path))
                    self.skipped.append(PolicyViolation(
                        location=_location(node_path),
                        uri=node.content.uri,
                        path=node_path
                    ))
                else:
                    references.append(_Reference(node, node_path, chain))
        return references

    def fail(self, reference: _Reference, kind: FailureKind, message: str) -> None:
        logger.warning("解析失败 [%s] %s: %s", kind.value, reference.location, message)
        self.failures.append(ResolutionFailure(
            location=reference.location,
            uri=reference.uri,
            kind=kind,
            message=message,
            path=reference.path
        ))

    def admit(self, reference: _Reference) -> bool:
        """检查环引用和深度限制，并独占该节点"""
        try:
            document = normalize_path(reference.uri)
        except TileReferenceError as e:
            self.fail(reference, FailureKind.REFERENCE, str(e))
            return False

        if document in reference.chain:
            self.fail(reference, FailureKind.CYCLE,
                      f"循环引用: {' -> '.join(reference.chain + (document,))}")
            return False
        if len(reference.chain) >= self.config.max_depth:
            self.fail(reference, FailureKind.DEPTH,
                      f"引用层级超过上限 {self.config.max_depth}")
            return False

        key = id(reference.tile)
        if key in self.claimed:
            raise RuntimeError(f"瓦片已被其他解析任务占用: {reference.location}")
        self.claimed.add(key)
        return True

    def finish(self, reference: _Reference, included: Optional[Tileset],
               error: Optional[Exception]) -> List[_Reference]:
        """
        处理一个引用的读取结果

        Returns:
            List[_Reference]: 拼接后子树中新发现的引用
        """
        uri = reference.uri
        self.claimed.discard(id(reference.tile))

        if error is None and included.root is None:
            error = MissingRequiredField("root", uri)

        if error is not None:
            kind = FailureKind.FORMAT if isinstance(error, FormatError) else FailureKind.REFERENCE
            self.fail(reference, kind, str(error))
            return []

        chain = reference.chain + (normalize_path(uri),)
        splice(reference.tile, included.root)
        self.included.append((reference.path, included))

        self.resolved.add(id(reference.tile))
        self.resolved_count += 1
        logger.debug("已拼接 %s -> %s", uri, reference.location)

        return self.scan(reference.tile, reference.path, chain)

    def merge_included_metadata(self) -> None:
        """按文档顺序合并被引用文档的元数据，与任务完成顺序无关"""
        if not self.config.merge_metadata:
            return
        for _, included in sorted(self.included, key=lambda item: item[0]):
            self.tileset.merge_metadata(included)


def splice(tile: Tile, root: Tile) -> None:
    """
    将被引用文档的根瓦片拼接到引用它的瓦片上

    引用瓦片保留自身的包围体、几何误差、变换等字段，只替换content并接管子瓦片；
    被引用根瓦片带有非单位变换时作为唯一子瓦片挂接，以保留其坐标系
    """
    if root.transform is not None and not np.allclose(root.transform, np.eye(4)):
        tile.content = None
        tile.children = [root]
        return

    tile.content = root.content
    tile.children = root.children
    if tile.refine is None:
        tile.refine = root.refine


class Resolver:
    """外部tileset解析器"""

    def __init__(self, archive: Archive, config: Optional[ResolverConfig] = None):
        """
        初始化解析器

        Args:
            archive: 文档来源（必须支持并发读取）
            config: 解析配置
        """
        self.archive = archive
        self.config = config or ResolverConfig()

    def resolve(self, tileset: Tileset, document: Optional[str] = None) -> ResolutionResult:
        """
        解析tileset中所有可解析的外部引用（原地修改瓦片树）

        Args:
            tileset: 待解析的tileset
            document: tileset自身在归档中的路径，用于检测自引用

        Returns:
            ResolutionResult: 解析后的tileset及失败/跳过记录
        """
        start_time = time.time()
        run = _Run(self, tileset)

        if tileset.root is not None:
            chain = (normalize_path(document),) if document else ()
            references = run.scan(tileset.root, (), chain)
            if self.config.parallel:
                self._resolve_parallel(run, references)
            else:
                self._resolve_sequential(run, references)
            run.merge_included_metadata()

        run.failures.sort(key=lambda failure: (failure.path, failure.uri))
        run.skipped.sort(key=lambda skip: (skip.path, skip.uri))

        result = ResolutionResult(
            tileset=tileset,
            failures=run.failures,
            skipped=run.skipped,
            resolved=run.resolved_count,
            duration_ms=int((time.time() - start_time) * 1000),
            resolved_tiles=run.resolved,
            suffixes=tuple(self.config.tileset_suffixes)
        )
        logger.info("外部tileset解析完成: 已解析 %d，失败 %d，跳过 %d",
                    result.resolved, len(result.failures), len(result.skipped))
        return result

    def _fetch(self, uri: str) -> Tileset:
        """读取并解码外部文档（在工作线程中执行，不访问瓦片树）"""
        logger.debug("读取外部tileset: %s", uri)
        with self.archive.open_stream(uri) as stream:
            return decode(stream, base_path=normalize_path(uri))

    def _resolve_sequential(self, run: _Run, references: List[_Reference]) -> None:
        """在调用线程中顺序解析"""
        stack = list(reversed(references))
        while stack:
            reference = stack.pop()
            if not run.admit(reference):
                continue

            included, error = None, None
            try:
                included = self._fetch(reference.uri)
            except (FormatError, TileReferenceError) as e:
                error = e

            stack.extend(reversed(run.finish(reference, included, error)))

    def _resolve_parallel(self, run: _Run, references: List[_Reference]) -> None:
        """并发读取，等待所有（包括递归产生的）任务完成后返回"""
        pending: Dict[Future, _Reference] = {}

        with ThreadPoolExecutor(max_workers=self.config.max_workers,
                                thread_name_prefix="threedtiles-resolve") as executor:

            def submit(new_references: List[_Reference]) -> None:
                for reference in new_references:
                    if run.admit(reference):
                        pending[executor.submit(self._fetch, reference.uri)] = reference

            submit(references)

            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    reference = pending.pop(future)

                    included, error = None, None
                    try:
                        included = future.result()
                    except (FormatError, TileReferenceError) as e:
                        error = e

                    submit(run.finish(reference, included, error))


def resolve(tileset: Tileset, archive: Archive,
            config: Optional[ResolverConfig] = None,
            document: Optional[str] = None) -> ResolutionResult:
    """解析tileset中的外部引用，见 Resolver.resolve"""
    return Resolver(archive, config).resolve(tileset, document)
