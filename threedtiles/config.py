"""
配置解析模块
负责加载和解析JSON配置文件（resolver / comparison 两个可选段）
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .archive import DEFAULT_HINT


@dataclass
class ResolverConfig:
    """外部tileset解析配置"""
    max_workers: int = 4
    include_external: bool = True
    hint: str = DEFAULT_HINT
    tileset_suffixes: List[str] = field(default_factory=lambda: [".json"])
    max_depth: int = 64
    merge_metadata: bool = True

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError(f"max_workers 必须大于0: {self.max_workers}")
        if self.max_depth < 1:
            raise ValueError(f"max_depth 必须大于0: {self.max_depth}")
        if not self.tileset_suffixes:
            raise ValueError("tileset_suffixes 不能为空")

    @property
    def parallel(self) -> bool:
        return self.max_workers > 1


@dataclass
class ComparisonConfig:
    """tileset比较配置"""
    float_tolerance: float = 1e-6
    ignore_fields: List[str] = field(default_factory=list)


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


class Config:
    """配置管理器"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径，为None时使用默认配置
        """
        self.config_path = Path(config_path) if config_path is not None else None

        self._data: Dict[str, Any] = {}
        self._resolver = ResolverConfig()
        self._comparison = ComparisonConfig()

    def load(self) -> "Config":
        """加载配置文件"""
        if self.config_path is None:
            return self

        if not self.config_path.exists():
            raise FileNotFoundError(f"配置文件不存在: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._data = json.load(f)

        self._parse_resolver()
        self._parse_comparison()
        return self

    def _parse_resolver(self) -> None:
        """解析resolver段"""
        resolver_data = self._data.get("resolver", {})
        self._resolver = ResolverConfig(**_known_fields(ResolverConfig, resolver_data))

    def _parse_comparison(self) -> None:
        """解析comparison段"""
        comparison_data = self._data.get("comparison", {})
        self._comparison = ComparisonConfig(**_known_fields(ComparisonConfig, comparison_data))

    @property
    def resolver(self) -> ResolverConfig:
        """获取解析配置"""
        return self._resolver

    @property
    def comparison(self) -> ComparisonConfig:
        """获取比较配置"""
        return self._comparison

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path})"
