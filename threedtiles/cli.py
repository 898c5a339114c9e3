"""
命令行接口模块

提供命令行参数解析和子命令处理
"""

import argparse
import dataclasses
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .archive import DirectoryArchive
from .codec import rebase_uris, write
from .comparator import TilesetComparator
from .config import Config
from .errors import ThreeDTilesError
from .logging_setup import setup_logging
from .reader import TilesetArchive
from .reporter import ReportGenerator
from .validator import TilesetValidator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threedtiles",
        description="3D Tiles tileset 读取与外部引用解析工具",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"threedtiles {__version__}"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="配置文件路径（JSON）"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="显示详细信息"
    )

    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    # info子命令
    info_parser = subparsers.add_parser("info", help="显示tileset概要")
    info_parser.add_argument("path", help="目录、zip、JSON文件或 archive#document")
    info_parser.add_argument(
        "--external",
        action="store_true",
        help="内联外部tileset后再统计"
    )

    # resolve子命令
    resolve_parser = subparsers.add_parser("resolve", help="内联外部tileset并写出")
    resolve_parser.add_argument("path", help="目录、zip、JSON文件或 archive#document")
    resolve_parser.add_argument(
        "--output", "-o",
        type=str,
        required=True,
        help="输出tileset.json路径"
    )
    resolve_parser.add_argument(
        "--parallel",
        type=int,
        help="并发数（默认取配置）"
    )
    resolve_parser.add_argument(
        "--report",
        type=str,
        help="输出JSON报告路径"
    )

    # validate子命令
    validate_parser = subparsers.add_parser("validate", help="验证瓦片树结构")
    validate_parser.add_argument("path", help="目录、zip、JSON文件或 archive#document")
    validate_parser.add_argument(
        "--external",
        action="store_true",
        help="内联外部tileset后再验证"
    )

    # diff子命令
    diff_parser = subparsers.add_parser("diff", help="比较两个tileset")
    diff_parser.add_argument("path1", help="第一个tileset")
    diff_parser.add_argument("path2", help="第二个tileset")
    diff_parser.add_argument(
        "--tolerance",
        type=float,
        help="浮点数容差（默认取配置）"
    )
    diff_parser.add_argument(
        "--ignore",
        nargs="*",
        default=None,
        help="要忽略的字段"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """主入口函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging("DEBUG" if args.verbose else None)

    try:
        config = Config(args.config).load()
        if args.command == "info":
            return cmd_info(args, config)
        if args.command == "resolve":
            return cmd_resolve(args, config)
        if args.command == "validate":
            return cmd_validate(args, config)
        return cmd_diff(args, config)
    except (ThreeDTilesError, FileNotFoundError, ValueError) as e:
        print(f"[ERROR] {e}")
        return 1


def cmd_info(args, config: Config) -> int:
    """执行info命令"""
    with TilesetArchive(args.path, include_external=args.external, config=config.resolver) as archive:
        tileset = archive.tileset
        print(f"[INFO] 文档: {archive.document}")
        print(f"[INFO] 版本: {tileset.asset.version}"
              + (f" (tileset {tileset.asset.tileset_version})" if tileset.asset.tileset_version else ""))
        print(f"[INFO] 几何误差: {tileset.geometric_error}")
        print(f"[INFO] 瓦片数: {archive.tree_size}")
        if tileset.root is not None:
            print(f"[INFO] 层数: {tileset.root.depth()}")
            print(f"[INFO] 包围体类型: {tileset.root.bounding_volume.kind.value}")
        if tileset.extensions_used:
            print(f"[INFO] 使用的扩展: {', '.join(tileset.extensions_used)}")
        if tileset.extensions_required:
            print(f"[INFO] 必需的扩展: {', '.join(tileset.extensions_required)}")
    return 0


def _relative_root(root: Path, output_dir: Path) -> str:
    """从输出目录到归档根目录的相对路径（跨盘符时使用绝对路径）"""
    root = root.resolve()
    try:
        return Path(os.path.relpath(root, output_dir.resolve())).as_posix()
    except ValueError:
        return root.as_posix()


def cmd_resolve(args, config: Config) -> int:
    """执行resolve命令"""
    resolver_config = config.resolver
    if args.parallel is not None:
        resolver_config = dataclasses.replace(resolver_config, max_workers=args.parallel)

    print(f"[INFO] 解析外部tileset: {args.path}")
    with TilesetArchive(args.path, include_external=True, config=resolver_config) as archive:
        resolution = archive.resolution

        output = Path(args.output)
        if isinstance(archive.archive, DirectoryArchive):
            rebase_uris(archive.tileset, _relative_root(archive.archive.root, output.parent))
        else:
            print("[WARN] 输入不是目录，content URI 保持为归档内路径")
        write(output, archive.tileset)
        print(f"[INFO] 已写出: {args.output} ({archive.tree_size}个瓦片)")

        for skip in resolution.skipped:
            print(f"[SKIPPED] {skip.location}: {skip.uri}")
        for failure in resolution.failures:
            print(f"[FAILED] {failure.location}: {failure.message}")

        if args.report:
            ReportGenerator().generate_json(
                Path(args.report),
                resolution=resolution,
                metadata={"input": args.path, "parallel": resolver_config.max_workers}
            )
            print(f"[INFO] 生成JSON报告: {args.report}")

        print(f"\n[SUMMARY] 已解析: {resolution.resolved}")
        print(f"[SUMMARY] 失败: {len(resolution.failures)}")
        print(f"[SUMMARY] 跳过: {len(resolution.skipped)}")

    return 0 if resolution.complete else 1


def cmd_validate(args, config: Config) -> int:
    """执行validate命令"""
    with TilesetArchive(args.path, include_external=args.external, config=config.resolver) as archive:
        result = TilesetValidator(config.resolver.tileset_suffixes).validate(archive.tileset)

    for issue in result.issues:
        print(f"[{issue.severity.value.upper()}] {issue.code} {issue.location}: {issue.message}")

    print(f"\n[SUMMARY] 错误: {result.errors}")
    print(f"[SUMMARY] 警告: {result.warnings}")
    return 0 if result.passed else 1


def cmd_diff(args, config: Config) -> int:
    """执行diff命令"""
    tolerance = args.tolerance if args.tolerance is not None else config.comparison.float_tolerance
    ignore = args.ignore if args.ignore is not None else config.comparison.ignore_fields

    with TilesetArchive(args.path1, include_external=False, config=config.resolver) as first, \
            TilesetArchive(args.path2, include_external=False, config=config.resolver) as second:
        report = TilesetComparator(tolerance, ignore).compare(first.tileset, second.tileset)

    print(report.summary(verbose=args.verbose))
    return 0 if report.identical else 1


if __name__ == "__main__":
    sys.exit(main())
