"""
tileset 比对模块

逐个瓦片比较两个Tileset：
- 瓦片按位置配对（/root、/root/children/0 ...），差异以瓦片位置 + 字段路径报告
- 数值按容差比较，可忽略指定字段
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .codec import to_dict
from .tileset import Tileset

MISSING = "<missing>"


class ComparisonResult(Enum):
    """比较结果"""
    IDENTICAL = "identical"
    DIFFERENT = "different"
    TOLERANCE_DIFF = "tolerance_diff"


@dataclass
class DiffItem:
    """差异项：location 为瓦片位置（tileset级字段为空），field 为瓦片内的字段路径"""
    path: str
    field: str
    value1: Any
    value2: Any
    result: ComparisonResult
    message: str = ""


@dataclass
class ComparisonReport:
    """比较报告"""
    identical: bool = True
    differences: List[DiffItem] = field(default_factory=list)
    total_items: int = 0
    matched_items: int = 0
    tolerance_matched: int = 0
    tiles_compared: int = 0

    def add_diff(self, diff: DiffItem):
        """添加差异项"""
        self.differences.append(diff)

    def summary(self, verbose: bool = False) -> str:
        """生成摘要文本"""
        lines = [
            f"比较结果: {'完全一致' if self.identical else '存在差异'}",
            f"比较瓦片数: {self.tiles_compared}",
            f"总项目数: {self.total_items}",
            f"匹配项数: {self.matched_items}",
        ]
        if self.tolerance_matched > 0:
            lines.append(f"容差匹配: {self.tolerance_matched}")
        lines.append(f"差异项数: {len(self.differences)}")

        if self.differences and verbose:
            for i, diff in enumerate(self.differences, 1):
                lines.append(f"[{i}] {diff.path or '/'} {diff.field}: {diff.value1} != {diff.value2}"
                             + (f" ({diff.message})" if diff.message else ""))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identical": self.identical,
            "tiles_compared": self.tiles_compared,
            "total_items": self.total_items,
            "matched_items": self.matched_items,
            "tolerance_matched": self.tolerance_matched,
            "differences": [
                {
                    "location": diff.path,
                    "field": diff.field,
                    "value1": repr(diff.value1),
                    "value2": repr(diff.value2),
                    "result": diff.result.value,
                    "message": diff.message,
                }
                for diff in self.differences
            ],
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TilesetComparator:
    """tileset比较器"""

    def __init__(self, float_tolerance: float = 1e-6, ignore_fields: Optional[Iterable[str]] = None):
        self.float_tolerance = float_tolerance
        self.ignore_fields = set(ignore_fields or ())

    def compare(self, tileset1: Tileset, tileset2: Tileset) -> ComparisonReport:
        """
        比较两个tileset

        Args:
            tileset1: 第一个tileset
            tileset2: 第二个tileset

        Returns:
            ComparisonReport: 比较报告
        """
        report = ComparisonReport()
        document1, document2 = to_dict(tileset1), to_dict(tileset2)

        root1 = document1.pop("root", None)
        root2 = document2.pop("root", None)
        self._compare_fields(document1, document2, "", "", report)

        if root1 is None or root2 is None:
            if root1 is not root2:
                self._missing(report, "/root", "", root1, root2)
        else:
            self._compare_tiles(root1, root2, report)

        report.identical = len(report.differences) == 0
        return report

    def _compare_tiles(self, root1: Dict[str, Any], root2: Dict[str, Any], report: ComparisonReport):
        """按位置配对遍历两棵瓦片树"""
        stack: List[Tuple[Dict[str, Any], Dict[str, Any], str]] = [(root1, root2, "/root")]
        while stack:
            tile1, tile2, location = stack.pop()
            report.tiles_compared += 1

            children1 = tile1.pop("children", [])
            children2 = tile2.pop("children", [])
            self._compare_fields(tile1, tile2, location, "", report)

            if len(children1) != len(children2):
                report.add_diff(DiffItem(
                    path=location,
                    field="children",
                    value1=len(children1),
                    value2=len(children2),
                    result=ComparisonResult.DIFFERENT,
                    message="子瓦片数量不一致"
                ))

            pairs = list(zip(children1, children2))
            for index in reversed(range(len(pairs))):
                child1, child2 = pairs[index]
                stack.append((child1, child2, f"{location}/children/{index}"))

    def _compare_fields(self, obj1: Dict[str, Any], obj2: Dict[str, Any],
                        location: str, prefix: str, report: ComparisonReport):
        """比较一个瓦片（或tileset本身）的字段"""
        keys1 = set(obj1) - self.ignore_fields
        keys2 = set(obj2) - self.ignore_fields

        for key in sorted(keys1 | keys2):
            name = f"{prefix}/{key}" if prefix else key
            if key not in keys2:
                self._missing(report, location, name, obj1[key], MISSING)
            elif key not in keys1:
                self._missing(report, location, name, MISSING, obj2[key])
            else:
                self._compare_values(obj1[key], obj2[key], location, name, report)

    def _compare_values(self, value1: Any, value2: Any, location: str, name: str,
                        report: ComparisonReport):
        report.total_items += 1

        if _is_number(value1) and _is_number(value2):
            self._compare_numbers(float(value1), float(value2), location, name, report)
        elif type(value1) != type(value2):
            report.add_diff(DiffItem(location, name, type(value1).__name__, type(value2).__name__,
                                     ComparisonResult.DIFFERENT, "类型不匹配"))
        elif isinstance(value1, dict):
            self._compare_fields(value1, value2, location, name, report)
        elif isinstance(value1, list):
            if len(value1) != len(value2):
                report.add_diff(DiffItem(location, name, len(value1), len(value2),
                                         ComparisonResult.DIFFERENT, "数组长度不一致"))
            for index, (item1, item2) in enumerate(zip(value1, value2)):
                self._compare_values(item1, item2, location, f"{name}/{index}", report)
        elif value1 != value2:
            report.add_diff(DiffItem(location, name, value1, value2, ComparisonResult.DIFFERENT))
        else:
            report.matched_items += 1

    def _compare_numbers(self, val1: float, val2: float, location: str, name: str,
                         report: ComparisonReport):
        if val1 == val2:
            report.matched_items += 1
        elif abs(val1 - val2) <= self.float_tolerance:
            report.tolerance_matched += 1
            report.matched_items += 1
        else:
            report.add_diff(DiffItem(location, name, val1, val2, ComparisonResult.DIFFERENT,
                                     f"差异: {abs(val1 - val2):.2e}"))

    def _missing(self, report: ComparisonReport, location: str, name: str, value1: Any, value2: Any):
        report.total_items += 1
        which = "第一个" if value2 is MISSING or value2 is None else "第二个"
        report.add_diff(DiffItem(location, name, value1, value2, ComparisonResult.DIFFERENT,
                                 f"仅在{which}tileset中存在"))
