"""
报告生成器模块

负责生成JSON格式的解析/验证报告
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .resolver import ResolutionResult
from .validator import ValidationResult


class ReportGenerator:
    """报告生成器"""

    def build(
        self,
        resolution: Optional[ResolutionResult] = None,
        validation: Optional[ValidationResult] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        生成报告内容

        Args:
            resolution: 外部tileset解析结果
            validation: 验证结果
            metadata: 元数据

        Returns:
            Dict[str, Any]: 报告
        """
        report: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "metadata": metadata or {},
        }

        if resolution is not None:
            report["resolution"] = resolution.to_dict()

        if validation is not None:
            report["validation"] = {
                "passed": validation.passed,
                "errors": validation.errors,
                "warnings": validation.warnings,
                "issues": [
                    {
                        "code": issue.code,
                        "severity": issue.severity.value,
                        "location": issue.location,
                        "message": issue.message,
                        "fix": issue.fix
                    }
                    for issue in validation.issues
                ]
            }

        return report

    def generate_json(
        self,
        output_path: Path,
        resolution: Optional[ResolutionResult] = None,
        validation: Optional[ValidationResult] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """生成JSON格式报告并写入文件"""
        report = self.build(resolution, validation, metadata)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        return report
