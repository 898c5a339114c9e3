"""命令行接口测试"""

import json
import logging
from pathlib import Path

import pytest

from threedtiles import cli, read
from threedtiles.logging_setup import LOG_FORMAT, LOG_LEVEL_ENV, setup_logging
from threedtiles.reporter import ReportGenerator

from .conftest import tile_doc, tileset_doc, write_json


@pytest.fixture(autouse=True)
def restore_logging():
    """main() 会配置根日志记录器，测试结束后恢复"""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
    if hasattr(root, "_threedtiles_configured"):
        del root._threedtiles_configured


class TestInfo:

    def test_info(self, external_dir, capsys):
        assert cli.main(["info", str(external_dir)]) == 0
        out = capsys.readouterr().out
        assert "[INFO] 瓦片数: 2" in out
        assert "[INFO] 包围体类型: box" in out

    def test_info_external(self, external_dir, capsys):
        assert cli.main(["info", str(external_dir), "--external"]) == 0
        out = capsys.readouterr().out
        assert "[INFO] 瓦片数: 4" in out
        assert "EXT_child" in out

    def test_missing_path(self, tmp_path, capsys):
        assert cli.main(["info", str(tmp_path / "missing")]) == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert cli.main([]) == 1


class TestResolve:

    def test_resolve(self, external_dir, tmp_path, capsys):
        output = tmp_path / "out" / "tileset.json"
        report = tmp_path / "out" / "report.json"
        code = cli.main(["resolve", str(external_dir), "-o", str(output),
                         "--parallel", "2", "--report", str(report)])
        assert code == 0

        tileset = read(output)
        assert tileset.tree_size() == 4
        assert tileset.extensions_used == ["EXT_child"]

        leaves = tileset.root.children[0].children
        assert [leaf.content.uri.rsplit("/", 1)[-1] for leaf in leaves] == ["a.b3dm", "b.b3dm"]
        assert all(Path(leaf.content.uri).is_file() for leaf in leaves)
        document = json.loads(output.read_text(encoding="utf-8"))
        assert document["root"]["children"][0]["children"][0]["content"]["uri"] == "../a.b3dm"

        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["resolution"]["resolved"] == 1
        assert data["metadata"]["parallel"] == 2
        assert "[SUMMARY] 已解析: 1" in capsys.readouterr().out

    def test_resolve_with_failures(self, tmp_path, capsys):
        source = tmp_path / "src"
        write_json(source / "tileset.json", tileset_doc(tile_doc(children=[
            tile_doc(uri="missing.json"),
            tile_doc(uri="https://example.com/tileset.json"),
        ])))
        code = cli.main(["resolve", str(source), "-o", str(tmp_path / "out.json")])
        assert code == 1

        out = capsys.readouterr().out
        assert "[FAILED] /root/children/0" in out
        assert "[SKIPPED] /root/children/1" in out

    def test_config_file(self, external_dir, tmp_path):
        config = write_json(tmp_path / "config.json", {"resolver": {"max_workers": 1}})
        output = tmp_path / "out.json"
        assert cli.main(["--config", str(config), "resolve", str(external_dir), "-o", str(output)]) == 0
        assert read(output).tree_size() == 4

    def test_invalid_parallel(self, external_dir, tmp_path, capsys):
        code = cli.main(["resolve", str(external_dir), "-o", str(tmp_path / "out.json"), "--parallel", "0"])
        assert code == 1
        assert "max_workers" in capsys.readouterr().out

    def test_missing_config_file(self, external_dir, tmp_path, capsys):
        code = cli.main(["--config", str(tmp_path / "none.json"), "info", str(external_dir)])
        assert code == 1
        assert "[ERROR]" in capsys.readouterr().out


class TestValidate:

    def test_valid(self, external_dir, capsys):
        assert cli.main(["validate", str(external_dir), "--external"]) == 0
        assert "[SUMMARY] 错误: 0" in capsys.readouterr().out

    def test_unresolved_warning(self, external_dir, capsys):
        assert cli.main(["validate", str(external_dir)]) == 0
        assert "UNRESOLVED_EXTERNAL_TILESET" in capsys.readouterr().out

    def test_invalid(self, tmp_path, capsys):
        write_json(tmp_path / "tileset.json", tileset_doc(tile_doc(1.0, children=[tile_doc(5.0, uri="a.b3dm")])))
        assert cli.main(["validate", str(tmp_path)]) == 1
        assert "INVALID_LOD_STRUCTURE" in capsys.readouterr().out


class TestDiff:

    def test_identical(self, external_dir, capsys):
        path = str(external_dir / "tileset.json")
        assert cli.main(["diff", path, path]) == 0
        assert "完全一致" in capsys.readouterr().out

    def test_different(self, tmp_path, capsys):
        first = write_json(tmp_path / "a" / "tileset.json", tileset_doc(tile_doc(10.0)))
        second = write_json(tmp_path / "b" / "tileset.json", tileset_doc(tile_doc(10.5)))
        assert cli.main(["--verbose", "diff", str(first), str(second)]) == 1
        assert "/root geometricError" in capsys.readouterr().out
        assert cli.main(["diff", str(first), str(second), "--tolerance", "1"]) == 0


class TestSupport:

    def test_report_without_resolution(self, tmp_path):
        report = ReportGenerator().generate_json(tmp_path / "r.json", metadata={"k": "v"})
        assert "resolution" not in report
        assert json.loads((tmp_path / "r.json").read_text(encoding="utf-8"))["metadata"] == {"k": "v"}

    def test_setup_logging_level(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "warning")
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.WARNING
        setup_logging("debug")
        assert root.level == logging.DEBUG
        assert len([h for h in root.handlers if h.formatter and h.formatter._fmt == LOG_FORMAT]) == 1
