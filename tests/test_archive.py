"""归档读取测试"""

import zipfile

import pytest

from threedtiles import (
    DirectoryArchive,
    MemoryArchive,
    ReferenceNotFound,
    TileReferenceError,
    ZipArchive,
    open_archive,
)
from threedtiles.archive import normalize_path

from .conftest import dumps, tile_doc, tileset_doc


@pytest.fixture
def zip_path(tmp_path):
    path = tmp_path / "data.zip"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("Data/", b"")
        zf.writestr("Data/tileset.json", dumps(tileset_doc(tile_doc(uri="a.b3dm"))))
        zf.writestr("Data/deep/tileset.json", dumps(tileset_doc(tile_doc())))
        zf.writestr("Data/a.b3dm", b"b3dm")
    return path


class TestNormalizePath:

    @pytest.mark.parametrize("path,expected", [
        ("tileset.json", "tileset.json"),
        ("./a/../b/c.json", "b/c.json"),
        ("/abs/c.json", "abs/c.json"),
        ("a\\b.json", "a/b.json"),
    ])
    def test_normalize(self, path, expected):
        assert normalize_path(path) == expected

    @pytest.mark.parametrize("path", ["..", "../x.json", "a/../../x.json"])
    def test_escape(self, path):
        with pytest.raises(ReferenceNotFound):
            normalize_path(path)


class TestDirectoryArchive:

    def test_read(self, external_dir):
        archive = DirectoryArchive(external_dir)
        assert archive.exists("child.json")
        assert not archive.exists("missing.json")
        assert archive.read_bytes("a.b3dm").startswith(b"b3dm")
        assert archive.open_stream("./a.b3dm").read(4) == b"b3dm"
        assert "child.json" in archive.list_files()

    def test_missing(self, external_dir):
        archive = DirectoryArchive(external_dir)
        with pytest.raises(ReferenceNotFound):
            archive.read_bytes("missing.json")

    def test_directory_is_not_a_document(self, tmp_path):
        (tmp_path / "sub").mkdir()
        with pytest.raises(ReferenceNotFound):
            DirectoryArchive(tmp_path).read_bytes("sub")

    def test_apply_hint(self, external_dir):
        archive = DirectoryArchive(external_dir)
        assert archive.apply_hint() == "tileset.json"
        assert archive.used_hint == "tileset.json"


class TestZipArchive:

    def test_hint_searches_shallowest(self, zip_path):
        with ZipArchive(zip_path) as archive:
            assert archive.apply_hint() == "Data/tileset.json"
            assert archive.read_bytes("Data/a.b3dm") == b"b3dm"
            assert "Data/" not in archive.list_files()

    def test_missing_member(self, zip_path):
        with ZipArchive(zip_path) as archive:
            with pytest.raises(ReferenceNotFound):
                archive.read_bytes("Data/missing.json")

    def test_missing_hint(self, zip_path):
        with ZipArchive(zip_path) as archive:
            with pytest.raises(ReferenceNotFound):
                archive.apply_hint("layer.json")

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "broken.zip"
        path.write_bytes(b"not a zip")
        with pytest.raises(TileReferenceError):
            ZipArchive(path)


class TestMemoryArchive:

    def test_read(self):
        archive = MemoryArchive({"./tileset.json": "{}", "sub/a.b3dm": b"x"})
        assert archive.list_files() == ["sub/a.b3dm", "tileset.json"]
        assert archive.read_bytes("tileset.json") == b"{}"
        assert archive.read_bytes("sub/../sub/a.b3dm") == b"x"
        with pytest.raises(ReferenceNotFound):
            archive.read_bytes("nope")


class TestOpenArchive:

    def test_directory(self, external_dir):
        archive, document = open_archive(external_dir)
        assert isinstance(archive, DirectoryArchive)
        assert document == "tileset.json"

    def test_single_file(self, external_dir):
        archive, document = open_archive(external_dir / "child.json")
        assert isinstance(archive, DirectoryArchive)
        assert document == "child.json"

    def test_zip(self, zip_path):
        archive, document = open_archive(zip_path)
        with archive:
            assert isinstance(archive, ZipArchive)
            assert document == "Data/tileset.json"

    def test_inline_document(self, zip_path):
        archive, document = open_archive(f"{zip_path}#Data/deep/tileset.json")
        with archive:
            assert document == "Data/deep/tileset.json"

    def test_inline_document_missing(self, zip_path):
        with pytest.raises(ReferenceNotFound):
            open_archive(f"{zip_path}#Data/nothing.json")

    def test_zip_is_closed_when_document_missing(self, zip_path, monkeypatch):
        closed = []
        close = ZipArchive.close
        monkeypatch.setattr(ZipArchive, "close", lambda self: closed.append(self) or close(self))
        with pytest.raises(ReferenceNotFound):
            open_archive(f"{zip_path}#Data/nothing.json")
        with pytest.raises(ReferenceNotFound):
            open_archive(zip_path, hint="nothing.json")
        assert len(closed) == 2
        assert all(archive._zip.fp is None for archive in closed)

    def test_missing_path(self, tmp_path):
        with pytest.raises(ReferenceNotFound):
            open_archive(tmp_path / "nothing")
