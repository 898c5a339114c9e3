"""b3dm 读取与几何加载测试"""

import io
import json
import struct

import numpy as np
import pytest

from threedtiles import MalformedDocument, MemoryArchive, load_mesh, read_b3dm, yup2zup

from .conftest import make_b3dm


class RecordingLoader:
    """记录解码器收到的参数"""

    def __init__(self):
        self.calls = []

    def decode(self, gltf, trafo):
        self.calls.append((gltf, trafo))
        return len(self.calls)


def b3dm_with_binary_rtc(center, gltf=b"glTF-bin") -> bytes:
    ft_json = json.dumps({"BATCH_LENGTH": 0, "RTC_CENTER": {"byteOffset": 0}}).encode("utf-8")
    ft_json += b" " * ((8 - (28 + len(ft_json)) % 8) % 8)
    ft_bin = struct.pack("<3f", *center) + b"\x00" * 4
    byte_length = 28 + len(ft_json) + len(ft_bin) + len(gltf)
    header = struct.pack("<4sIIIIII", b"b3dm", 1, byte_length, len(ft_json), len(ft_bin), 0, 0)
    return header + ft_json + ft_bin + gltf


class TestReadB3dm:

    def test_feature_table(self):
        model = read_b3dm(io.BytesIO(make_b3dm(b"glTF-data", {"BATCH_LENGTH": 0, "RTC_CENTER": [1, 2, 3]})))
        assert model.version == 1
        assert model.feature_table["BATCH_LENGTH"] == 0
        assert model.gltf == b"glTF-data"
        assert np.allclose(model.rtc_center, [1, 2, 3])

    def test_rtc_center_from_binary(self):
        model = read_b3dm(io.BytesIO(b3dm_with_binary_rtc((4.0, 5.0, 6.0))))
        assert np.allclose(model.rtc_center, [4, 5, 6])
        assert model.gltf == b"glTF-bin"

    def test_without_rtc_center(self):
        model = read_b3dm(io.BytesIO(make_b3dm()))
        assert model.feature_table == {}
        assert np.array_equal(model.rtc_center, np.zeros(3))

    @pytest.mark.parametrize("padding", [b"    ", b"\x00\x00\x00\x00", b"  \x00\x00"])
    def test_padding_only_feature_table(self, padding):
        header = struct.pack("<4sIIIIII", b"b3dm", 1, 28 + len(padding) + 8, len(padding), 0, 0, 0)
        model = read_b3dm(io.BytesIO(header + padding + b"glTF-bin"))
        assert model.feature_table == {}
        assert model.gltf == b"glTF-bin"

    def test_glb_passthrough(self):
        model = read_b3dm(io.BytesIO(b"glTF\x02\x00\x00\x00rest"))
        assert model.gltf.startswith(b"glTF")
        assert model.batch_table == {}

    @pytest.mark.parametrize("data", [
        b"b3dm",
        b"i3dm" + b"\x00" * 24,
        make_b3dm()[:-4],
    ])
    def test_invalid(self, data):
        with pytest.raises(MalformedDocument):
            read_b3dm(io.BytesIO(data), "bad.b3dm")

    def test_invalid_feature_table(self):
        data = bytearray(make_b3dm(b"glTF", {"BATCH_LENGTH": 0}))
        data[28] = ord("[")
        data[29] = ord("[")
        with pytest.raises(MalformedDocument):
            read_b3dm(io.BytesIO(bytes(data)))


class TestLoadMesh:

    def test_combined_transform(self):
        archive = MemoryArchive({"m.b3dm": make_b3dm(b"glTF-data", {"RTC_CENTER": [10, 20, 30]})})
        loader = RecordingLoader()
        assert load_mesh(archive, loader, "m.b3dm") == 1

        gltf, trafo = loader.calls[0]
        assert gltf == b"glTF-data"
        assert np.allclose(trafo[0:3, 3], [10, 20, 30])
        assert np.allclose(trafo[0:3, 0:3], yup2zup()[0:3, 0:3])

    def test_caller_transform_applied_first(self):
        archive = MemoryArchive({"m.b3dm": make_b3dm()})
        loader = RecordingLoader()
        scale = np.diag([2.0, 2.0, 2.0, 1.0])
        load_mesh(archive, loader, "m.b3dm", scale)

        _, trafo = loader.calls[0]
        assert np.allclose(trafo, scale @ yup2zup())

    def test_yup2zup(self):
        # glTF的+Y映射为+Z
        assert np.allclose(yup2zup() @ [0, 1, 0, 1], [0, 0, 1, 1])
