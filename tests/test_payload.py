"""不透明负载测试"""

import pytest

from threedtiles import Payload, PayloadKind
from threedtiles.payload import extensions_from_json, extensions_to_json


@pytest.mark.parametrize("value,kind", [
    ({"a": 1}, PayloadKind.OBJECT),
    ([1, 2], PayloadKind.ARRAY),
    ("text", PayloadKind.STRING),
    (1.5, PayloadKind.NUMBER),
    (True, PayloadKind.BOOLEAN),
    (None, PayloadKind.NULL),
])
def test_kind(value, kind):
    assert Payload(value).kind == kind


def test_decoupled_from_caller():
    value = {"nested": [1, 2]}
    payload = Payload(value)
    value["nested"].append(3)
    assert payload.value == {"nested": [1, 2]}
    payload.to_json()["nested"].append(4)
    assert payload.value == {"nested": [1, 2]}


def test_unsupported_type():
    with pytest.raises(TypeError):
        Payload({1, 2})


def test_extensions():
    extensions = extensions_from_json({"EXT_a": {"k": [1]}, "EXT_b": None})
    assert extensions["EXT_b"].kind == PayloadKind.NULL
    assert extensions_to_json(extensions) == {"EXT_a": {"k": [1]}, "EXT_b": None}
