from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from layerconf.unmarshal import (
    UnmarshalError,
    check_prefix,
    convert_value,
    get_tag_key,
    to_snake,
    unmarshal,
)


class FakeStore:
    def __init__(self, data):
        self._data = dict(data)

    def configs(self):
        return dict(self._data)

    def get_config(self, key):
        return self._data.get(key)


@dataclass
class Server:
    host: str = ""
    port: int = 0


@dataclass
class App:
    name: str = ""
    max_retries: int = 0
    ratio: float = 0.0
    debug: bool = False
    tags: list[str] = field(default_factory=list)
    server: Server = field(default_factory=Server)
    backup: Optional[Server] = None
    skipped: str = field(default="keep", metadata={"yaml": "-"})
    alias: str = field(default="", metadata={"yaml": "nick"})
    limits: dict[str, int] = field(default_factory=dict)
    servers: dict[str, Server] = field(default_factory=dict)
    pool: list[Server] = field(default_factory=list)
    extra: Any = None


@dataclass
class Strategy:
    name: str = ""


@dataclass
class LoadBalance:
    enabled: bool = False
    strategies: dict[str, Strategy] = field(
        default_factory=dict, metadata={"yaml": ",inline"}
    )


@dataclass
class Root:
    loadbalance: LoadBalance = field(default_factory=LoadBalance)


@dataclass
class WithComplex:
    z: complex = 0j


@dataclass
class IntKeyed:
    counts: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Frozen:
    name: str = ""


@pytest.mark.parametrize(
    "name, expected",
    [
        ("MaxRetries", "max_retries"),
        ("HTTPServer", "http_server"),
        ("already_snake", "already_snake"),
        ("name", "name"),
    ],
)
def test_to_snake(name, expected):
    assert to_snake(name) == expected


def test_to_snake_is_idempotent():
    once = to_snake("RefreshIntervalSeconds")
    assert to_snake(once) == once
    assert once == once.lower()


def test_get_tag_key():
    assert get_tag_key("", "") == ""
    assert get_tag_key("", "port") == "port"
    assert get_tag_key("server", "") == "server"
    assert get_tag_key("server", "port") == "server.port"


def test_check_prefix():
    assert check_prefix("server.port", "server.") == (True, len("server."))
    assert check_prefix("server", "server.") == (False, 0)
    assert check_prefix("client.port", "server.") == (False, 0)


def test_scalar_fields_are_converted():
    store = FakeStore({"name": "peter", "max_retries": "5", "ratio": "0.5", "debug": "true"})
    app = unmarshal(store, App())
    assert app.name == "peter"
    assert app.max_retries == 5
    assert app.ratio == 0.5
    assert app.debug is True


def test_missing_keys_keep_existing_values():
    app = unmarshal(FakeStore({}), App(name="orig", max_retries=7))
    assert app.name == "orig"
    assert app.max_retries == 7
    assert app.backup is None


def test_nested_dataclass():
    app = unmarshal(FakeStore({"server.host": "localhost", "server.port": 8080}), App())
    assert app.server == Server(host="localhost", port=8080)


def test_optional_dataclass_is_created():
    app = unmarshal(FakeStore({"backup.host": "h"}), App())
    assert app.backup == Server(host="h")


def test_ignored_and_renamed_fields():
    app = unmarshal(FakeStore({"skipped": "changed", "nick": "bob", "alias": "no"}), App())
    assert app.skipped == "keep"
    assert app.alias == "bob"


def test_map_of_scalars():
    app = unmarshal(FakeStore({"limits.cpu": "2", "limits.mem": 4, "other": 1}), App())
    assert app.limits == {"cpu": 2, "mem": 4}


def test_map_of_dataclasses():
    store = FakeStore(
        {"servers.a.host": "h1", "servers.a.port": 1, "servers.b.host": "h2"}
    )
    app = unmarshal(store, App())
    assert app.servers == {"a": Server("h1", 1), "b": Server("h2")}


def test_list_of_dataclasses():
    store = FakeStore({"pool": [{"host": "h", "port": "3"}, {"host": "k"}]})
    app = unmarshal(store, App())
    assert app.pool == [Server("h", 3), Server("k")]


def test_list_of_strings_and_any_field():
    app = unmarshal(FakeStore({"tags": ["a", "b"], "extra": {"x": 1}}), App())
    assert app.tags == ["a", "b"]
    assert app.extra == {"x": 1}


def test_non_list_value_leaves_list_field():
    app = unmarshal(FakeStore({"tags": "plain"}), App(tags=["kept"]))
    assert app.tags == ["kept"]


def test_inline_map_collects_sibling_keys():
    store = FakeStore(
        {
            "loadbalance.enabled": True,
            "loadbalance.cart.name": "roundrobin",
            "loadbalance.order.name": "random",
        }
    )
    root = unmarshal(store, Root())
    assert root.loadbalance.enabled is True
    assert root.loadbalance.strategies == {
        "cart": Strategy("roundrobin"),
        "order": Strategy("random"),
    }


def test_top_level_dict_replaced_by_all_configs():
    data = {"a": 1, "b.c": "x"}
    target = {"stale": True}
    unmarshal(FakeStore(data), target)
    assert target == data


@pytest.mark.parametrize("obj", [None, 5, "text", App])
def test_invalid_object_rejected(obj):
    with pytest.raises(UnmarshalError, match="invalid object supplied"):
        unmarshal(FakeStore({}), obj)


def test_unconvertible_field_type_raises():
    with pytest.raises(UnmarshalError, match="value types of z not matched"):
        unmarshal(FakeStore({"z": "1"}), WithComplex())


def test_map_key_must_be_string():
    with pytest.raises(UnmarshalError, match="map key should be string"):
        unmarshal(FakeStore({"counts.a": 1}), IntKeyed())


def test_frozen_dataclass_raises():
    with pytest.raises(UnmarshalError):
        unmarshal(FakeStore({"name": "x"}), Frozen())


def test_convert_value_int():
    assert convert_value("10.0", int) == 10
    assert convert_value("42", int) == 42
    assert convert_value(True, int) == 1
    assert convert_value("abc", int) == 0
    assert convert_value(None, int) == 0


def test_convert_value_bool_and_float():
    assert convert_value("t", bool) is True
    assert convert_value("nope", bool) is False
    assert convert_value(3, bool) is True
    assert convert_value("2.5", float) == 2.5
    assert convert_value("x", float) == 0.0


def test_convert_value_string():
    assert convert_value(1.5, str) == "1.5"
    assert convert_value(12, str) == "12"
    assert convert_value(False, str) == "false"
    assert convert_value(None, str) == ""


def test_convert_value_sequences():
    assert convert_value([1, "2"], list[int]) == [1, 2]
    assert convert_value("x", list[int]) == []
    assert convert_value([1, "2"], tuple[int, int]) == (1, 2)
    with pytest.raises(UnmarshalError, match="invalid array"):
        convert_value([1], tuple[int, int])


def test_convert_value_dataclass_and_optional():
    assert convert_value({"host": "h", "port": "9"}, Server) == Server("h", 9)
    assert convert_value(None, Optional[int]) is None
    assert convert_value("7", Optional[int]) == 7


def test_convert_value_unsupported_type():
    with pytest.raises(UnmarshalError, match="can not convert type"):
        convert_value("1", complex)