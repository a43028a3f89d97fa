import pytest

from layerconf.env import EnvSource
from layerconf.source import EventHandler, KeyNotExistError


class _Handler(EventHandler):
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)

    def on_module_event(self, events):
        self.events.extend(events)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("testenvkey1", "envkey1")
    monkeypatch.setenv("testenvkey2", "envkey2")
    monkeypatch.setenv("testenvkey3", "a=b=c")
    monkeypatch.setenv("a_b_c_d", "asd")
    return EnvSource()


def test_underscore_keys_reachable_with_dots(env):
    assert env.get_configuration_by_key("a.b.c.d") == "asd"
    assert env.get_configuration_by_key("a_b_c_d") == "asd"


def test_values_and_configurations(env):
    assert env.get_configuration_by_key("testenvkey1") == "envkey1"
    assert env.get_configuration_by_key("testenvkey3") == "a=b=c"
    configs = env.get_configurations()
    assert configs["testenvkey2"] == "envkey2"


def test_priority_and_name(env):
    assert env.priority == 3
    assert env.name == "EnvironmentSource"


def test_watch_and_writes_leave_values(env):
    handler = _Handler()
    assert env.watch(handler) is None
    env.set("testenvkey1", "other")
    env.delete("testenvkey2")
    assert env.get_configuration_by_key("testenvkey1") == "envkey1"
    assert env.get_configuration_by_key("testenvkey2") == "envkey2"
    assert handler.events == []


def test_cleanup(env):
    env.cleanup()
    with pytest.raises(KeyNotExistError):
        env.get_configuration_by_key("testenvkey1")
    with pytest.raises(KeyNotExistError):
        env.get_configuration_by_key("testenvkey2")
    assert env.get_configurations() == {}