import threading

import pytest

from layerconf.mem import MemorySource
from layerconf.source import EventHandler, EventType, KeyNotExistError


class _Handler(EventHandler):
    def __init__(self):
        self.events = []
        self.batches = []

    def on_event(self, event):
        self.events.append(event)

    def on_module_event(self, events):
        self.batches.append(events)

    @property
    def last(self):
        return self.events[-1]


@pytest.fixture
def watched():
    source = MemorySource()
    handler = _Handler()
    source.watch(handler)
    return source, handler


def test_set_and_get(watched):
    source, _ = watched
    source.set("testextkey1", "extkey1")
    source.set("testextkey2", "extkey2")
    source.set("testmemkey2", "memkey2")
    source.delete("testmemkey2")
    assert source.get_configuration_by_key("testextkey1") == "extkey1"
    assert source.get_configuration_by_key("testextkey2") == "extkey2"
    configs = source.get_configurations()
    assert configs["testextkey1"] == "extkey1"


def test_priority_and_name():
    source = MemorySource()
    assert source.priority == 1
    assert source.name == "MemorySource"


def test_create_update_delete_events(watched):
    source, handler = watched
    source.set("testextkey3", "extkey3")
    assert (handler.last.key, handler.last.event_type) == ("testextkey3", EventType.CREATE)
    source.set("testextkey3", "extkey33")
    assert (handler.last.key, handler.last.event_type) == ("testextkey3", EventType.UPDATE)
    assert handler.last.value == "extkey33"
    source.delete("testextkey3")
    assert handler.last.event_type == EventType.DELETE
    assert handler.last.value == "extkey33"
    assert handler.last.event_source == "MemorySource"


def test_module_event_carries_same_event(watched):
    source, handler = watched
    source.set("k", "v")
    assert handler.batches == [[handler.last]]


def test_delete_missing_key_emits_nothing(watched):
    source, handler = watched
    source.delete("missing")
    assert handler.events == []


def test_cleanup(watched):
    source, _ = watched
    source.set("testextkey1", "extkey1")
    source.cleanup()
    with pytest.raises(KeyNotExistError):
        source.get_configuration_by_key("testextkey1")
    assert source.get_configurations() == {}


def test_set_waits_for_watch():
    source = MemorySource()
    worker = threading.Thread(target=source.set, args=("k", "v"))
    worker.start()
    worker.join(0.05)
    assert worker.is_alive()
    source.watch(_Handler())
    worker.join(2)
    assert not worker.is_alive()
    assert source.get_configuration_by_key("k") == "v"