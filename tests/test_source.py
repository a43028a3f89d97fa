import pytest

from layerconf.source import (
    ConfigSource,
    Event,
    EventHandler,
    EventType,
    IgnoreChangeError,
    KeyNotExistError,
)


class _Recorder(EventHandler):
    def __init__(self):
        self.events = []
        self.batches = []

    def on_event(self, event):
        self.events.append(event)

    def on_module_event(self, events):
        self.batches.append(events)


def test_event_defaults():
    e = Event("src", "k", EventType.CREATE)
    assert e.value is None
    assert e.has_updated is False
    assert (e.event_source, e.key, e.event_type) == ("src", "k", EventType.CREATE)


@pytest.mark.parametrize("event_type", [EventType.CREATE, EventType.UPDATE, EventType.DELETE])
def test_event_keeps_each_event_type(event_type):
    e = Event("src", "k", event_type, value=1)
    assert e.event_type is event_type
    assert e.value == 1
    assert e.has_updated is False


def test_abstract_source_cannot_be_instantiated():
    with pytest.raises(TypeError):
        ConfigSource()


def test_abstract_handler_cannot_be_instantiated():
    with pytest.raises(TypeError):
        EventHandler()


def test_key_not_exist_error_carries_key():
    err = KeyNotExistError("b")
    assert err.key == "b"
    assert isinstance(err, LookupError)


def test_event_handler_requires_both_methods():
    class OnlyEvent(EventHandler):
        def on_event(self, event):
            pass

    with pytest.raises(TypeError):
        OnlyEvent()

    rec = _Recorder()
    e = Event("src", "k", EventType.DELETE, value=3)
    rec.on_event(e)
    rec.on_module_event([e])
    assert rec.events == [e]
    assert rec.batches == [[e]]
    assert rec.events[0].value == 3


def test_ignore_change_message():
    assert str(IgnoreChangeError()) == "ignore key changed"