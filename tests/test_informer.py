"""Tests for the node informer."""

import threading

import pytest
from kubernetes.client.rest import ApiException

from conftest import FakeCoreApi, FakeWatch, make_k8s_node
from k8s_ec2_srcdst.informer import NodeInformer, NodeStore
from k8s_ec2_srcdst.models import EventType, Node


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def core_api():
    return FakeCoreApi([
        make_k8s_node("node0", "aws:///us-mock-1/i-abcdefgh"),
        make_k8s_node("node1", "aws:///us-mock-1/i-bcdefdaf"),
    ])


@pytest.fixture
def events():
    return []


@pytest.fixture
def informer(core_api, events):
    informer = NodeInformer(core_api, resync_period=60, clock=FakeClock())
    informer.add_event_handler(events.append)
    return informer


def test_store_replace_returns_previous_contents():
    store = NodeStore()
    store.upsert(Node(name="node0"))

    previous = store.replace([Node(name="node1")])

    assert set(previous) == {"node0"}
    assert store.keys() == ["node1"]
    assert store.get_by_key("node0") is None


def test_initial_list_fills_store_and_marks_synced(informer, events):
    assert not informer.has_synced()

    resource_version = informer.list_and_replace()

    assert resource_version == "100"
    assert informer.has_synced()
    assert sorted(informer.store.keys()) == ["node0", "node1"]
    assert [event.type for event in events] == [EventType.ADDED, EventType.ADDED]
    assert informer.store.get_by_key("node0").provider_id == "aws:///us-mock-1/i-abcdefgh"


def test_relist_reports_updates_and_deletions(informer, core_api, events):
    informer.list_and_replace()
    del core_api.nodes["node1"]
    events.clear()

    informer.list_and_replace()

    assert [(event.type, event.node.name) for event in events] == [
        (EventType.UPDATED, "node0"),
        (EventType.DELETED, "node1"),
    ]


def test_watch_events_update_store(informer, events):
    node = make_k8s_node("node2", "aws:///us-mock-1/i-fedbca00", resource_version="101")

    assert informer.handle_watch_event({"type": "ADDED", "object": node}) == "101"
    node.metadata.resource_version = "102"
    informer.handle_watch_event({"type": "MODIFIED", "object": node})
    informer.handle_watch_event({"type": "DELETED", "object": node})

    assert [event.type for event in events] == [EventType.ADDED, EventType.UPDATED, EventType.DELETED]
    assert informer.store.get_by_key("node2") is None


def test_bookmark_only_advances_resource_version(informer, events):
    bookmark = make_k8s_node("", resource_version="150")

    assert informer.handle_watch_event({"type": "BOOKMARK", "object": bookmark}) == "150"
    assert events == []


def test_error_event_raises_api_exception(informer):
    with pytest.raises(ApiException) as exc_info:
        informer.handle_watch_event({"type": "ERROR", "raw_object": {"code": 410, "message": "too old"}})
    assert exc_info.value.status == 410


def test_handler_failure_does_not_stop_dispatch(core_api):
    informer = NodeInformer(core_api, clock=FakeClock())
    received = []

    def _broken(event):
        raise ValueError("boom")

    informer.add_event_handler(_broken)
    informer.add_event_handler(received.append)
    informer.list_and_replace()

    assert len(received) == 2


def test_resync_redelivers_cached_nodes(core_api, events):
    clock = FakeClock()
    informer = NodeInformer(core_api, resync_period=60, clock=clock)
    informer.add_event_handler(events.append)
    informer.list_and_replace()
    events.clear()

    clock.now = 30
    assert not informer.resync_if_due()
    clock.now = 60
    assert informer.resync_if_due()

    assert sorted(event.node.name for event in events) == ["node0", "node1"]
    assert all(event.type == EventType.UPDATED for event in events)


def test_run_relists_after_expired_resource_version(core_api, events):
    stop_event = threading.Event()
    watchers = [
        FakeWatch(error=ApiException(status=410, reason="Gone")),
        FakeWatch(
            events=[{"type": "ADDED", "object": make_k8s_node("node2", resource_version="120")}],
        ),
    ]
    watchers[1].on_stream = stop_event.set
    informer = NodeInformer(core_api, watch_factory=lambda: watchers.pop(0))
    informer.add_event_handler(events.append)

    informer.run(stop_event)

    assert core_api.list_calls == 2
    assert informer.has_synced()


def test_run_watches_from_listed_resource_version(core_api):
    stop_event = threading.Event()
    watcher = FakeWatch(on_stream=stop_event.set)
    informer = NodeInformer(core_api, resync_period=60, watch_factory=lambda: watcher)

    informer.run(stop_event)

    assert watcher.stream_kwargs["resource_version"] == "100"
    assert 1 <= watcher.stream_kwargs["timeout_seconds"] <= 61


def test_wait_for_sync_returns_false_when_stopped(informer):
    stop_event = threading.Event()
    stop_event.set()

    assert informer.wait_for_sync(stop_event, poll_interval=0.01) is False
