"""Shared fakes for the Kubernetes and EC2 APIs."""

import copy
import threading
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from kubernetes.client.rest import ApiException

from k8s_ec2_srcdst.client import EC2Client


def make_k8s_node(name, provider_id="", annotations=None, resource_version="1"):
    """Build an object shaped like ``kubernetes.client.V1Node``."""
    return SimpleNamespace(
        metadata=SimpleNamespace(
            name=name,
            annotations=annotations,
            resource_version=resource_version,
        ),
        spec=SimpleNamespace(provider_id=provider_id),
    )


class FakeCoreApi:
    """In-memory stand-in for ``CoreV1Api`` with resource version checks."""

    def __init__(self, nodes=()):
        self.nodes = {node.metadata.name: copy.deepcopy(node) for node in nodes}
        self.conflicts = 0
        self.list_calls = 0
        self.replace_calls = []
        self.patch_calls = []
        self.list_resource_version = "100"

    def list_node(self, **kwargs):
        self.list_calls += 1
        return SimpleNamespace(
            items=[copy.deepcopy(node) for node in self.nodes.values()],
            metadata=SimpleNamespace(resource_version=self.list_resource_version),
        )

    def read_node(self, name):
        if name not in self.nodes:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.nodes[name])

    def _check_version(self, name, resource_version):
        if name not in self.nodes:
            raise ApiException(status=404, reason="Not Found")
        if self.conflicts:
            self.conflicts -= 1
            raise ApiException(status=409, reason="Conflict")
        if resource_version != self.nodes[name].metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")

    def _bump(self, name):
        metadata = self.nodes[name].metadata
        metadata.resource_version = str(int(metadata.resource_version) + 1)

    def replace_node(self, name, body):
        self.replace_calls.append((name, copy.deepcopy(body)))
        self._check_version(name, body.metadata.resource_version)
        self.nodes[name] = copy.deepcopy(body)
        self._bump(name)
        return copy.deepcopy(self.nodes[name])

    def patch_node(self, name, body):
        self.patch_calls.append((name, copy.deepcopy(body)))
        metadata = body.get("metadata", {})
        self._check_version(name, metadata.get("resourceVersion"))
        stored = self.nodes[name].metadata
        annotations = dict(stored.annotations or {})
        annotations.update(metadata.get("annotations", {}))
        stored.annotations = annotations
        self._bump(name)
        return copy.deepcopy(self.nodes[name])


class FakeWatch:
    """Watch stand-in that replays scripted events, then idles briefly."""

    def __init__(self, events=(), error=None, on_stream=None):
        self.events = list(events)
        self.error = error
        self.on_stream = on_stream
        self.stream_kwargs = None
        self.stopped = threading.Event()

    def stream(self, func, **kwargs):
        self.stream_kwargs = kwargs
        if self.on_stream:
            self.on_stream()
        if self.error is not None:
            raise self.error
        for event in self.events:
            yield event
        self.stopped.wait(0.05)

    def stop(self):
        self.stopped.set()


@pytest.fixture
def ec2_api():
    """Mock boto3 EC2 client."""
    return Mock()


@pytest.fixture
def ec2_client(ec2_api):
    return EC2Client(region="us-mock-1", ec2_client=ec2_api)
