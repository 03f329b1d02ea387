"""Shared pytest fixtures and configuration."""
from datetime import datetime, timezone
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes.client import (
    CoreV1Api,
    V1EndpointAddress,
    V1Endpoints,
    V1EndpointSubset,
    V1ObjectMeta,
    V1Service,
)

from service_uptime import ClusterClient, Target

# Pytest markers are defined in pyproject.toml

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)
NOW = datetime(2024, 1, 2, tzinfo=timezone.utc)


def make_service(name: str = "checkout", created: Optional[datetime] = CREATED) -> V1Service:
    return V1Service(metadata=V1ObjectMeta(name=name, creation_timestamp=created))


def make_endpoints(*address_counts: Optional[int], name: str = "checkout") -> V1Endpoints:
    """One subset per count; None builds a subset without an addresses list."""
    subsets: List[V1EndpointSubset] = []
    n = 0
    for count in address_counts:
        if count is None:
            subsets.append(V1EndpointSubset())
            continue
        addresses = []
        for _ in range(count):
            n += 1
            addresses.append(V1EndpointAddress(ip=f"10.0.0.{n}"))
        subsets.append(V1EndpointSubset(addresses=addresses))
    return V1Endpoints(metadata=V1ObjectMeta(name=name), subsets=subsets or None)


@pytest.fixture
def target() -> Target:
    return Target(namespace="prod", name="checkout")


@pytest.fixture
def core_api() -> MagicMock:
    api = MagicMock(spec=CoreV1Api)
    api.read_namespaced_service.return_value = make_service()
    api.read_namespaced_endpoints.return_value = make_endpoints(4)
    return api


@pytest.fixture
def cluster_client(core_api: MagicMock) -> ClusterClient:
    return ClusterClient(api=core_api)
