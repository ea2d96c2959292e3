"""
Topology layers.

Each module declares one layer, leaf-first:
- network: VPC, subnet segments, NAT gateways, ECS cluster
- data: Redis replication group, Aurora PostgreSQL cluster
- service: image, load-balanced Fargate service, certificate, grants
- cicd: delivery pipeline (terminal consumer)
"""

from .base import Layer
from .cicd import CICDLayer
from .data import CacheClusterHandle, DatabaseClusterHandle, DataLayer, DataOutputs
from .network import ClusterHandle, NetworkLayer, NetworkOutputs, Subnet, VpcHandle
from .service import (
    RepositoryHandle,
    ServiceHandle,
    ServiceLayer,
    ServiceOutputs,
    derive_repository_name,
)

__all__ = [
    "Layer",
    "NetworkLayer",
    "NetworkOutputs",
    "VpcHandle",
    "Subnet",
    "ClusterHandle",
    "DataLayer",
    "DataOutputs",
    "DatabaseClusterHandle",
    "CacheClusterHandle",
    "ServiceLayer",
    "ServiceOutputs",
    "ServiceHandle",
    "RepositoryHandle",
    "derive_repository_name",
    "CICDLayer",
]
