"""
Data layer.

Declares the stateful stores inside the network's isolation domain:

- A Redis replication group on the application segment
- An Aurora PostgreSQL cluster on the database segment

and returns connection descriptors for both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..connection import ConnectionUrl
from ..errors import ConfigurationError
from ..topology import Ref
from .base import Layer

if TYPE_CHECKING:
    from ..collaborators import SecretStore
    from ..config import StackConfig
    from ..topology import Topology
    from .network import NetworkOutputs

logger = logging.getLogger(__name__)


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class DatabaseClusterHandle:
    """The relational cluster and what is needed to reach it."""

    logical_id: str
    vpc_logical_id: str
    security_group_id: str
    port: int
    database_name: str
    username: str
    password_path: str

    @property
    def endpoint_address(self) -> Ref:
        return Ref(self.logical_id, "Endpoint.Address")


@dataclass(frozen=True)
class CacheClusterHandle:
    """The cache replication group."""

    logical_id: str
    vpc_logical_id: str
    security_group_id: str
    subnet_group_id: str
    port: int

    @property
    def primary_endpoint_address(self) -> Ref:
        return Ref(self.logical_id, "PrimaryEndPoint.Address")


@dataclass(frozen=True)
class DataOutputs:
    db_url: ConnectionUrl
    db_cluster: DatabaseClusterHandle
    redis_host: Ref
    redis_cluster: CacheClusterHandle


# =============================================================================
# Layer
# =============================================================================


class DataLayer(Layer[DataOutputs]):
    """Declare the cache and relational clusters."""

    name = "DataLayer"
    depends_on = ("NetworkLayer",)

    def __init__(
        self,
        config: StackConfig,
        topology: Topology,
        network: NetworkOutputs,
        secrets: SecretStore,
    ):
        super().__init__(config, topology)
        self.network = network
        self.secrets = secrets

    def _build(self) -> DataOutputs:
        redis_cluster = self._create_redis_cluster()
        db_cluster, db_url = self._create_db_cluster()

        return DataOutputs(
            db_url=db_url,
            db_cluster=db_cluster,
            redis_host=redis_cluster.primary_endpoint_address,
            redis_cluster=redis_cluster,
        )

    def _create_redis_cluster(self) -> CacheClusterHandle:
        cache = self.config.cache
        vpc = self.network.vpc

        if not cache.allowed_ingress_cidrs:
            raise ConfigurationError("Cache ingress sources must be listed explicitly")
        if cache.automatic_failover and cache.num_cache_clusters < 2:
            raise ConfigurationError("Automatic failover needs at least 2 cache clusters")

        subnets = vpc.select_subnets(cache.subnet_segment)

        security_group = self.declare(
            "SecurityGroup",
            "ec2.SecurityGroup",
            vpc_id=vpc.vpc_id,
            description="Redis cache",
            ingress=[
                {
                    "cidr": cidr,
                    "protocol": "tcp",
                    "port": cache.port,
                    "description": f"Allow from {cidr} on port {cache.port}",
                }
                for cidr in cache.allowed_ingress_cidrs
            ],
        )

        subnet_group = self.declare(
            "SubnetGroup",
            "elasticache.SubnetGroup",
            cache_subnet_group_name=cache.subnet_group_name,
            description="Subnets for redis cache",
            subnet_ids=[s.subnet_id for s in subnets],
        )
        for subnet in subnets:
            self.topology.depends_on(
                subnet_group.logical_id,
                subnet.logical_id,
                f"subnet group spans the {cache.subnet_segment} segment",
            )

        # The replication group names its subnet group by string, so the
        # engine cannot see this dependency on its own.
        redis = self.declare(
            "Redis",
            "elasticache.ReplicationGroup",
            replication_group_id=cache.replication_group_id,
            replication_group_description="redis",
            cache_node_type=cache.node_type,
            engine=cache.engine,
            port=cache.port,
            cache_subnet_group_name=cache.subnet_group_name,
            security_group_ids=[security_group.ref("GroupId")],
            num_cache_clusters=cache.num_cache_clusters,
            automatic_failover_enabled=cache.automatic_failover,
        )
        self.topology.depends_on(
            redis.logical_id, subnet_group.logical_id, "replication group needs its subnet group"
        )

        return CacheClusterHandle(
            logical_id=redis.logical_id,
            vpc_logical_id=vpc.logical_id,
            security_group_id=security_group.logical_id,
            subnet_group_id=subnet_group.logical_id,
            port=cache.port,
        )

    def _create_db_cluster(self) -> tuple[DatabaseClusterHandle, ConnectionUrl]:
        db = self.config.database
        vpc = self.network.vpc

        subnets = vpc.select_subnets(db.subnet_segment)

        password_path = db.password_path.path
        password = self.secrets.resolve(password_path)
        logger.debug("Resolved database password from %s", password_path)

        database_name = db.resolve_database_name(self.config.identity)

        security_group = self.declare(
            "DBSecurityGroup",
            "ec2.SecurityGroup",
            vpc_id=vpc.vpc_id,
            description="Database cluster",
            ingress=[],
        )

        subnet_group = self.declare(
            "DBSubnetGroup",
            "rds.SubnetGroup",
            description="Subnets for the database cluster",
            subnet_ids=[s.subnet_id for s in subnets],
        )

        cluster = self.declare(
            "DBCluster",
            "rds.DatabaseCluster",
            engine=db.engine,
            engine_version=db.engine_version,
            port=db.port,
            master_username=db.username,
            master_password=password,
            master_password_path=password_path,
            default_database_name=database_name,
            parameter_group_name=db.parameter_group,
            db_subnet_group_name=subnet_group.ref("DBSubnetGroupName"),
            vpc_security_group_ids=[security_group.ref("GroupId")],
            removal_policy=db.removal_policy,
        )
        for index in range(db.instances):
            self.declare(
                f"DBClusterInstance{index + 1}",
                "rds.DatabaseInstance",
                db_cluster_identifier=cluster.ref("ClusterIdentifier"),
                instance_type=db.instance_type,
                engine=db.engine,
            )

        handle = DatabaseClusterHandle(
            logical_id=cluster.logical_id,
            vpc_logical_id=vpc.logical_id,
            security_group_id=security_group.logical_id,
            port=db.port,
            database_name=database_name,
            username=db.username,
            password_path=password_path,
        )
        url = ConnectionUrl(
            scheme=db.scheme,
            user=db.username,
            password=password,
            host=handle.endpoint_address.token,
            port=db.port,
            database=database_name,
        )
        return handle, url


__all__ = [
    "DatabaseClusterHandle",
    "CacheClusterHandle",
    "DataOutputs",
    "DataLayer",
]
