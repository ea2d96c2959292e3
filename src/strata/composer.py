"""
Stack composition.

The StackComposer builds the four layers in their fixed order, threading
each layer's outputs into the layers that consume them, and validates the
resulting topology before anything is handed to a provisioning engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .collaborators import Collaborators
from .config import ServiceIdentity, StackConfig
from .errors import StrataError
from .layers import (
    CICDLayer,
    DataLayer,
    DataOutputs,
    NetworkLayer,
    NetworkOutputs,
    ServiceLayer,
    ServiceOutputs,
)
from .topology import Topology

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComposedStack:
    """A complete, validated topology and every layer's outputs."""

    identity: ServiceIdentity
    network: NetworkOutputs
    data: DataOutputs
    service: ServiceOutputs
    cicd: CICDLayer
    topology: Topology

    def describe(self, reveal_secrets: bool = False) -> dict[str, Any]:
        """Tree of layer outputs plus the topology, JSON-able."""
        vpc = self.network.vpc
        data = self.data
        service = self.service
        return {
            "identity": {
                "service_name": self.identity.service_name,
                "underscore_name": self.identity.underscore_name,
                "hyphen_name": self.identity.hyphen_name,
                "zone_name": self.identity.zone_name,
                "app_directory": self.identity.app_directory,
            },
            "network": {
                "vpc": vpc.logical_id,
                "cidr": vpc.cidr,
                "zones": list(vpc.zones),
                "subnets": [
                    {"segment": s.segment, "zone": s.zone, "cidr": s.cidr, "id": s.logical_id}
                    for s in vpc.subnets
                ],
                "nat_gateways": list(vpc.nat_gateways),
                "cluster": self.network.cluster.logical_id,
            },
            "data": {
                "db_url": data.db_url.render() if reveal_secrets else data.db_url.masked(),
                "db_cluster": data.db_cluster.logical_id,
                "redis_host": data.redis_host.token,
                "redis_cluster": data.redis_cluster.logical_id,
            },
            "service": {
                "service": service.service.logical_id,
                "domain_name": service.service.domain_name,
                "container_name": service.container_name,
                "ecr_repo": service.ecr_repo.logical_id,
                "repo_name": service.repo_name,
            },
            "topology": self.topology.to_dict(reveal_secrets),
        }


class StackComposer:
    """
    Compose Network -> Data -> Service -> CICD into one topology.

    Usage:
        composer = StackComposer(config, collaborators)
        stack = composer.compose()
    """

    def __init__(self, config: StackConfig, collaborators: Collaborators):
        self.config = config
        self.collaborators = collaborators

    def compose(self) -> ComposedStack:
        """
        Build every layer once, in order, and validate the result.

        Returns:
            ComposedStack

        Raises:
            StrataError: The first failure from any layer; nothing partial
                is returned
        """
        topology = Topology()
        collaborators = self.collaborators
        logger.info("Composing stack for %s", self.config.identity.service_name)

        try:
            network = NetworkLayer(self.config, topology).build()
            data = DataLayer(self.config, topology, network, collaborators.secrets).build()
            service = ServiceLayer(
                self.config,
                topology,
                network,
                data,
                secrets=collaborators.secrets,
                images=collaborators.images,
                certificates=collaborators.certificates,
                project_root=collaborators.project_root,
            ).build()
            cicd = CICDLayer(self.config, topology, service)
            cicd.build()

            topology.validate()
        except StrataError as e:
            logger.error("Composition failed: %s", e)
            raise

        logger.info(
            "Composed %d resources, %d explicit edges", len(topology), len(topology.edges)
        )
        return ComposedStack(
            identity=self.config.identity,
            network=network,
            data=data,
            service=service,
            cicd=cicd,
            topology=topology,
        )


__all__ = ["ComposedStack", "StackComposer"]
