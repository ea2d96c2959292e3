"""
Network layer.

Declares the isolation domain: a VPC partitioned into named subnet
segments repeated in every availability zone, one NAT gateway per zone,
and the compute cluster that workloads are placed on.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from ..config import (
    REQUIRED_SEGMENTS,
    SEGMENT_INGRESS,
    SubnetSegmentConfig,
    SubnetType,
)
from ..errors import ConfigurationError, PlacementError
from ..topology import Ref
from .base import Layer

MIN_AVAILABILITY_ZONES = 2


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class Subnet:
    """One subnet: a segment in a single zone."""

    logical_id: str
    segment: str
    subnet_type: SubnetType
    zone: str
    cidr: str

    @property
    def subnet_id(self) -> Ref:
        return Ref(self.logical_id, "SubnetId")


@dataclass(frozen=True)
class VpcHandle:
    """The isolation domain."""

    logical_id: str
    cidr: str
    zones: tuple[str, ...]
    subnets: tuple[Subnet, ...]
    nat_gateways: tuple[str, ...]

    @property
    def vpc_id(self) -> Ref:
        return Ref(self.logical_id, "VpcId")

    @property
    def segment_names(self) -> tuple[str, ...]:
        names: list[str] = []
        for subnet in self.subnets:
            if subnet.segment not in names:
                names.append(subnet.segment)
        return tuple(names)

    def select_subnets(self, segment: str) -> tuple[Subnet, ...]:
        """
        Subnets of a named segment, one per zone.

        Raises:
            PlacementError: If no segment has that name
        """
        selected = tuple(s for s in self.subnets if s.segment == segment)
        if not selected:
            raise PlacementError(
                f"Subnet segment '{segment}' not found "
                f"(available: {', '.join(self.segment_names) or 'none'})"
            )
        return selected


@dataclass(frozen=True)
class ClusterHandle:
    """Compute placement scoped to a VPC."""

    logical_id: str
    vpc_logical_id: str

    @property
    def cluster_name(self) -> Ref:
        return Ref(self.logical_id, "ClusterName")


@dataclass(frozen=True)
class NetworkOutputs:
    vpc: VpcHandle
    cluster: ClusterHandle


# =============================================================================
# Address planning
# =============================================================================


def allocate_subnets(
    vpc_cidr: str,
    segments: list[SubnetSegmentConfig],
    zones: list[str],
) -> list[tuple[SubnetSegmentConfig, str, ipaddress.IPv4Network]]:
    """
    Carve per-zone subnets out of the VPC address space.

    Segments are allocated in configuration order, zones in order within
    each segment, and every block is aligned to its own size.

    Raises:
        ConfigurationError: If the CIDR is malformed or too small
    """
    try:
        vpc = ipaddress.ip_network(vpc_cidr)
    except ValueError as e:
        raise ConfigurationError(f"Invalid VPC CIDR '{vpc_cidr}': {e}") from e
    if not isinstance(vpc, ipaddress.IPv4Network):
        raise ConfigurationError(f"VPC CIDR must be IPv4, got '{vpc_cidr}'")

    allocations = []
    cursor = int(vpc.network_address)
    end = int(vpc.broadcast_address) + 1

    for segment in segments:
        if segment.cidr_mask < vpc.prefixlen:
            raise ConfigurationError(
                f"Segment '{segment.name}' /{segment.cidr_mask} is larger than the VPC {vpc_cidr}"
            )
        size = 2 ** (32 - segment.cidr_mask)
        for zone in zones:
            cursor = -(-cursor // size) * size  # align up
            if cursor + size > end:
                raise ConfigurationError(
                    f"Address space {vpc_cidr} cannot fit segments "
                    f"{', '.join(f'{s.name}/{s.cidr_mask}' for s in segments)} "
                    f"across {len(zones)} zones"
                )
            block = ipaddress.IPv4Network((cursor, segment.cidr_mask))
            allocations.append((segment, zone, block))
            cursor += size

    return allocations


# =============================================================================
# Layer
# =============================================================================


class NetworkLayer(Layer[NetworkOutputs]):
    """Declare the VPC, its subnets, NAT gateways and the compute cluster."""

    name = "NetworkLayer"

    def _build(self) -> NetworkOutputs:
        network = self.config.network
        zones = network.resolve_zone_names(self.config.region)
        self._check_partition(network.segments, zones)

        vpc = self.declare(
            "Vpc",
            "ec2.Vpc",
            cidr=network.vpc_cidr,
            max_azs=len(zones),
            enable_dns_support=network.enable_dns_support,
            enable_dns_hostnames=network.enable_dns_support,
        )

        subnets: list[Subnet] = []
        counters: dict[str, int] = {}
        for segment, zone, block in allocate_subnets(network.vpc_cidr, network.segments, zones):
            counters[segment.name] = counters.get(segment.name, 0) + 1
            resource = self.declare(
                f"{segment.name}Subnet{counters[segment.name]}",
                "ec2.Subnet",
                vpc_id=vpc.ref("VpcId"),
                cidr=str(block),
                availability_zone=zone,
                subnet_type=segment.subnet_type,
                map_public_ip_on_launch=segment.subnet_type == SubnetType.PUBLIC,
            )
            subnets.append(
                Subnet(
                    logical_id=resource.logical_id,
                    segment=segment.name,
                    subnet_type=segment.subnet_type,
                    zone=zone,
                    cidr=str(block),
                )
            )

        self.declare("InternetGateway", "ec2.InternetGateway", vpc_id=vpc.ref("VpcId"))

        # One egress path per zone, in that zone's public subnet
        nat_gateways = []
        for index, public in enumerate(s for s in subnets if s.segment == SEGMENT_INGRESS):
            nat = self.declare(
                f"NatGateway{index + 1}",
                "ec2.NatGateway",
                subnet_id=public.subnet_id,
                availability_zone=public.zone,
            )
            nat_gateways.append(nat.logical_id)

        cluster = self.declare("ECSCluster", "ecs.Cluster", vpc_id=vpc.ref("VpcId"))

        return NetworkOutputs(
            vpc=VpcHandle(
                logical_id=vpc.logical_id,
                cidr=network.vpc_cidr,
                zones=tuple(zones),
                subnets=tuple(subnets),
                nat_gateways=tuple(nat_gateways),
            ),
            cluster=ClusterHandle(logical_id=cluster.logical_id, vpc_logical_id=vpc.logical_id),
        )

    def _check_partition(self, segments: list[SubnetSegmentConfig], zones: list[str]) -> None:
        if len(zones) < MIN_AVAILABILITY_ZONES:
            raise ConfigurationError(
                f"At least {MIN_AVAILABILITY_ZONES} availability zones required, got {len(zones)}"
            )
        if len(set(zones)) != len(zones):
            raise ConfigurationError(f"Duplicate availability zones: {', '.join(zones)}")

        names = [s.name for s in segments]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate subnet segment names: {', '.join(duplicates)}")

        missing = [n for n in REQUIRED_SEGMENTS if n not in names]
        if missing:
            raise ConfigurationError(f"Missing required subnet segments: {', '.join(missing)}")

        ingress = next(s for s in segments if s.name == SEGMENT_INGRESS)
        if ingress.subnet_type != SubnetType.PUBLIC:
            raise ConfigurationError(
                f"Segment '{SEGMENT_INGRESS}' must be public to host NAT gateways"
            )


__all__ = [
    "MIN_AVAILABILITY_ZONES",
    "Subnet",
    "VpcHandle",
    "ClusterHandle",
    "NetworkOutputs",
    "allocate_subnets",
    "NetworkLayer",
]
