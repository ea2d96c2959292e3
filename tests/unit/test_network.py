"""Tests for the network layer."""

import pytest

from strata.config import NetworkConfig, StackConfig, SubnetSegmentConfig, SubnetType
from strata.errors import ConfigurationError, PlacementError
from strata.layers.network import NetworkLayer, allocate_subnets
from strata.topology import Topology


def build_network(config: StackConfig):
    topology = Topology()
    return NetworkLayer(config, topology).build(), topology


class TestAllocateSubnets:
    """Tests for address planning."""

    def test_default_layout(self):
        """Test the default segments in a /21 across two zones."""
        network = NetworkConfig()

        allocations = allocate_subnets(network.vpc_cidr, network.segments, ["a", "b"])

        assert [(s.name, zone, str(block)) for s, zone, block in allocations] == [
            ("application", "a", "10.0.0.0/24"),
            ("application", "b", "10.0.1.0/24"),
            ("ingress", "a", "10.0.2.0/24"),
            ("ingress", "b", "10.0.3.0/24"),
            ("database", "a", "10.0.4.0/28"),
            ("database", "b", "10.0.4.16/28"),
        ]

    def test_blocks_are_aligned(self):
        """Test a larger block after a smaller one starts on its own boundary."""
        segments = [
            SubnetSegmentConfig(name="small", subnet_type=SubnetType.PUBLIC, cidr_mask=28),
            SubnetSegmentConfig(name="large", subnet_type=SubnetType.PUBLIC, cidr_mask=24),
        ]

        allocations = allocate_subnets("10.0.0.0/21", segments, ["a"])

        assert [str(block) for _, _, block in allocations] == ["10.0.0.0/28", "10.0.1.0/24"]

    def test_address_space_too_small(self):
        """Test segments that do not fit."""
        network = NetworkConfig()

        with pytest.raises(ConfigurationError, match="cannot fit"):
            allocate_subnets("10.0.0.0/23", network.segments, ["a", "b"])

    def test_invalid_cidr(self):
        """Test a malformed VPC CIDR."""
        with pytest.raises(ConfigurationError, match="Invalid VPC CIDR"):
            allocate_subnets("10.0.0.300/21", NetworkConfig().segments, ["a", "b"])

    def test_segment_larger_than_vpc(self):
        """Test a segment mask wider than the VPC."""
        segments = [SubnetSegmentConfig(name="big", subnet_type=SubnetType.PUBLIC, cidr_mask=16)]

        with pytest.raises(ConfigurationError, match="larger than the VPC"):
            allocate_subnets("10.0.0.0/21", segments, ["a"])


class TestNetworkLayer:
    """Tests for NetworkLayer."""

    def test_outputs(self, stack_config: StackConfig):
        """Test the VPC, subnets and cluster outputs."""
        outputs, topology = build_network(stack_config)
        vpc = outputs.vpc

        assert vpc.logical_id == "NetworkLayer/Vpc"
        assert vpc.zones == ("us-east-1a", "us-east-1b")
        assert vpc.segment_names == ("application", "ingress", "database")
        assert len(vpc.subnets) == 6
        assert outputs.cluster.vpc_logical_id == vpc.logical_id
        assert "NetworkLayer/ECSCluster" in topology

    def test_every_segment_in_every_zone(self, stack_config: StackConfig):
        """Test each segment has one subnet per zone."""
        outputs, _ = build_network(stack_config)

        for segment in outputs.vpc.segment_names:
            zones = [s.zone for s in outputs.vpc.select_subnets(segment)]
            assert zones == list(outputs.vpc.zones)

    def test_nat_per_zone(self, stack_config: StackConfig):
        """Test one NAT gateway per zone, in the ingress segment."""
        outputs, topology = build_network(stack_config)

        assert outputs.vpc.nat_gateways == ("NetworkLayer/NatGateway1", "NetworkLayer/NatGateway2")
        ingress_ids = {s.logical_id for s in outputs.vpc.select_subnets("ingress")}
        for nat_id in outputs.vpc.nat_gateways:
            nat = topology.require(nat_id)
            assert nat.properties["subnet_id"].resource_id in ingress_ids

    def test_select_missing_segment(self, stack_config: StackConfig):
        """Test selecting a segment that does not exist."""
        outputs, _ = build_network(stack_config)

        with pytest.raises(PlacementError, match="'cache' not found"):
            outputs.vpc.select_subnets("cache")

    def test_single_zone_rejected(self, stack_data):
        """Test fewer than two zones."""
        stack_data["network"] = {"availability_zones": 1}
        config = StackConfig.model_validate(stack_data)

        with pytest.raises(ConfigurationError, match="At least 2 availability zones") as exc:
            build_network(config)
        assert exc.value.context.layer == "NetworkLayer"

    def test_missing_required_segment(self, stack_data):
        """Test the database segment is required."""
        stack_data["network"] = {
            "segments": [
                {"name": "application", "subnet_type": "private_with_egress", "cidr_mask": 24},
                {"name": "ingress", "subnet_type": "public", "cidr_mask": 24},
            ]
        }
        config = StackConfig.model_validate(stack_data)

        with pytest.raises(ConfigurationError, match="Missing required subnet segments: database"):
            build_network(config)

    def test_ingress_must_be_public(self, stack_data):
        """Test the ingress segment hosts NAT gateways and must be public."""
        stack_data["network"] = {
            "segments": [
                {"name": "application", "subnet_type": "private_with_egress", "cidr_mask": 24},
                {"name": "ingress", "subnet_type": "private_isolated", "cidr_mask": 24},
                {"name": "database", "subnet_type": "private_isolated", "cidr_mask": 28},
            ]
        }
        config = StackConfig.model_validate(stack_data)

        with pytest.raises(ConfigurationError, match="must be public"):
            build_network(config)

    def test_duplicate_zone_names(self, stack_data):
        """Test explicit zone names must be distinct."""
        stack_data["network"] = {"zone_names": ["us-east-1a", "us-east-1a"]}
        config = StackConfig.model_validate(stack_data)

        with pytest.raises(ConfigurationError, match="Duplicate availability zones"):
            build_network(config)
