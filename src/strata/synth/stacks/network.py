"""
Network layer generator.

Generates the VPC with its named subnet segments and the ECS cluster.
"""

from __future__ import annotations

from ..generator import LayerGenerator, doc_text, literal


class NetworkStackGenerator(LayerGenerator):
    """Generate VPC and compute cluster resources."""

    @property
    def layer_name(self) -> str:
        return "NetworkLayer"

    def _generate_layer_code(self) -> str:
        network = self.config.network
        vpc = self.stack.network.vpc

        zones_code = (
            f"availability_zones=[{', '.join(literal(zone) for zone in vpc.zones)}],"
            if network.zone_names
            else f"max_azs={len(vpc.zones)},"
        )
        subnets_code = "".join(
            f"""
                ec2.SubnetConfiguration(
                    name={literal(segment.name)},
                    subnet_type=ec2.SubnetType.{segment.subnet_type.value.upper()},
                    cidr_mask={segment.cidr_mask},
                ),"""
            for segment in network.segments
        )

        header = self._generate_header(
            "from aws_cdk import aws_ec2 as ec2\nfrom aws_cdk import aws_ecs as ecs"
        )

        return f'''{header}

class NetworkLayer(Construct):
    """
    Isolation domain for {doc_text(self.config.identity.service_name)}.

    Creates:
    - VPC ({doc_text(vpc.cidr)}) across {len(vpc.zones)} availability zones
    - Subnet segments: {doc_text(", ".join(vpc.segment_names))}
    - One NAT gateway per zone
    - ECS cluster
    """

    def __init__(self, scope: Construct, id: str) -> None:
        super().__init__(scope, id)

        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            {zones_code}
            ip_addresses=ec2.IpAddresses.cidr({literal(vpc.cidr)}),
            enable_dns_support={network.enable_dns_support},
            enable_dns_hostnames={network.enable_dns_support},
            nat_gateways={len(vpc.nat_gateways)},
            subnet_configuration=[{subnets_code}
            ],
        )

        self.cluster = ecs.Cluster(self, "ECSCluster", vpc=self.vpc)
'''
