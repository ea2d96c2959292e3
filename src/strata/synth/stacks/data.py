"""
Data layer generator.

Generates the Redis replication group and the Aurora PostgreSQL cluster.
The database password appears only as a Secrets Manager reference.
"""

from __future__ import annotations

from ..generator import LayerGenerator, doc_text, literal

IMPORTS = """from aws_cdk import RemovalPolicy, SecretValue
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_elasticache as elasticache
from aws_cdk import aws_rds as rds"""


class DataStackGenerator(LayerGenerator):
    """Generate cache and relational cluster resources."""

    @property
    def layer_name(self) -> str:
        return "DataLayer"

    def _generate_layer_code(self) -> str:
        return f'''{self._generate_header(IMPORTS)}

class DataLayer(Construct):
    """
    Stateful stores for {doc_text(self.config.identity.service_name)}.

    Creates:
    - Redis replication group on the "{doc_text(self.config.cache.subnet_segment)}" segment
    - Aurora PostgreSQL cluster on the "{doc_text(self.config.database.subnet_segment)}" segment
    """

    def __init__(self, scope: Construct, id: str, network_layer) -> None:
        super().__init__(scope, id)

        vpc = network_layer.vpc

        self.redis_cluster, self.redis_host = self._create_redis_cluster(vpc)
        self.db_cluster, self.db_url = self._create_db_cluster(vpc)
{self._generate_redis_code()}
{self._generate_db_code()}'''

    def _generate_redis_code(self) -> str:
        cache = self.config.cache
        ingress_rules = "".join(
            f"""
        security_group.add_ingress_rule(
            ec2.Peer.ipv4({literal(cidr)}),
            ec2.Port.tcp({cache.port}),
            {literal(f'Allow from {cidr} on port {cache.port}')},
        )"""
            for cidr in cache.allowed_ingress_cidrs
        )

        return f'''
    def _create_redis_cluster(self, vpc):
        security_group = ec2.SecurityGroup(self, "SecurityGroup", vpc=vpc){ingress_rules}

        subnet_group = elasticache.CfnSubnetGroup(
            self,
            "SubnetGroup",
            cache_subnet_group_name={literal(cache.subnet_group_name)},
            description="Subnets for redis cache",
            subnet_ids=vpc.select_subnets(subnet_group_name={literal(cache.subnet_segment)}).subnet_ids,
        )

        redis_cluster = elasticache.CfnReplicationGroup(
            self,
            "Redis",
            replication_group_id={literal(cache.replication_group_id)},
            replication_group_description="redis",
            cache_node_type={literal(cache.node_type)},
            engine={literal(cache.engine)},
            port={cache.port},
            cache_subnet_group_name=subnet_group.cache_subnet_group_name,
            security_group_ids=[security_group.security_group_id],
            num_cache_clusters={cache.num_cache_clusters},
            automatic_failover_enabled={cache.automatic_failover},
        )
        redis_cluster.add_dependency(subnet_group)

        return redis_cluster, redis_cluster.attr_primary_end_point_address
'''

    def _generate_db_code(self) -> str:
        db = self.config.database
        handle = self.stack.data.db_cluster
        instance_type = literal(db.instance_type.removeprefix("db."))
        major_version = db.engine_version.split(".")[0]

        readers = ""
        if db.instances > 1:
            readers = "\n            readers=[\n" + "".join(
                f"""                rds.ClusterInstance.provisioned(
                    "Reader{index}",
                    instance_type=ec2.InstanceType({instance_type}),
                ),
"""
                for index in range(1, db.instances)
            ) + "            ],"

        return f'''
    def _create_db_cluster(self, vpc):
        scheme = {literal(db.scheme)}
        username = {literal(handle.username)}
        password = SecretValue.secrets_manager({literal(handle.password_path)})
        database_name = {literal(handle.database_name)}

        parameter_group = rds.ParameterGroup.from_parameter_group_name(
            self, "DBClusterPG", {literal(db.parameter_group)}
        )

        db_cluster = rds.DatabaseCluster(
            self,
            "DBCluster",
            engine=rds.DatabaseClusterEngine.aurora_postgres(
                version=rds.AuroraPostgresEngineVersion.of(
                    {literal(db.engine_version)}, {literal(major_version)}
                ),
            ),
            credentials=rds.Credentials.from_password(username, password),
            writer=rds.ClusterInstance.provisioned(
                "Writer",
                instance_type=ec2.InstanceType({instance_type}),
            ),{readers}
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_group_name={literal(db.subnet_segment)}),
            port={db.port},
            default_database_name=database_name,
            removal_policy=RemovalPolicy.{db.removal_policy.value.upper()},
            parameter_group=parameter_group,
        )

        db_url = (
            f"{{scheme}}://{{username}}:{{password.unsafe_unwrap()}}"
            f"@{{db_cluster.cluster_endpoint.socket_address}}/{{database_name}}"
        )
        return db_cluster, db_url
'''
