"""
Service layer generator.

Generates the load-balanced Fargate service, its certificate and DNS
binding, the ECR repository and the two post-construction grants.
"""

from __future__ import annotations

import os

from ..generator import LayerGenerator, doc_text, literal

IMPORTS = """from aws_cdk import Duration
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecr as ecr
from aws_cdk import aws_ecr_assets as ecr_assets
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_ecs_patterns as ecs_patterns
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_secretsmanager as secretsmanager"""


def _construct_id(variable: str) -> str:
    """SECRET_KEY_BASE -> SecretKeyBaseSecret"""
    return "".join(part.capitalize() for part in variable.split("_") if part) + "Secret"


class ServiceStackGenerator(LayerGenerator):
    """Generate the Fargate service and its public edge."""

    @property
    def layer_name(self) -> str:
        return "ServiceLayer"

    def _generate_layer_code(self) -> str:
        identity = self.config.identity
        service = self.config.service
        health = service.health_check
        outputs = self.stack.service

        app_directory = os.path.relpath(
            self.project_root / identity.app_directory, self.output_dir
        )
        task_segment = "ingress" if service.assign_public_ip else "application"

        return f'''{self._generate_header(IMPORTS)}

class ServiceLayer(Construct):
    """
    Deployable workload for {doc_text(identity.service_name)}.

    Creates:
    - Docker image asset built from {doc_text(str(identity.app_directory))}
    - Load-balanced Fargate service at https://{doc_text(outputs.service.domain_name)}
    - ECR repository "{doc_text(outputs.repo_name)}"
    """

    def __init__(self, scope: Construct, id: str, network_layer, data_layer) -> None:
        super().__init__(scope, id)

        cluster = network_layer.cluster
        db = data_layer.db_cluster

        asset = ecr_assets.DockerImageAsset(
            self, "ImageAssetBuild", directory={literal(app_directory)}
        )
        self.repo_name = {literal(outputs.repo_name)}
        image = ecs.ContainerImage.from_docker_image_asset(asset)

        domain_zone = route53.HostedZone.from_lookup(
            self, "Zone", domain_name={literal(identity.zone_name)}
        )
        domain_name = {literal(outputs.service.domain_name)}
        certificate = acm.Certificate(
            self,
            "Certificate",
            domain_name=domain_name,
            validation=acm.CertificateValidation.from_dns(domain_zone),
        )

        environment = {{{self._generate_environment()}
            "REDIS_HOST": data_layer.redis_host,
            "DATABASE_URL": data_layer.db_url,
        }}
        secrets = {{{self._generate_secrets()}
        }}

        lb_fargate_service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            "LBFargate",
            service_name={literal(identity.service_name)},
            cluster=cluster,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                image=image,
                container_name={literal(service.container_name)},
                container_port={service.container_port},
                environment=environment,
                secrets=secrets,
                enable_logging={service.enable_logging},
            ),
            domain_name=domain_name,
            domain_zone=domain_zone,
            certificate=certificate,
            memory_limit_mib={service.memory_limit_mib},
            cpu={service.cpu},
            desired_count={service.desired_count},
            public_load_balancer={service.public_load_balancer},
            assign_public_ip={service.assign_public_ip},
            task_subnets=ec2.SubnetSelection(subnet_group_name="{task_segment}"),
        )

        lb_fargate_service.target_group.configure_health_check(
            path={literal(health.path)},
            healthy_threshold_count={health.healthy_threshold},
            unhealthy_threshold_count={health.unhealthy_threshold},
            interval=Duration.seconds({health.interval_seconds}),
            timeout=Duration.seconds({health.timeout_seconds}),
        )
        lb_fargate_service.target_group.set_attribute(
            "deregistration_delay.timeout_seconds", "{health.deregistration_delay_seconds}"
        )

        db.connections.allow_default_port_from(lb_fargate_service.service, "From Fargate")
        self.service = lb_fargate_service.service
        self.container_name = lb_fargate_service.task_definition.default_container.container_name

        self.ecr_repo = ecr.Repository(self, "Repo", repository_name=self.repo_name)
        self.ecr_repo.grant_pull(lb_fargate_service.task_definition.execution_role)
'''

    def _generate_environment(self) -> str:
        return "".join(
            f"\n            {literal(name)}: {literal(value)},"
            for name, value in self.config.service.environment.items()
        )

    def _generate_secrets(self) -> str:
        return "".join(
            f"""
            {literal(variable)}: ecs.Secret.from_secrets_manager(
                secretsmanager.Secret.from_secret_name_v2(
                    self, {literal(_construct_id(variable))}, {literal(path.path)}
                )
            ),"""
            for variable, path in self.config.service.secrets.items()
        )
