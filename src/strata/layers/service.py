"""
Service layer.

Declares the deployable workload and its public edge:

- Container image (built from the application directory) and ECR repository
- Fargate task definition and service on the network's cluster
- TLS-terminated Application Load Balancer bound to <service>.<zone>
- Grants: service -> database port, execution role -> repository pull
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config import SEGMENT_APPLICATION, SEGMENT_INGRESS
from ..errors import ConfigurationError, PlacementError
from ..topology import Ref, Resource
from .base import Layer

if TYPE_CHECKING:
    from pathlib import Path

    from ..collaborators import CertificateIssuer, ImageBuilder, SecretStore
    from ..config import StackConfig
    from ..topology import Topology
    from .data import DatabaseClusterHandle, DataOutputs
    from .network import NetworkOutputs

logger = logging.getLogger(__name__)

HTTPS_PORT = 443


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class ServiceHandle:
    """The running service and the resources around it."""

    logical_id: str
    service_name: str
    cluster_logical_id: str
    task_definition_id: str
    execution_role_id: str
    security_group_id: str
    load_balancer_id: str
    target_group_id: str
    domain_name: str
    container_port: int

    @property
    def service_arn(self) -> Ref:
        return Ref(self.logical_id, "ServiceArn")


@dataclass(frozen=True)
class RepositoryHandle:
    logical_id: str

    @property
    def repository_uri(self) -> Ref:
        return Ref(self.logical_id, "RepositoryUri")


@dataclass(frozen=True)
class ServiceOutputs:
    service: ServiceHandle
    container_name: str
    ecr_repo: RepositoryHandle
    repo_name: str


# =============================================================================
# Pure helpers
# =============================================================================


def derive_repository_name(image_uri: str) -> str:
    """
    Repository name for an image URI.

    Strips the digest, the registry host and any tag:
    ``registry.example.com/myrepo/app:latest@sha256:abc`` -> ``myrepo/app``.

    Raises:
        ConfigurationError: If nothing is left after stripping
    """
    parts = image_uri.split("@", 1)[0].split("/")
    name = "/".join(parts[1:]).split(":")[0]
    if not name:
        raise ConfigurationError(f"Cannot derive a repository name from '{image_uri}'")
    return name


def grant_store_access(
    topology: Topology,
    layer: str,
    service_id: str,
    db_cluster: DatabaseClusterHandle,
) -> Resource:
    """Allow the service to reach the database cluster's listening port."""
    return topology.grant(
        layer,
        "DatabaseAccessGrant",
        principal=service_id,
        target=db_cluster.logical_id,
        action="connect",
        port=db_cluster.port,
        security_group=db_cluster.security_group_id,
        description="From Fargate",
    )


def grant_repository_pull(
    topology: Topology,
    layer: str,
    execution_role_id: str,
    repository_id: str,
    container_name: str,
) -> Resource:
    """Allow the task execution role to pull images from the repository."""
    return topology.grant(
        layer,
        "RepositoryPullGrant",
        principal=execution_role_id,
        target=repository_id,
        action="ecr:pull",
        container_name=container_name,
    )


# =============================================================================
# Layer
# =============================================================================


class ServiceLayer(Layer[ServiceOutputs]):
    """Declare the load-balanced Fargate service and its grants."""

    name = "ServiceLayer"
    depends_on = ("NetworkLayer", "DataLayer")

    def __init__(
        self,
        config: StackConfig,
        topology: Topology,
        network: NetworkOutputs,
        data: DataOutputs,
        secrets: SecretStore,
        images: ImageBuilder,
        certificates: CertificateIssuer,
        project_root: Path,
    ):
        super().__init__(config, topology)
        self.network = network
        self.data = data
        self.secrets = secrets
        self.images = images
        self.certificates = certificates
        self.project_root = project_root

    def _build(self) -> ServiceOutputs:
        identity = self.config.identity
        service = self.config.service
        vpc = self.network.vpc
        cluster = self.network.cluster

        if cluster.vpc_logical_id != vpc.logical_id:
            raise PlacementError(
                f"Cluster '{cluster.logical_id}' is not placed in VPC '{vpc.logical_id}'"
            )
        ingress_subnets = vpc.select_subnets(SEGMENT_INGRESS)
        task_subnets = (
            ingress_subnets if service.assign_public_ip else vpc.select_subnets(SEGMENT_APPLICATION)
        )

        # =====================================================================
        # Image
        # =====================================================================

        image = self.images.build(self.project_root / identity.app_directory)
        repo_name = derive_repository_name(image.uri)
        self.declare(
            "ImageAssetBuild",
            "ecr_assets.DockerImageAsset",
            directory=identity.app_directory,
            image_uri=image.uri,
            repository_name=repo_name,
        )

        # =====================================================================
        # DNS & certificate
        # =====================================================================

        zone = self.certificates.lookup_zone(identity.zone_name)
        domain_name = f"{identity.hyphen_name}.{zone.zone_name}"
        certificate = self.certificates.issue(domain_name, zone)
        certificate_resource = self.declare(
            "Certificate",
            "acm.Certificate",
            domain_name=certificate.domain_name,
            validation=certificate.validation,
            hosted_zone_id=zone.zone_id,
            hosted_zone_name=zone.zone_name,
        )
        logger.info("Service domain: %s", domain_name)

        # =====================================================================
        # Task definition
        # =====================================================================

        app_secrets = {}
        secret_paths = {}
        for variable, path in service.secrets.items():
            app_secrets[variable] = self.secrets.resolve(path.path)
            secret_paths[variable] = path.path
            logger.debug("Resolved %s from %s", variable, path.path)

        execution_role = self.declare(
            "ExecutionRole", "iam.Role", assumed_by="ecs-tasks.amazonaws.com"
        )
        log_group = (
            self.declare("LogGroup", "logs.LogGroup", stream_prefix=identity.hyphen_name)
            if service.enable_logging
            else None
        )

        container = {
            "name": service.container_name,
            "image": image.uri,
            "container_port": service.container_port,
            "environment": {
                **service.environment,
                "REDIS_HOST": self.data.redis_host,
                "DATABASE_URL": self.data.db_url,
            },
            "secrets": app_secrets,
            "secret_paths": secret_paths,
            "log_group": log_group.ref("LogGroupName") if log_group else None,
        }
        task_definition = self.declare(
            "TaskDefinition",
            "ecs.FargateTaskDefinition",
            cpu=service.cpu,
            memory_limit_mib=service.memory_limit_mib,
            execution_role_arn=execution_role.ref("Arn"),
            containers=[container],
        )
        self.topology.depends_on(
            task_definition.logical_id,
            self.data.db_cluster.logical_id,
            "DATABASE_URL embeds the cluster endpoint",
        )
        container_name = task_definition.properties["containers"][0]["name"]

        # =====================================================================
        # Load balancer
        # =====================================================================

        lb_security_group = self.declare(
            "LBSecurityGroup",
            "ec2.SecurityGroup",
            vpc_id=vpc.vpc_id,
            description="Load balancer",
            ingress=[
                {
                    "cidr": "0.0.0.0/0",
                    "protocol": "tcp",
                    "port": HTTPS_PORT,
                    "description": "Allow HTTPS",
                }
            ],
        )
        service_security_group = self.declare(
            "ServiceSecurityGroup",
            "ec2.SecurityGroup",
            vpc_id=vpc.vpc_id,
            description="Fargate service",
            ingress=[
                {
                    "source_security_group": lb_security_group.ref("GroupId"),
                    "protocol": "tcp",
                    "port": service.container_port,
                    "description": "From load balancer",
                }
            ],
        )
        load_balancer = self.declare(
            "LoadBalancer",
            "elbv2.ApplicationLoadBalancer",
            internet_facing=service.public_load_balancer,
            subnets=[s.subnet_id for s in ingress_subnets],
            security_groups=[lb_security_group.ref("GroupId")],
        )

        health = service.health_check
        target_group = self.declare(
            "TargetGroup",
            "elbv2.ApplicationTargetGroup",
            vpc_id=vpc.vpc_id,
            port=service.container_port,
            protocol="HTTP",
            target_type="ip",
            health_check={
                "path": health.path,
                "healthy_threshold_count": health.healthy_threshold,
                "unhealthy_threshold_count": health.unhealthy_threshold,
                "interval_seconds": health.interval_seconds,
                "timeout_seconds": health.timeout_seconds,
            },
            attributes={
                "deregistration_delay.timeout_seconds": str(health.deregistration_delay_seconds),
            },
        )
        listener = self.declare(
            "HttpsListener",
            "elbv2.ApplicationListener",
            load_balancer_arn=load_balancer.ref("LoadBalancerArn"),
            port=HTTPS_PORT,
            protocol="HTTPS",
            certificate_arns=[certificate_resource.ref("CertificateArn")],
            default_target_group_arn=target_group.ref("TargetGroupArn"),
        )

        # =====================================================================
        # Service
        # =====================================================================

        fargate_service = self.declare(
            "FargateService",
            "ecs.FargateService",
            service_name=identity.service_name,
            cluster=cluster.cluster_name,
            task_definition_arn=task_definition.ref("TaskDefinitionArn"),
            desired_count=service.desired_count,
            assign_public_ip=service.assign_public_ip,
            subnets=[s.subnet_id for s in task_subnets],
            security_groups=[service_security_group.ref("GroupId")],
            load_balancers=[
                {
                    "container_name": container_name,
                    "container_port": service.container_port,
                    "target_group_arn": target_group.ref("TargetGroupArn"),
                }
            ],
        )
        self.topology.depends_on(
            fargate_service.logical_id, listener.logical_id, "targets register after the listener"
        )

        self.declare(
            "AliasRecord",
            "route53.ARecord",
            hosted_zone_id=zone.zone_id,
            record_name=domain_name,
            alias_target=load_balancer.ref("DNSName"),
        )

        # =====================================================================
        # Grants (after both ends exist)
        # =====================================================================

        grant_store_access(
            self.topology, self.name, fargate_service.logical_id, self.data.db_cluster
        )

        repository = self.declare("Repo", "ecr.Repository", repository_name=repo_name)
        grant_repository_pull(
            self.topology,
            self.name,
            execution_role.logical_id,
            repository.logical_id,
            container_name,
        )

        return ServiceOutputs(
            service=ServiceHandle(
                logical_id=fargate_service.logical_id,
                service_name=identity.service_name,
                cluster_logical_id=cluster.logical_id,
                task_definition_id=task_definition.logical_id,
                execution_role_id=execution_role.logical_id,
                security_group_id=service_security_group.logical_id,
                load_balancer_id=load_balancer.logical_id,
                target_group_id=target_group.logical_id,
                domain_name=domain_name,
                container_port=service.container_port,
            ),
            container_name=container_name,
            ecr_repo=RepositoryHandle(logical_id=repository.logical_id),
            repo_name=repo_name,
        )


__all__ = [
    "ServiceHandle",
    "RepositoryHandle",
    "ServiceOutputs",
    "derive_repository_name",
    "grant_store_access",
    "grant_repository_pull",
    "ServiceLayer",
]
