"""
Stack configuration models for Strata.

Configuration is loaded from the strata.toml [stack] section and resolved
once, before any layer is constructed. Layers only ever see these resolved
values; nothing downstream does string templating.
"""

from __future__ import annotations

import ipaddress
import re
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError


class SubnetType(str, Enum):
    """Subnet reachability classes."""

    PUBLIC = "public"
    PRIVATE_WITH_EGRESS = "private_with_egress"  # outbound through NAT
    PRIVATE_ISOLATED = "private_isolated"  # no route out


class RemovalPolicy(str, Enum):
    """What the provisioning engine does with a resource on stack deletion."""

    DESTROY = "destroy"
    RETAIN = "retain"
    SNAPSHOT = "snapshot"


# Segment names downstream layers look up by name.
SEGMENT_INGRESS = "ingress"
SEGMENT_APPLICATION = "application"
SEGMENT_DATABASE = "database"
REQUIRED_SEGMENTS = (SEGMENT_APPLICATION, SEGMENT_INGRESS, SEGMENT_DATABASE)


# =============================================================================
# Identity
# =============================================================================


def _sanitize(name: str, separator: str) -> str:
    """Lowercase a name and collapse every non-alphanumeric run into separator."""
    cleaned = re.sub(r"[^a-z0-9]+", separator, name.lower())
    return cleaned.strip(separator)


class ServiceIdentity(BaseModel):
    """
    Concrete names for the service being deployed.

    The underscore and hyphen forms are derived here, once, from the
    service name.
    """

    service_name: str = Field(min_length=1)
    zone_name: str = Field(min_length=1)
    app_directory: str = "app"

    @property
    def underscore_name(self) -> str:
        """Name safe for database identifiers (e.g. my_service)."""
        return _sanitize(self.service_name, "_")

    @property
    def hyphen_name(self) -> str:
        """Name safe for DNS labels and resource names (e.g. my-service)."""
        return _sanitize(self.service_name, "-")

    @model_validator(mode="after")
    def _check_derivable(self) -> ServiceIdentity:
        if not self.underscore_name:
            raise ValueError(f"service_name '{self.service_name}' has no usable characters")
        return self


class SecretPath(BaseModel):
    """
    A secret store path of the form <namespace>/<role>/password.

    Accepts either a mapping with namespace/role or the full path string.
    """

    namespace: str = Field(min_length=1)
    role: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            head, sep, leaf = value.rpartition("/")
            if not sep or leaf != "password":
                raise ValueError(f"secret path '{value}' must end with '/password'")
            namespace, sep, role = head.rpartition("/")
            if not sep:
                raise ValueError(f"secret path '{value}' must be <namespace>/<role>/password")
            return {"namespace": namespace, "role": role}
        return value

    @property
    def path(self) -> str:
        return f"{self.namespace}/{self.role}/password"

    def __str__(self) -> str:
        return self.path


# =============================================================================
# Sub-configuration Models
# =============================================================================


class SubnetSegmentConfig(BaseModel):
    """One named subnet segment, repeated in every availability zone."""

    name: str = Field(min_length=1)
    subnet_type: SubnetType
    cidr_mask: int = Field(ge=16, le=28)


def _default_segments() -> list[SubnetSegmentConfig]:
    return [
        SubnetSegmentConfig(
            name=SEGMENT_APPLICATION,
            subnet_type=SubnetType.PRIVATE_WITH_EGRESS,
            cidr_mask=24,
        ),
        SubnetSegmentConfig(name=SEGMENT_INGRESS, subnet_type=SubnetType.PUBLIC, cidr_mask=24),
        SubnetSegmentConfig(
            name=SEGMENT_DATABASE,
            subnet_type=SubnetType.PRIVATE_ISOLATED,
            cidr_mask=28,
        ),
    ]


class NetworkConfig(BaseModel):
    """VPC and subnet partition configuration."""

    vpc_cidr: str = "10.0.0.0/21"
    availability_zones: int = Field(default=2, ge=1, le=6)
    zone_names: list[str] | None = None
    enable_dns_support: bool = True
    segments: list[SubnetSegmentConfig] = Field(default_factory=_default_segments)

    def resolve_zone_names(self, region: str) -> list[str]:
        """Explicit zone names, or <region>a, <region>b, ... up to the zone count."""
        if self.zone_names:
            return list(self.zone_names[: self.availability_zones])
        return [f"{region}{chr(ord('a') + i)}" for i in range(self.availability_zones)]


class CacheConfig(BaseModel):
    """ElastiCache (Redis) configuration.

    ``allowed_ingress_cidrs`` has no default: every source allowed to reach
    the cache port must be listed explicitly.
    """

    allowed_ingress_cidrs: list[str]
    port: int = Field(default=6379, ge=1, le=65535)
    node_type: str = "cache.t2.micro"
    engine: str = "redis"
    num_cache_clusters: int = Field(default=1, ge=1, le=6)
    automatic_failover: bool = False
    subnet_segment: str = SEGMENT_APPLICATION
    replication_group_id: str = "redis-replication-group"
    subnet_group_name: str = "redis-subnet-group"

    @field_validator("allowed_ingress_cidrs")
    @classmethod
    def _valid_cidrs(cls, value: list[str]) -> list[str]:
        for cidr in value:
            ipaddress.ip_network(cidr, strict=False)
        return value


class DatabaseConfig(BaseModel):
    """Aurora PostgreSQL cluster configuration."""

    username: str = "root"
    secret_namespace: str = "rds/cluster"
    database_name: str | None = None
    scheme: str = "postgres"
    port: int = Field(default=5432, ge=1, le=65535)
    engine: str = "aurora-postgresql"
    engine_version: str = "12.9"
    instance_type: str = "db.t3.medium"
    instances: int = Field(default=1, ge=1, le=15)
    parameter_group: str = "default.aurora-postgresql12"
    subnet_segment: str = SEGMENT_DATABASE
    removal_policy: RemovalPolicy = RemovalPolicy.DESTROY

    @property
    def password_path(self) -> SecretPath:
        """Where the master password lives in the secret store."""
        return SecretPath(namespace=self.secret_namespace, role=self.username)

    def resolve_database_name(self, identity: ServiceIdentity) -> str:
        """Configured name, or <underscore_name>_db."""
        return self.database_name or f"{identity.underscore_name}_db"


class HealthCheckConfig(BaseModel):
    """Load balancer target health check.

    The defaults are a tuned failure-detection policy; change them only
    deliberately.
    """

    path: str = "/health"
    healthy_threshold: int = Field(default=2, ge=2, le=10)
    unhealthy_threshold: int = Field(default=10, ge=2, le=10)
    interval_seconds: int = Field(default=10, ge=5, le=300)
    timeout_seconds: int = Field(default=5, ge=2, le=120)
    deregistration_delay_seconds: int = Field(default=5, ge=0, le=3600)

    @model_validator(mode="after")
    def _timeout_below_interval(self) -> HealthCheckConfig:
        if self.timeout_seconds >= self.interval_seconds:
            raise ValueError("health check timeout must be shorter than its interval")
        return self

    def as_policy(self) -> dict[str, int]:
        """Numeric policy as a flat mapping."""
        return {
            "healthy": self.healthy_threshold,
            "unhealthy": self.unhealthy_threshold,
            "interval": self.interval_seconds,
            "timeout": self.timeout_seconds,
            "deregistration": self.deregistration_delay_seconds,
        }


class ServiceConfig(BaseModel):
    """Fargate service configuration.

    ``secrets`` maps container environment names to secret store paths and
    has no default.
    """

    secrets: dict[str, SecretPath]
    container_name: str = "FargateTaskContainer"
    container_port: int = Field(default=80, ge=1, le=65535)
    cpu: int = 256
    memory_limit_mib: int = 512
    desired_count: int = Field(default=1, ge=0)
    public_load_balancer: bool = True
    assign_public_ip: bool = True
    enable_logging: bool = True
    environment: dict[str, str] = Field(default_factory=lambda: {"RAILS_ENV": "production"})
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    image_registry: str | None = None
    image_repository: str | None = None

    @field_validator("environment")
    @classmethod
    def _no_reserved_names(cls, value: dict[str, str]) -> dict[str, str]:
        reserved = {"DATABASE_URL", "REDIS_HOST"} & set(value)
        if reserved:
            raise ValueError(f"environment may not override {sorted(reserved)}")
        return value


class DNSConfig(BaseModel):
    """Hosted zones known to the certificate issuer (zone name -> zone id)."""

    hosted_zones: dict[str, str] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    """Delivery pipeline configuration."""

    branch: str = "main"
    source_repository: str | None = None


class SynthConfig(BaseModel):
    """CDK app output configuration."""

    directory: str = "infra"
    stack_name_prefix: str = ""
    cdk_lib_version: str = ">=2.100.0,<3.0.0"

    def get_output_path(self, project_root: Path) -> Path:
        """Get the absolute output path."""
        return project_root / self.directory


# =============================================================================
# Main Configuration Model
# =============================================================================


class StackConfig(BaseModel):
    """Complete stack configuration."""

    identity: ServiceIdentity
    cache: CacheConfig
    service: ServiceConfig
    region: str = "us-east-1"
    account: str | None = None

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    dns: DNSConfig = Field(default_factory=DNSConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    synth: SynthConfig = Field(default_factory=SynthConfig)

    @property
    def image_registry(self) -> str:
        """Registry host images are pushed to."""
        if self.service.image_registry:
            return self.service.image_registry
        account = self.account or "000000000000"
        return f"{account}.dkr.ecr.{self.region}.amazonaws.com"

    @property
    def image_repository(self) -> str:
        return self.service.image_repository or self.identity.hyphen_name

    def get_stack_name(self) -> str:
        """Top-level stack name, optionally prefixed."""
        prefix = self.synth.stack_name_prefix
        if prefix:
            return f"{prefix}-{self.identity.hyphen_name}"
        return self.identity.hyphen_name


# =============================================================================
# Configuration Loading
# =============================================================================


def load_stack_config(toml_path: Path) -> StackConfig:
    """
    Load stack configuration from strata.toml.

    Args:
        toml_path: Path to strata.toml file

    Returns:
        StackConfig built from the [stack] section

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    if not toml_path.exists():
        raise ConfigurationError(f"Configuration file not found: {toml_path}")

    try:
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {toml_path}: {e}") from e

    stack_section = data.get("stack")
    if not stack_section:
        raise ConfigurationError(f"No [stack] section in {toml_path}")

    return parse_stack_config(stack_section)


def parse_stack_config(data: dict[str, Any]) -> StackConfig:
    """Validate a config mapping into a StackConfig."""
    try:
        return StackConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid stack configuration:\n{e}") from e


__all__ = [
    "SubnetType",
    "RemovalPolicy",
    "SEGMENT_INGRESS",
    "SEGMENT_APPLICATION",
    "SEGMENT_DATABASE",
    "REQUIRED_SEGMENTS",
    "ServiceIdentity",
    "SecretPath",
    "SubnetSegmentConfig",
    "NetworkConfig",
    "CacheConfig",
    "DatabaseConfig",
    "HealthCheckConfig",
    "ServiceConfig",
    "DNSConfig",
    "PipelineConfig",
    "SynthConfig",
    "StackConfig",
    "load_stack_config",
    "parse_stack_config",
]
