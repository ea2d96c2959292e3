"""Tests for stack configuration models."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from pydantic import ValidationError

from strata.config import (
    CacheConfig,
    DatabaseConfig,
    HealthCheckConfig,
    NetworkConfig,
    SecretPath,
    ServiceConfig,
    ServiceIdentity,
    StackConfig,
    SubnetType,
    load_stack_config,
    parse_stack_config,
)
from strata.errors import ConfigurationError

STACK_TOML = """
[stack]
region = "eu-west-1"

[stack.identity]
service_name = "Billing Service"
zone_name = "example.org"

[stack.cache]
allowed_ingress_cidrs = ["10.0.0.0/24", "10.0.1.0/24"]

[stack.service.secrets]
SECRET_KEY_BASE = "billing/rails/password"
"""


class TestServiceIdentity:
    """Tests for ServiceIdentity name derivation."""

    def test_derived_names(self):
        """Test underscore and hyphen forms."""
        identity = ServiceIdentity(service_name="Billing Service", zone_name="example.org")

        assert identity.underscore_name == "billing_service"
        assert identity.hyphen_name == "billing-service"
        assert identity.app_directory == "app"

    def test_collapses_separators(self):
        """Test runs of punctuation collapse into one separator."""
        identity = ServiceIdentity(service_name="my__app--api", zone_name="example.org")

        assert identity.underscore_name == "my_app_api"
        assert identity.hyphen_name == "my-app-api"

    def test_rejects_underivable_name(self):
        """Test a name with no alphanumerics is rejected."""
        with pytest.raises(ValidationError):
            ServiceIdentity(service_name="---", zone_name="example.org")


class TestSecretPath:
    """Tests for SecretPath parsing."""

    def test_from_string(self):
        """Test parsing the full path form."""
        path = SecretPath.model_validate("rds/cluster/root/password")

        assert path.namespace == "rds/cluster"
        assert path.role == "root"
        assert path.path == "rds/cluster/root/password"

    def test_requires_password_leaf(self):
        """Test paths must end with /password."""
        with pytest.raises(ValidationError):
            SecretPath.model_validate("app/rails/token")

    def test_requires_namespace(self):
        """Test paths must have a namespace and a role."""
        with pytest.raises(ValidationError):
            SecretPath.model_validate("rails/password")


class TestNetworkConfig:
    """Tests for NetworkConfig defaults."""

    def test_default_segments(self):
        """Test the three default segments."""
        config = NetworkConfig()

        segments = {s.name: (s.subnet_type, s.cidr_mask) for s in config.segments}
        assert segments == {
            "application": (SubnetType.PRIVATE_WITH_EGRESS, 24),
            "ingress": (SubnetType.PUBLIC, 24),
            "database": (SubnetType.PRIVATE_ISOLATED, 28),
        }
        assert config.vpc_cidr == "10.0.0.0/21"
        assert config.availability_zones == 2

    def test_zone_names_from_region(self):
        """Test zone names are derived from the region."""
        assert NetworkConfig().resolve_zone_names("us-east-1") == ["us-east-1a", "us-east-1b"]

    def test_explicit_zone_names(self):
        """Test explicit zone names are truncated to the zone count."""
        config = NetworkConfig(zone_names=["z1", "z2", "z3"])

        assert config.resolve_zone_names("us-east-1") == ["z1", "z2"]


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_ingress_cidrs_required(self):
        """Test there is no default ingress source."""
        with pytest.raises(ValidationError):
            CacheConfig()

    def test_invalid_cidr(self):
        """Test malformed CIDRs are rejected."""
        with pytest.raises(ValidationError):
            CacheConfig(allowed_ingress_cidrs=["10.0.0.0/33"])

    def test_defaults(self):
        """Test default cache settings."""
        config = CacheConfig(allowed_ingress_cidrs=["10.0.0.0/21"])

        assert config.port == 6379
        assert config.node_type == "cache.t2.micro"
        assert config.num_cache_clusters == 1
        assert config.automatic_failover is False
        assert config.subnet_segment == "application"


class TestDatabaseConfig:
    """Tests for DatabaseConfig."""

    def test_password_path(self):
        """Test the master password path."""
        assert DatabaseConfig().password_path.path == "rds/cluster/root/password"

    def test_default_database_name(self):
        """Test the database name is derived from the identity."""
        identity = ServiceIdentity(service_name="app", zone_name="example.com")

        assert DatabaseConfig().resolve_database_name(identity) == "app_db"
        assert DatabaseConfig(database_name="main").resolve_database_name(identity) == "main"


class TestHealthCheckConfig:
    """Tests for HealthCheckConfig."""

    def test_default_policy(self):
        """Test the literal default policy values."""
        assert HealthCheckConfig().as_policy() == {
            "healthy": 2,
            "unhealthy": 10,
            "interval": 10,
            "timeout": 5,
            "deregistration": 5,
        }
        assert HealthCheckConfig().path == "/health"

    def test_timeout_below_interval(self):
        """Test a timeout at or above the interval is rejected."""
        with pytest.raises(ValidationError):
            HealthCheckConfig(interval_seconds=10, timeout_seconds=10)


class TestServiceConfig:
    """Tests for ServiceConfig."""

    def test_secrets_required(self):
        """Test there is no default secret."""
        with pytest.raises(ValidationError):
            ServiceConfig()

    def test_reserved_environment(self):
        """Test the environment cannot override injected variables."""
        with pytest.raises(ValidationError):
            ServiceConfig(
                secrets={"SECRET_KEY_BASE": "app/rails/password"},
                environment={"DATABASE_URL": "postgres://elsewhere"},
            )

    def test_defaults(self):
        """Test service defaults."""
        config = ServiceConfig(secrets={"SECRET_KEY_BASE": "app/rails/password"})

        assert config.container_name == "FargateTaskContainer"
        assert config.container_port == 80
        assert config.cpu == 256
        assert config.memory_limit_mib == 512
        assert config.desired_count == 1
        assert config.environment == {"RAILS_ENV": "production"}


class TestStackConfig:
    """Tests for StackConfig."""

    def test_image_defaults(self, stack_config: StackConfig):
        """Test registry and repository defaults."""
        assert stack_config.image_registry == "000000000000.dkr.ecr.us-east-1.amazonaws.com"
        assert stack_config.image_repository == "app"

    def test_image_registry_uses_account(self, stack_data):
        """Test the account is used in the default registry."""
        config = parse_stack_config({**stack_data, "account": "123456789012"})

        assert config.image_registry == "123456789012.dkr.ecr.us-east-1.amazonaws.com"

    def test_stack_name(self, stack_data):
        """Test the stack name with and without prefix."""
        assert parse_stack_config(stack_data).get_stack_name() == "app"

        config = parse_stack_config({**stack_data, "synth": {"stack_name_prefix": "prod"}})
        assert config.get_stack_name() == "prod-app"

    def test_invalid_data_raises_configuration_error(self, stack_data):
        """Test validation errors are wrapped."""
        del stack_data["cache"]

        with pytest.raises(ConfigurationError, match="Invalid stack configuration"):
            parse_stack_config(stack_data)


class TestLoadStackConfig:
    """Tests for loading configuration from TOML."""

    def test_load_from_toml(self):
        """Test loading the [stack] section."""
        with TemporaryDirectory() as tmpdir:
            toml_path = Path(tmpdir) / "strata.toml"
            toml_path.write_text(STACK_TOML)

            config = load_stack_config(toml_path)

            assert isinstance(config, StackConfig)
            assert config.region == "eu-west-1"
            assert config.identity.hyphen_name == "billing-service"
            assert config.service.secrets["SECRET_KEY_BASE"].path == "billing/rails/password"
            assert len(config.cache.allowed_ingress_cidrs) == 2

    def test_missing_file(self):
        """Test a missing file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_stack_config(Path("/nonexistent/strata.toml"))

    def test_missing_section(self):
        """Test a file without [stack] is an error."""
        with TemporaryDirectory() as tmpdir:
            toml_path = Path(tmpdir) / "strata.toml"
            toml_path.write_text('[project]\nname = "app"\n')

            with pytest.raises(ConfigurationError, match=r"No \[stack\] section"):
                load_stack_config(toml_path)

    def test_invalid_toml(self):
        """Test malformed TOML is an error."""
        with TemporaryDirectory() as tmpdir:
            toml_path = Path(tmpdir) / "strata.toml"
            toml_path.write_text("[stack\n")

            with pytest.raises(ConfigurationError, match="Invalid TOML"):
                load_stack_config(toml_path)
