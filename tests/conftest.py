"""Shared pytest fixtures for Strata tests."""

from pathlib import Path
from typing import Any

import pytest

from strata.collaborators import (
    Collaborators,
    DirectoryImageBuilder,
    MappingSecretStore,
    StaticCertificateIssuer,
)
from strata.composer import ComposedStack, StackComposer
from strata.config import StackConfig, parse_stack_config

DB_PASSWORD = "db-pw-7f3a9c"
RAILS_SECRET = "rails-key-51e2bd"
ZONE_ID = "Z0123456789EXAMPLE"


@pytest.fixture
def stack_data() -> dict[str, Any]:
    """Minimal valid [stack] section as a mapping."""
    return {
        "identity": {"service_name": "app", "zone_name": "example.com"},
        "cache": {"allowed_ingress_cidrs": ["10.0.0.0/21"]},
        "service": {"secrets": {"SECRET_KEY_BASE": "app/rails/password"}},
        "dns": {"hosted_zones": {"example.com": ZONE_ID}},
    }


@pytest.fixture
def stack_config(stack_data: dict[str, Any]) -> StackConfig:
    return parse_stack_config(stack_data)


@pytest.fixture
def secret_values() -> dict[str, str]:
    return {
        "rds/cluster/root/password": DB_PASSWORD,
        "app/rails/password": RAILS_SECRET,
    }


@pytest.fixture
def secret_store(secret_values: dict[str, str]) -> MappingSecretStore:
    return MappingSecretStore(secret_values)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Project directory with a small application to build."""
    app_dir = tmp_path / "app"
    app_dir.mkdir()
    (app_dir / "Dockerfile").write_text("FROM ruby:3.2\nCOPY . /app\n")
    (app_dir / "config.ru").write_text("run Rails.application\n")
    return tmp_path


@pytest.fixture
def collaborators(
    stack_config: StackConfig, secret_store: MappingSecretStore, project_root: Path
) -> Collaborators:
    return Collaborators(
        secrets=secret_store,
        images=DirectoryImageBuilder(stack_config.image_registry, stack_config.image_repository),
        certificates=StaticCertificateIssuer(stack_config.dns.hosted_zones),
        project_root=project_root,
    )


@pytest.fixture
def composed_stack(stack_config: StackConfig, collaborators: Collaborators) -> ComposedStack:
    return StackComposer(stack_config, collaborators).compose()
