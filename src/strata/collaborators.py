"""
External collaborators used during composition.

Layers never talk to a cloud provider directly. Everything that would
need I/O (secret lookup, image builds, DNS zone lookup and certificate
issuance) goes through one of the protocols below, each treated as a
single synchronous call that either returns a value or raises.

The concrete classes here are the reference implementations used by the
CLI and the tests.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import SecretStr

from .errors import CertificateIssuanceError, ConfigurationError, CredentialResolutionError

logger = logging.getLogger(__name__)


# =============================================================================
# Value types
# =============================================================================


@dataclass(frozen=True)
class ImageReference:
    """An immutable container image: registry host, repository and digest."""

    registry: str
    repository: str
    digest: str
    tag: str | None = None

    @property
    def uri(self) -> str:
        tag = f":{self.tag}" if self.tag else ""
        return f"{self.registry}/{self.repository}{tag}@{self.digest}"

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class HostedZone:
    """A DNS zone the certificate issuer can validate against."""

    zone_name: str
    zone_id: str


@dataclass(frozen=True)
class CertificateHandle:
    """A TLS certificate bound to exactly one domain name."""

    domain_name: str
    zone: HostedZone
    validation: str = "DNS"


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class SecretStore(Protocol):
    """Resolves ``<namespace>/<role>/password`` paths to secret values."""

    def resolve(self, path: str) -> SecretStr: ...


@runtime_checkable
class ImageBuilder(Protocol):
    """Turns a source directory into an immutable image reference."""

    def build(self, directory: Path) -> ImageReference: ...


@runtime_checkable
class CertificateIssuer(Protocol):
    """Looks up hosted zones and issues DNS-validated certificates."""

    def lookup_zone(self, zone_name: str) -> HostedZone: ...

    def issue(self, domain_name: str, zone: HostedZone) -> CertificateHandle: ...


@dataclass
class Collaborators:
    """The set of collaborators a composition needs."""

    secrets: SecretStore
    images: ImageBuilder
    certificates: CertificateIssuer
    project_root: Path = field(default_factory=Path.cwd)


# =============================================================================
# Secret stores
# =============================================================================


class MappingSecretStore:
    """Secret store backed by an in-memory mapping of path -> value."""

    def __init__(self, secrets: Mapping[str, str]):
        self._secrets = {path: SecretStr(value) for path, value in secrets.items()}

    def resolve(self, path: str) -> SecretStr:
        try:
            return self._secrets[path]
        except KeyError:
            raise CredentialResolutionError(path) from None


class EnvironmentSecretStore:
    """
    Secret store backed by environment variables.

    ``rds/cluster/root/password`` is read from
    ``STRATA_SECRET_RDS_CLUSTER_ROOT_PASSWORD``. Every character outside
    ``[A-Za-z0-9]`` becomes ``_``, so ``a-b/x/password`` and
    ``a_b/x/password`` share a variable; resolving both through one store
    raises ConfigurationError.
    """

    def __init__(self, prefix: str = "STRATA_SECRET_", environ: Mapping[str, str] | None = None):
        self.prefix = prefix
        self._environ = os.environ if environ is None else environ
        self._claimed: dict[str, str] = {}

    def variable_for(self, path: str) -> str:
        return self.prefix + re.sub(r"[^A-Za-z0-9]", "_", path).upper()

    def resolve(self, path: str) -> SecretStr:
        variable = self.variable_for(path)
        owner = self._claimed.setdefault(variable, path)
        if owner != path:
            raise ConfigurationError(
                f"Secret paths '{owner}' and '{path}' both map to {variable}"
            )
        value = self._environ.get(variable)
        if value is None:
            logger.debug("Secret %s not set (expected in %s)", path, variable)
            raise CredentialResolutionError(path)
        return SecretStr(value)


# =============================================================================
# Image builder
# =============================================================================


class DirectoryImageBuilder:
    """
    Derives an image reference from a source directory's content.

    The digest is a sha256 over every file's relative path and bytes, in
    sorted order, so the same source always yields the same reference.
    """

    DEFAULT_EXCLUDES = (".git", "__pycache__", "node_modules", ".venv")

    def __init__(
        self,
        registry: str,
        repository: str,
        tag: str | None = None,
        excludes: tuple[str, ...] = DEFAULT_EXCLUDES,
    ):
        self.registry = registry
        self.repository = repository
        self.tag = tag
        self.excludes = excludes

    def build(self, directory: Path) -> ImageReference:
        if not directory.is_dir():
            raise ConfigurationError(f"Application directory not found: {directory}")

        digest = hashlib.sha256()
        for path in sorted(directory.rglob("*")):
            relative = path.relative_to(directory)
            if any(part in self.excludes for part in relative.parts) or not path.is_file():
                continue
            digest.update(relative.as_posix().encode())
            digest.update(b"\0")
            digest.update(path.read_bytes())

        reference = ImageReference(
            registry=self.registry,
            repository=self.repository,
            digest=f"sha256:{digest.hexdigest()}",
            tag=self.tag,
        )
        logger.info("Image for %s: %s", directory, reference.uri)
        return reference


# =============================================================================
# Certificate issuer
# =============================================================================

_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


class StaticCertificateIssuer:
    """
    Certificate issuer over a fixed set of hosted zones.

    Validation itself is the provisioning engine's job; this only checks
    that the domain can be validated in the zone it names.
    """

    def __init__(self, zones: Mapping[str, str]):
        self._zones = {name.rstrip("."): zone_id for name, zone_id in zones.items()}

    def lookup_zone(self, zone_name: str) -> HostedZone:
        name = zone_name.rstrip(".")
        zone_id = self._zones.get(name)
        if zone_id is None:
            raise CertificateIssuanceError(f"Hosted zone '{name}' not found")
        return HostedZone(zone_name=name, zone_id=zone_id)

    def issue(self, domain_name: str, zone: HostedZone) -> CertificateHandle:
        if domain_name != zone.zone_name and not domain_name.endswith(f".{zone.zone_name}"):
            raise CertificateIssuanceError(
                f"Domain '{domain_name}' cannot be validated in zone '{zone.zone_name}'"
            )
        bad = [label for label in domain_name.split(".") if not _LABEL.match(label)]
        if bad:
            raise CertificateIssuanceError(
                f"Domain '{domain_name}' has invalid labels: {', '.join(bad) or '(empty)'}"
            )
        return CertificateHandle(domain_name=domain_name, zone=zone)


__all__ = [
    "ImageReference",
    "HostedZone",
    "CertificateHandle",
    "SecretStore",
    "ImageBuilder",
    "CertificateIssuer",
    "Collaborators",
    "MappingSecretStore",
    "EnvironmentSecretStore",
    "DirectoryImageBuilder",
    "StaticCertificateIssuer",
]
