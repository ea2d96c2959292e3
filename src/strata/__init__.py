"""
Strata - layered infrastructure composition.

Composes a network, data, service and delivery layer into one validated
topology and synthesizes it as a standalone AWS CDK app.

Usage:
    from strata import StackComposer, load_stack_config

    config = load_stack_config(Path("strata.toml"))
    stack = StackComposer(config, collaborators).compose()
"""

from strata._version import get_version
from strata.collaborators import (
    CertificateIssuer,
    Collaborators,
    DirectoryImageBuilder,
    EnvironmentSecretStore,
    ImageBuilder,
    MappingSecretStore,
    SecretStore,
    StaticCertificateIssuer,
)
from strata.composer import ComposedStack, StackComposer
from strata.config import ServiceIdentity, StackConfig, load_stack_config, parse_stack_config
from strata.connection import ConnectionUrl, parse_connection_url
from strata.errors import (
    AuthorizationError,
    CertificateIssuanceError,
    ConfigurationError,
    CredentialResolutionError,
    PlacementError,
    StrataError,
    TopologyError,
)
from strata.layers import CICDLayer, DataLayer, NetworkLayer, ServiceLayer, derive_repository_name
from strata.topology import Ref, Topology

__version__ = get_version()

__all__ = [
    "__version__",
    # Configuration
    "StackConfig",
    "ServiceIdentity",
    "load_stack_config",
    "parse_stack_config",
    # Composition
    "StackComposer",
    "ComposedStack",
    "NetworkLayer",
    "DataLayer",
    "ServiceLayer",
    "CICDLayer",
    "Topology",
    "Ref",
    "ConnectionUrl",
    "parse_connection_url",
    "derive_repository_name",
    # Collaborators
    "Collaborators",
    "SecretStore",
    "ImageBuilder",
    "CertificateIssuer",
    "MappingSecretStore",
    "EnvironmentSecretStore",
    "DirectoryImageBuilder",
    "StaticCertificateIssuer",
    # Errors
    "StrataError",
    "ConfigurationError",
    "PlacementError",
    "CredentialResolutionError",
    "CertificateIssuanceError",
    "AuthorizationError",
    "TopologyError",
]
