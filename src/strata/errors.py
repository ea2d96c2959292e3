"""
Error types for Strata topology composition.
"""

from dataclasses import dataclass


@dataclass
class ErrorContext:
    """
    Where in the composition an error occurred.

    Attributes:
        layer: Name of the layer being constructed (e.g. "DataLayer")
        resource: Optional logical id of the resource involved
    """

    layer: str
    resource: str | None = None

    def format(self) -> str:
        """
        Format the context as a short location string.

        Returns:
            Formatted string like: "DataLayer (DataLayer/Redis)"
        """
        if self.resource:
            return f"{self.layer} ({self.resource})"
        return self.layer


class StrataError(Exception):
    """Base exception for all Strata errors."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}: {self.message}"
        return self.message


class ConfigurationError(StrataError):
    """
    Raised when input parameters are malformed or insufficient.

    Examples:
    - Address space too small for the requested segments
    - Fewer than two availability zones
    - Missing required segment names
    - No explicit cache ingress sources
    """

    pass


class PlacementError(StrataError):
    """
    Raised when a referenced network segment does not exist.

    Downstream layers look up subnets by name; a missing name means the
    network outputs violate their contract.
    """

    pass


class CredentialResolutionError(StrataError):
    """
    Raised when a secret path cannot be resolved by the secret store.

    Carries the path that was requested, never a value.
    """

    def __init__(self, path: str, context: ErrorContext | None = None):
        self.path = path
        super().__init__(f"Secret not found at path '{path}'", context)


class CertificateIssuanceError(StrataError):
    """
    Raised when the certificate issuer cannot produce a certificate.

    Examples:
    - Hosted zone lookup fails
    - Requested domain is not inside the hosted zone
    """

    pass


class AuthorizationError(StrataError):
    """
    Raised when a grant is declared before its principal or target exists.
    """

    pass


class TopologyError(StrataError):
    """
    Raised when the composed topology is structurally incomplete.

    Examples:
    - Reference to an undeclared resource
    - Dependency edge to an unknown resource
    - Cyclic dependency edges
    """

    pass


def in_layer(error: StrataError, layer: str, resource: str | None = None) -> StrataError:
    """
    Attach layer context to an error that was raised without one.

    Args:
        error: The error to annotate
        layer: Layer name
        resource: Optional logical resource id

    Returns:
        The same error instance, with context set if it had none
    """
    if error.context is None:
        error.context = ErrorContext(layer=layer, resource=resource)
        error.args = (error._format_message(),)
    return error


__all__ = [
    "ErrorContext",
    "StrataError",
    "ConfigurationError",
    "PlacementError",
    "CredentialResolutionError",
    "CertificateIssuanceError",
    "AuthorizationError",
    "TopologyError",
    "in_layer",
]
