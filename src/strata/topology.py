"""
In-memory topology description.

The topology is what layers write into and what the provisioning engine
reads: an ordered registry of declared resources plus an explicit list of
dependency edges. Ordering that the engine cannot infer on its own (a
subnet group before its cluster, a grant after both of its ends) is an
edge here, and the whole graph is validated before hand-off.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import SecretStr

from .connection import MASK, ConnectionUrl
from .errors import AuthorizationError, ConfigurationError, TopologyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ref:
    """A late-bound attribute of a declared resource."""

    resource_id: str
    attribute: str

    @property
    def token(self) -> str:
        return f"${{{self.resource_id}.{self.attribute}}}"

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class Resource:
    """A single declared resource."""

    logical_id: str
    kind: str
    layer: str
    properties: dict[str, Any] = field(default_factory=dict)

    def ref(self, attribute: str) -> Ref:
        """Reference one of this resource's provisioned attributes."""
        return Ref(self.logical_id, attribute)

    def to_dict(self, reveal_secrets: bool = False) -> dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "kind": self.kind,
            "layer": self.layer,
            "properties": _serialize(self.properties, reveal_secrets),
        }


@dataclass(frozen=True)
class Edge:
    """``dependent`` must be provisioned after ``dependency``."""

    dependent: str
    dependency: str
    reason: str = ""


@dataclass(frozen=True)
class LayerRecord:
    """A constructed layer and the layers it consumed."""

    name: str
    depends_on: tuple[str, ...] = ()


class Topology:
    """
    Ordered registry of resources and dependency edges.

    Usage:
        topology = Topology()
        vpc = topology.declare("NetworkLayer", "Vpc", "ec2.Vpc", cidr="10.0.0.0/21")
        topology.validate()
    """

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}
        self._edges: list[Edge] = []
        self._layers: list[LayerRecord] = []

    # =========================================================================
    # Layers
    # =========================================================================

    def begin_layer(self, name: str, depends_on: tuple[str, ...] = ()) -> None:
        """
        Record that a layer is being constructed.

        Every layer it depends on must already have been recorded, and no
        layer may be recorded twice.
        """
        known = {layer.name for layer in self._layers}
        if name in known:
            raise TopologyError(f"Layer '{name}' constructed twice")
        missing = [dep for dep in depends_on if dep not in known]
        if missing:
            raise TopologyError(f"Layer '{name}' constructed before {', '.join(missing)}")
        self._layers.append(LayerRecord(name=name, depends_on=tuple(depends_on)))
        logger.debug("Constructing %s (depends on: %s)", name, ", ".join(depends_on) or "-")

    @property
    def layers(self) -> list[LayerRecord]:
        return list(self._layers)

    # =========================================================================
    # Resources
    # =========================================================================

    def declare(self, layer: str, name: str, kind: str, **properties: Any) -> Resource:
        """
        Declare a resource owned by ``layer``.

        Raises:
            ConfigurationError: If the logical id is already taken
        """
        logical_id = f"{layer}/{name}"
        if logical_id in self._resources:
            raise ConfigurationError(f"Duplicate resource id '{logical_id}'")
        resource = Resource(logical_id=logical_id, kind=kind, layer=layer, properties=properties)
        self._resources[logical_id] = resource
        return resource

    def __contains__(self, logical_id: object) -> bool:
        return logical_id in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def require(self, logical_id: str) -> Resource:
        """Look up a declared resource, failing if it does not exist."""
        try:
            return self._resources[logical_id]
        except KeyError:
            raise TopologyError(f"Unknown resource '{logical_id}'") from None

    def of_kind(self, kind: str) -> list[Resource]:
        return [r for r in self._resources.values() if r.kind == kind]

    # =========================================================================
    # Edges
    # =========================================================================

    def depends_on(self, dependent: str, dependency: str, reason: str = "") -> Edge:
        """Add an explicit ordering edge between two declared resources."""
        self.require(dependent)
        self.require(dependency)
        edge = Edge(dependent=dependent, dependency=dependency, reason=reason)
        if edge not in self._edges:
            self._edges.append(edge)
        return edge

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    def dependencies_of(self, logical_id: str) -> list[str]:
        return [e.dependency for e in self._edges if e.dependent == logical_id]

    def grant(
        self,
        layer: str,
        name: str,
        principal: str,
        target: str,
        action: str,
        **details: Any,
    ) -> Resource:
        """
        Authorize ``principal`` to perform ``action`` on ``target``.

        Both ends must already be declared; the grant is ordered after them.

        Raises:
            AuthorizationError: If the principal or target does not exist yet
        """
        for role, logical_id in (("principal", principal), ("target", target)):
            if logical_id not in self._resources:
                raise AuthorizationError(
                    f"Cannot grant '{action}': {role} '{logical_id}' has not been constructed"
                )

        grant = self.declare(
            layer,
            name,
            "iam.Grant",
            principal=principal,
            target=target,
            action=action,
            **details,
        )
        self.depends_on(grant.logical_id, principal, "grant follows its principal")
        self.depends_on(grant.logical_id, target, "grant follows its target")
        logger.debug("Granted %s: %s -> %s", action, principal, target)
        return grant

    # =========================================================================
    # Validation & ordering
    # =========================================================================

    def validate(self) -> None:
        """
        Check the description is complete before hand-off.

        Raises:
            TopologyError: On a dangling reference or a dependency cycle
        """
        for resource in self._resources.values():
            for ref in _collect_refs(resource.properties):
                if ref.resource_id not in self._resources:
                    raise TopologyError(
                        f"'{resource.logical_id}' references undeclared '{ref.resource_id}'"
                    )
        self.ordered()

    def ordered(self) -> list[Resource]:
        """
        Resources in dependency order.

        Ties are broken by declaration order, so the result is stable.
        References inside properties count as implicit edges.
        """
        deps: dict[str, set[str]] = {logical_id: set() for logical_id in self._resources}
        for edge in self._edges:
            deps[edge.dependent].add(edge.dependency)
        for resource in self._resources.values():
            for ref in _collect_refs(resource.properties):
                if ref.resource_id in deps and ref.resource_id != resource.logical_id:
                    deps[resource.logical_id].add(ref.resource_id)

        ordered: list[Resource] = []
        done: set[str] = set()
        pending = list(self._resources)
        while pending:
            ready = [lid for lid in pending if deps[lid] <= done]
            if not ready:
                raise TopologyError(f"Dependency cycle among: {', '.join(sorted(pending))}")
            for lid in ready:
                ordered.append(self._resources[lid])
                done.add(lid)
            pending = [lid for lid in pending if lid not in done]
        return ordered

    def to_dict(self, reveal_secrets: bool = False) -> dict[str, Any]:
        """JSON-able description for the provisioning engine."""
        return {
            "layers": [
                {"name": layer.name, "depends_on": list(layer.depends_on)}
                for layer in self._layers
            ],
            "resources": [r.to_dict(reveal_secrets) for r in self.ordered()],
            "edges": [
                {"dependent": e.dependent, "dependency": e.dependency, "reason": e.reason}
                for e in self._edges
            ],
        }


def _collect_refs(value: Any) -> Iterator[Ref]:
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _collect_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _collect_refs(item)


def _serialize(value: Any, reveal_secrets: bool) -> Any:
    if isinstance(value, Ref):
        return value.token
    if isinstance(value, SecretStr):
        return value.get_secret_value() if reveal_secrets else MASK
    if isinstance(value, ConnectionUrl):
        return value.render() if reveal_secrets else value.masked()
    if isinstance(value, dict):
        return {str(k): _serialize(v, reveal_secrets) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v, reveal_secrets) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = ["Ref", "Resource", "Edge", "LayerRecord", "Topology"]
