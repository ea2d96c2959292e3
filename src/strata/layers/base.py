"""
Base class for topology layers.

A layer is constructed exactly once: it records itself in the topology,
declares the resources it owns, and returns a frozen outputs value for
downstream layers. Upstream outputs are only ever read.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from ..errors import StrataError, in_layer

if TYPE_CHECKING:
    from ..config import StackConfig
    from ..topology import Resource, Topology

logger = logging.getLogger(__name__)

OutputsT = TypeVar("OutputsT")


class Layer(ABC, Generic[OutputsT]):
    """
    Base class for a configuration-producing layer.

    Subclasses set ``name`` and ``depends_on`` and implement ``_build``.
    """

    name: ClassVar[str]
    depends_on: ClassVar[tuple[str, ...]] = ()

    def __init__(self, config: StackConfig, topology: Topology):
        self.config = config
        self.topology = topology
        self._outputs: OutputsT | None = None

    @property
    def outputs(self) -> OutputsT:
        """Outputs of a built layer."""
        if self._outputs is None:
            raise RuntimeError(f"{self.name} has not been built")
        return self._outputs

    def build(self) -> OutputsT:
        """
        Construct the layer.

        Returns:
            The layer's outputs

        Raises:
            StrataError: The first failure, annotated with this layer's name
        """
        self.topology.begin_layer(self.name, self.depends_on)
        try:
            outputs = self._build()
        except StrataError as e:
            raise in_layer(e, self.name)

        self._outputs = outputs
        logger.info("%s constructed", self.name)
        return outputs

    @abstractmethod
    def _build(self) -> OutputsT:
        """Declare resources and return outputs."""
        ...

    def declare(self, name: str, kind: str, **properties: Any) -> Resource:
        """Declare a resource owned by this layer."""
        return self.topology.declare(self.name, name, kind, **properties)
