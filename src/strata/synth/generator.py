"""
Base generator classes for AWS CDK code generation.

Each layer generator renders one Python module holding a CDK Construct
for that layer, from the outputs of a composed stack.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import StrataError

if TYPE_CHECKING:
    from ..composer import ComposedStack
    from ..config import StackConfig

logger = logging.getLogger(__name__)


def literal(value: str) -> str:
    """Render a config string as a double-quoted Python string literal."""
    return json.dumps(value)


def doc_text(value: str) -> str:
    """Escape a config string for use inside a generated docstring."""
    return literal(value)[1:-1]


# =============================================================================
# Generator Result
# =============================================================================


@dataclass
class CDKGeneratorResult:
    """Result from CDK code generation."""

    files_created: list[Path] = field(default_factory=list)
    stack_names: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if generation was successful."""
        return len(self.errors) == 0

    def add_file(self, path: Path) -> None:
        self.files_created.append(path)

    def add_stack(self, name: str) -> None:
        self.stack_names.append(name)

    def add_error(self, error: str) -> None:
        self.errors.append(error)


# =============================================================================
# Base Generator
# =============================================================================


class CDKGenerator(ABC):
    """
    Base class for CDK code generators.

    Generators take a ComposedStack + StackConfig and produce CDK Python
    code files.
    """

    def __init__(
        self,
        stack: ComposedStack,
        config: StackConfig,
        output_dir: Path,
        project_root: Path | None = None,
    ):
        self.stack = stack
        self.config = config
        self.output_dir = output_dir
        self.project_root = project_root or output_dir.parent

    @abstractmethod
    def generate(self) -> CDKGeneratorResult:
        """
        Generate CDK code.

        Returns:
            CDKGeneratorResult with generated files and metadata
        """
        pass

    def _write_file(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


# =============================================================================
# Layer Generator
# =============================================================================


class LayerGenerator(CDKGenerator):
    """
    Base class for generating a single layer construct.

    Each layer generator produces one Python file containing a CDK
    Construct class named after the layer.
    """

    @property
    @abstractmethod
    def layer_name(self) -> str:
        """Get the layer name (e.g., 'NetworkLayer')."""
        pass

    @property
    def module_name(self) -> str:
        """Python module name (e.g., 'network_layer')."""
        return self.layer_name.replace("Layer", "").lower() + "_layer"

    @property
    def stack_file_name(self) -> str:
        return f"{self.module_name}.py"

    def generate(self) -> CDKGeneratorResult:
        """Generate the layer file."""
        result = CDKGeneratorResult()

        try:
            code = self._generate_layer_code()
            path = self.output_dir / "stacks" / self.stack_file_name
            self._write_file(path, code)
        except (OSError, StrataError) as e:
            result.add_error(f"Failed to generate {self.layer_name}: {e}")
            return result

        result.add_file(path)
        result.add_stack(self.layer_name)
        logger.debug("Wrote %s", path)
        return result

    @abstractmethod
    def _generate_layer_code(self) -> str:
        """Generate the Python code for the layer."""
        pass

    def _generate_header(self, imports: str) -> str:
        """Generate the file header with imports."""
        return f'''"""
{self.layer_name} for {doc_text(self.config.identity.service_name)}.

Generated by: strata synth
DO NOT EDIT - Changes will be overwritten.
"""

{imports}
from constructs import Construct
'''


__all__ = [
    "CDKGeneratorResult",
    "CDKGenerator",
    "LayerGenerator",
    "literal",
    "doc_text",
]
