"""
Synthesizer for turning a composed stack into a CDK application.

The CDKSynthesizer runs the layer generators in dependency order, then
writes the app entry point, supporting files and a JSON description of
the topology. The output directory is the hand-off to the provisioning
engine.
"""

from __future__ import annotations

import ast
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

from .generator import CDKGeneratorResult, LayerGenerator, doc_text, literal
from .stacks import (
    CICDStackGenerator,
    DataStackGenerator,
    NetworkStackGenerator,
    ServiceStackGenerator,
)

if TYPE_CHECKING:
    from ..composer import ComposedStack
    from ..config import StackConfig

logger = logging.getLogger(__name__)

SYNTH_VERSION = "0.1.0"


def _iter_strings(value: Any) -> Iterator[str]:
    """Every string key and value in a JSON-like structure."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _iter_strings(key)
            yield from _iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_strings(item)


# =============================================================================
# Synth Result
# =============================================================================


@dataclass
class SynthResult:
    """Result from a synthesis run."""

    files_created: list[Path] = field(default_factory=list)
    layers_generated: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    artifacts: dict[str, Any] = field(default_factory=dict)
    verified: bool = False

    @property
    def success(self) -> bool:
        """Check if synthesis was successful."""
        return len(self.errors) == 0

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def merge_generator_result(self, result: CDKGeneratorResult) -> None:
        """Merge a generator result into this synth result."""
        self.files_created.extend(result.files_created)
        self.layers_generated.extend(result.stack_names)
        self.errors.extend(result.errors)


# =============================================================================
# Synthesizer
# =============================================================================


class CDKSynthesizer:
    """
    Writes a standalone CDK app for a composed stack.

    Usage:
        synthesizer = CDKSynthesizer(stack, config, project_root)
        result = synthesizer.run()
    """

    def __init__(self, stack: ComposedStack, config: StackConfig, project_root: Path):
        self.stack = stack
        self.config = config
        self.project_root = project_root
        self.output_dir = config.synth.get_output_path(project_root)

    def run(self, dry_run: bool = False) -> SynthResult:
        """
        Generate the CDK app.

        Args:
            dry_run: If True, only report what would be generated

        Returns:
            SynthResult with generated files and status
        """
        result = SynthResult()

        if dry_run:
            return self._dry_run(result)

        (self.output_dir / "stacks").mkdir(parents=True, exist_ok=True)

        for generator in self._get_generators():
            gen_result = generator.generate()
            result.merge_generator_result(gen_result)

            if not gen_result.success:
                logger.error("Synthesis stopped at %s", generator.layer_name)
                return result

        result.merge_generator_result(self._generate_cdk_app())
        result.merge_generator_result(self._generate_supporting_files())

        result.verified = self._verify_output(result)
        if not result.verified:
            result.add_error("Generated code failed verification")

        logger.info("Synthesized %d files into %s", len(result.files_created), self.output_dir)
        return result

    def _dry_run(self, result: SynthResult) -> SynthResult:
        """Preview what would be generated without writing files."""
        result.add_warning("DRY RUN - No files will be written")

        generators = self._get_generators()
        result.layers_generated.extend(g.layer_name for g in generators)

        estimated = [
            self.output_dir / "app.py",
            self.output_dir / "cdk.json",
            self.output_dir / "requirements.txt",
            self.output_dir / "topology.json",
        ]
        estimated.extend(self.output_dir / "stacks" / g.stack_file_name for g in generators)
        result.artifacts["estimated_files"] = [str(p) for p in estimated]

        return result

    def _get_generators(self) -> list[LayerGenerator]:
        """Layer generators in dependency order."""
        args = (self.stack, self.config, self.output_dir, self.project_root)
        return [
            NetworkStackGenerator(*args),
            DataStackGenerator(*args),
            ServiceStackGenerator(*args),
            CICDStackGenerator(*args),
        ]

    def _generate_cdk_app(self) -> CDKGeneratorResult:
        """Generate the CDK app entry point (app.py)."""
        result = CDKGeneratorResult()

        stack_name = self.config.get_stack_name()
        account = (
            literal(self.config.account)
            if self.config.account
            else 'os.environ.get("CDK_DEFAULT_ACCOUNT")'
        )

        code = f'''#!/usr/bin/env python3
"""
CDK application for {doc_text(self.config.identity.service_name)}.

Generated by: strata synth v{SYNTH_VERSION}
Region: {doc_text(self.config.region)}

Deployment:
    pip install -r requirements.txt
    cdk bootstrap         # One-time setup per account/region
    cdk deploy
"""

import os

import aws_cdk as cdk
from constructs import Construct

from stacks.cicd_layer import CICDLayer
from stacks.data_layer import DataLayer
from stacks.network_layer import NetworkLayer
from stacks.service_layer import ServiceLayer


class CompleteStack(cdk.Stack):
    def __init__(self, scope: Construct, id: str, **kwargs) -> None:
        super().__init__(scope, id, **kwargs)

        network_layer = NetworkLayer(self, "NetworkLayer")
        data_layer = DataLayer(self, "DataLayer", network_layer=network_layer)
        service_layer = ServiceLayer(
            self, "ServiceLayer", network_layer=network_layer, data_layer=data_layer
        )
        CICDLayer(self, "CICDLayer", service_layer=service_layer)


app = cdk.App()
CompleteStack(
    app,
    {literal(stack_name)},
    env=cdk.Environment(
        account={account},
        region={literal(self.config.region)},
    ),
)
app.synth()
'''

        app_path = self.output_dir / "app.py"
        app_path.write_text(code)
        result.add_file(app_path)

        return result

    def _generate_supporting_files(self) -> CDKGeneratorResult:
        """Generate requirements.txt, cdk.json, stacks/__init__.py and topology.json."""
        result = CDKGeneratorResult()

        requirements = f"""aws-cdk-lib{self.config.synth.cdk_lib_version}
constructs>=10.0.0
"""
        req_path = self.output_dir / "requirements.txt"
        req_path.write_text(requirements)
        result.add_file(req_path)

        cdk_json = {
            "app": "python3 app.py",
            "watch": {
                "include": ["**"],
                "exclude": [
                    "cdk*.json",
                    "requirements*.txt",
                    "topology.json",
                    "**/*.pyc",
                    "**/__pycache__",
                    ".venv",
                ],
            },
            "context": {
                "@aws-cdk/core:stackRelativeExports": True,
                "@aws-cdk/aws-rds:lowercaseDbIdentifier": True,
                "@aws-cdk/aws-ecs:arnFormatIncludesClusterName": True,
            },
        }
        cdk_path = self.output_dir / "cdk.json"
        cdk_path.write_text(json.dumps(cdk_json, indent=2) + "\n")
        result.add_file(cdk_path)

        stacks_init_path = self.output_dir / "stacks" / "__init__.py"
        stacks_init_path.write_text('"""CDK layer constructs for the application."""\n')
        result.add_file(stacks_init_path)

        topology_path = self.output_dir / "topology.json"
        topology_path.write_text(json.dumps(self.stack.describe(), indent=2) + "\n")
        result.add_file(topology_path)

        return result

    def _verify_output(self, result: SynthResult) -> bool:
        """
        Check the generated files before they are handed off.

        Python modules must compile and must not import strata. No string
        literal in a module and no string in a JSON file may hold a resolved
        secret. A secret whose value also occurs in public configuration
        cannot be told apart from that configuration; it is skipped with a
        warning.
        """
        forbidden = ["from strata", "import strata"]
        secrets = self._checkable_secrets(result)

        for path in sorted(self.output_dir.rglob("*")):
            if not path.is_file() or path.suffix not in (".py", ".json", ".txt"):
                continue
            content = path.read_text()
            if any(pattern in content for pattern in forbidden):
                logger.warning("%s imports strata", path)
                return False

            if path.suffix == ".py":
                try:
                    tree = ast.parse(content, filename=str(path))
                    compile(tree, str(path), "exec")
                except SyntaxError as e:
                    logger.warning("%s does not compile: %s", path, e)
                    result.add_error(f"{path.name} does not compile: {e.msg} (line {e.lineno})")
                    return False
                strings = [
                    node.value
                    for node in ast.walk(tree)
                    if isinstance(node, ast.Constant) and isinstance(node.value, str)
                ]
            elif path.suffix == ".json":
                strings = list(_iter_strings(json.loads(content)))
            else:
                strings = [content]

            if any(secret in text for secret in secrets for text in strings):
                logger.warning("%s contains a resolved secret value", path)
                return False

        return True

    def _checkable_secrets(self, result: SynthResult) -> list[str]:
        """Resolved secret values that do not also occur in public values."""
        public = "\n".join(
            [
                *_iter_strings(self.config.model_dump(mode="json")),
                *_iter_strings(self.plan()),
            ]
        )

        checkable = []
        for value in dict.fromkeys(s.get_secret_value() for s in self._secret_values()):
            if not value:
                continue
            if value in public:
                result.add_warning(
                    "A resolved secret value also occurs in public configuration "
                    "and was not checked for leaks"
                )
                continue
            checkable.append(value)
        return checkable

    def _secret_values(self) -> list[SecretStr]:
        found: list[SecretStr] = [self.stack.data.db_url.password]

        def walk(value: Any) -> None:
            if isinstance(value, SecretStr):
                found.append(value)
            elif isinstance(value, dict):
                for item in value.values():
                    walk(item)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    walk(item)

        for resource in self.stack.topology:
            walk(resource.properties)
        return found

    def plan(self) -> dict[str, Any]:
        """
        Summary of what would be synthesized.

        Returns:
            Dictionary with the layer plan
        """
        stack = self.stack
        vpc = stack.network.vpc
        return {
            "stack_name": self.config.get_stack_name(),
            "region": self.config.region,
            "layers": [layer.name for layer in stack.topology.layers],
            "resources": len(stack.topology),
            "edges": len(stack.topology.edges),
            "network": {
                "cidr": vpc.cidr,
                "zones": list(vpc.zones),
                "segments": list(vpc.segment_names),
                "nat_gateways": len(vpc.nat_gateways),
            },
            "data": {
                "db_url": stack.data.db_url.masked(),
                "redis_host": stack.data.redis_host.token,
            },
            "service": {
                "domain_name": stack.service.service.domain_name,
                "repo_name": stack.service.repo_name,
                "container_name": stack.service.container_name,
                "health_check": self.config.service.health_check.as_policy(),
            },
        }


__all__ = [
    "SynthResult",
    "CDKSynthesizer",
    "SYNTH_VERSION",
]
