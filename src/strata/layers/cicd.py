"""
CI/CD layer.

Terminal consumer of the service layer. It keeps the ServiceOutputs it
was given and declares one opaque pipeline resource; how the pipeline
runs belongs to the provisioning engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..topology import Resource
from .base import Layer

if TYPE_CHECKING:
    from ..config import StackConfig
    from ..topology import Topology
    from .service import ServiceOutputs


class CICDLayer(Layer[Resource]):
    """Declare the rebuild-and-redeploy pipeline for the service."""

    name = "CICDLayer"
    depends_on = ("ServiceLayer",)

    def __init__(self, config: StackConfig, topology: Topology, service_outputs: ServiceOutputs):
        super().__init__(config, topology)
        self.service_outputs = service_outputs

    def _build(self) -> Resource:
        outputs = self.service_outputs
        pipeline = self.config.pipeline

        return self.declare(
            "Pipeline",
            "codepipeline.Pipeline",
            branch=pipeline.branch,
            source_repository=pipeline.source_repository or self.config.identity.hyphen_name,
            stages=[
                {"name": "Source", "action": "source"},
                {
                    "name": "Build",
                    "action": "build",
                    "repository_name": outputs.repo_name,
                    "repository_uri": outputs.ecr_repo.repository_uri,
                },
                {
                    "name": "Deploy",
                    "action": "ecs_deploy",
                    "service": outputs.service.service_arn,
                    "container_name": outputs.container_name,
                },
            ],
        )


__all__ = ["CICDLayer"]
