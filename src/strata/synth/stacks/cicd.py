"""
CI/CD layer generator.

The pipeline is opaque to Strata; the generated construct only receives
the service layer and exports what a pipeline needs to address it.
"""

from __future__ import annotations

from ..generator import LayerGenerator, doc_text


class CICDStackGenerator(LayerGenerator):
    """Generate the delivery pipeline boundary."""

    @property
    def layer_name(self) -> str:
        return "CICDLayer"

    def _generate_layer_code(self) -> str:
        return f'''{self._generate_header("from aws_cdk import CfnOutput")}

class CICDLayer(Construct):
    """
    Delivery pipeline boundary for {doc_text(self.config.identity.service_name)}.

    Builds from branch "{doc_text(self.config.pipeline.branch)}" and redeploys the
    service layer's container.
    """

    def __init__(self, scope: Construct, id: str, service_layer) -> None:
        super().__init__(scope, id)

        self.service_layer = service_layer

        CfnOutput(self, "RepositoryName", value=service_layer.repo_name)
        CfnOutput(self, "RepositoryUri", value=service_layer.ecr_repo.repository_uri)
        CfnOutput(self, "ContainerName", value=service_layer.container_name)
        CfnOutput(self, "ServiceName", value=service_layer.service.service_name)
'''
