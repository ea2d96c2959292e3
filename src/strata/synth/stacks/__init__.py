"""
CDK layer generators.

Each module generates one layer construct:
- network: VPC, subnet segments, ECS cluster
- data: Redis replication group, Aurora PostgreSQL
- service: Fargate service, ALB, certificate, ECR, grants
- cicd: pipeline boundary
"""

from .cicd import CICDStackGenerator
from .data import DataStackGenerator
from .network import NetworkStackGenerator
from .service import ServiceStackGenerator

__all__ = [
    "NetworkStackGenerator",
    "DataStackGenerator",
    "ServiceStackGenerator",
    "CICDStackGenerator",
]
