"""
Strata Synth - AWS CDK app generator.

Renders a composed stack into a standalone AWS CDK (Python) application:
- app.py with one stack holding the four layer constructs
- stacks/<layer>_layer.py per layer
- cdk.json, requirements.txt
- topology.json (masked description of the composed topology)
"""

from .generator import CDKGenerator, CDKGeneratorResult, LayerGenerator
from .runner import SYNTH_VERSION, CDKSynthesizer, SynthResult

__all__ = [
    "CDKGenerator",
    "CDKGeneratorResult",
    "LayerGenerator",
    "CDKSynthesizer",
    "SynthResult",
    "SYNTH_VERSION",
]
