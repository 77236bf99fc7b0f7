"""
Infrasynth - Infrastructure templates from a tree of typed constructs.

This package provides tools for:
- Declaring infrastructure as a tree of constructs with stable, path-derived identity
- Referencing values that are only known at synthesis time through tokens
- Synthesizing one dependency-ordered template document per stack
- Diffing template revisions and classifying which changes replace resources
- Rendering diffs and dependency diagrams
"""

__version__ = "0.1.0"

from infrasynth.core.construct import App, Construct
from infrasynth.core.stack import Resource, Stack
from infrasynth.core.synthesizer import synthesize
from infrasynth.diff import diff

__all__ = [
    "__version__",
    "App",
    "Construct",
    "Stack",
    "Resource",
    "synthesize",
    "diff",
]
