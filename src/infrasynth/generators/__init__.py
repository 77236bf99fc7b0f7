"""Generators for diagrams and change summaries."""

from infrasynth.generators.diff import render_diff
from infrasynth.generators.mermaid import generate_mermaid

__all__ = [
    "generate_mermaid",
    "render_diff",
]
