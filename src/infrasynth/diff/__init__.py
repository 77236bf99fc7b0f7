"""Template diff engine: what changes between two template revisions."""

from infrasynth.diff.engine import diff_template, normalize
from infrasynth.diff.model import (
    ChangeType,
    Difference,
    DiffResult,
    PropertyDifference,
    ResourceDifference,
    ResourceImpact,
)
from infrasynth.diff.rules import ReplacementRules, RuleTableError

diff = diff_template

__all__ = [
    "diff",
    "diff_template",
    "normalize",
    "ChangeType",
    "Difference",
    "DiffResult",
    "PropertyDifference",
    "ResourceDifference",
    "ResourceImpact",
    "ReplacementRules",
    "RuleTableError",
]
