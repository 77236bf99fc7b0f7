"""Infrasynth exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence


class InfrasynthError(Exception):
    """Base exception for all infrasynth errors."""

    pass


class DuplicateNameError(InfrasynthError):
    """Raised when a construct is added next to a sibling with the same name."""

    def __init__(self, parent_path: str, name: str) -> None:
        where = parent_path or "<root>"
        super().__init__(f"There is already a construct named '{name}' in {where}")
        self.parent_path = parent_path
        self.name = name


class UnresolvableTokenError(InfrasynthError):
    """Raised when a token cannot be resolved to a final value."""

    def __init__(self, path: str, token: Any, reason: str) -> None:
        super().__init__(f"Unable to resolve {token!s} at {path or '<root>'}: {reason}")
        self.path = path
        self.token = token
        self.reason = reason


class CyclicDependencyError(InfrasynthError):
    """Raised when the resources of a stack cannot be put in dependency order."""

    def __init__(self, stack: str, logical_ids: Sequence[str]) -> None:
        super().__init__(
            f"Cyclic dependency in stack '{stack}' between: {', '.join(logical_ids)}"
        )
        self.stack = stack
        self.logical_ids = list(logical_ids)


class DuplicateLogicalIdError(InfrasynthError):
    """Raised when two elements of one stack are assigned the same logical id."""

    def __init__(self, stack: str, logical_id: str, paths: Sequence[str]) -> None:
        super().__init__(
            f"Logical id '{logical_id}' in stack '{stack}' is used by: {', '.join(paths)}"
        )
        self.stack = stack
        self.logical_id = logical_id
        self.paths = list(paths)


@dataclass(frozen=True)
class ValidationFailure:
    """A single local validation problem reported by a construct."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"[{self.path}] {self.message}"


class ValidationError(InfrasynthError):
    """Aggregates every validation failure found in a construct tree."""

    def __init__(self, failures: Sequence[ValidationFailure]) -> None:
        self.failures = list(failures)
        lines = "\n".join(f"  {f}" for f in self.failures)
        super().__init__(f"Validation failed with {len(self.failures)} error(s):\n{lines}")


class TemplateError(InfrasynthError):
    """Raised when a template document does not match the template schema."""

    pass
