"""Core domain models: constructs, tokens and synthesis."""

from infrasynth.core.config import SynthConfig
from infrasynth.core.construct import App, Construct
from infrasynth.core.errors import (
    CyclicDependencyError,
    DuplicateLogicalIdError,
    DuplicateNameError,
    InfrasynthError,
    TemplateError,
    UnresolvableTokenError,
    ValidationError,
    ValidationFailure,
)
from infrasynth.core.stack import Condition, Mapping, Output, Parameter, Resource, Stack
from infrasynth.core.synthesizer import synthesize, synthesize_stack
from infrasynth.core.template import Template
from infrasynth.core.tokens import Aws, Token, is_token, lazy, resolve

__all__ = [
    "SynthConfig",
    "App",
    "Construct",
    "Stack",
    "Resource",
    "Parameter",
    "Output",
    "Mapping",
    "Condition",
    "Template",
    "Token",
    "Aws",
    "lazy",
    "is_token",
    "resolve",
    "synthesize",
    "synthesize_stack",
    "InfrasynthError",
    "DuplicateNameError",
    "DuplicateLogicalIdError",
    "UnresolvableTokenError",
    "CyclicDependencyError",
    "ValidationError",
    "ValidationFailure",
    "TemplateError",
]
