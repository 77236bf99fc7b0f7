"""File-system side of infrasynth: loading apps and templates, writing templates.

The core works on in-memory objects only; everything that touches files
lives here and is used by the CLI.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from types import ModuleType
from typing import Any

import yaml

from infrasynth.core.construct import App
from infrasynth.core.errors import InfrasynthError, TemplateError
from infrasynth.core.template import Template

LOG = logging.getLogger(__name__)


class AppLoadError(InfrasynthError):
    """Raised when an app spec cannot be imported."""

    pass


class TemplateLoader(yaml.SafeLoader):
    """SafeLoader that also understands short-form intrinsic tags (``!Ref``, ``!Sub``...)."""


# Dates stay strings, e.g. "AWSTemplateFormatVersion: 2010-09-09"
TemplateLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for key, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> dict[str, Any]:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix == "Ref":
        return {"Ref": value}
    if tag_suffix == "Condition":
        return {"Condition": value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        # !GetAtt Resource.Attribute
        resource, _, attribute = value.partition(".")
        return {"Fn::GetAtt": [resource, attribute]}
    return {f"Fn::{tag_suffix}": value}


TemplateLoader.add_multi_constructor("!", _construct_intrinsic)


def load_template(path: str | Path, stack_name: str | None = None) -> Template:
    """Load a JSON or YAML template document."""
    path = Path(path)
    with path.open() as f:
        try:
            data = yaml.load(f, Loader=TemplateLoader)
        except yaml.YAMLError as e:
            raise TemplateError(f"Cannot parse template {path}: {e}") from e
    if data is None:
        data = {}
    name = stack_name or path.name.split(".")[0]
    return Template.from_dict(data, stack_name=name)


def write_template(template: Template, directory: str | Path, output_format: str = "json") -> Path:
    """Write a template into ``directory``; returns the file written."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    if output_format == "yaml":
        path = directory / f"{template.stack_name}.template.yaml"
        path.write_text(template.to_yaml())
    else:
        path = directory / template.template_file_name
        path.write_text(template.to_json() + "\n")
    LOG.debug("Wrote %s", path)
    return path


def load_app(spec: str) -> App:
    """
    Import an app from ``module:attribute`` or ``path/to/file.py:attribute``.

    The attribute may be an ``App`` or a zero-argument callable returning one.
    """
    module_name, _, attribute = spec.partition(":")
    attribute = attribute or "app"
    module = _import(module_name)

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise AppLoadError(f"Module '{module_name}' has no attribute '{attribute}'") from e

    if not isinstance(target, App) and callable(target):
        target = target()
    if not isinstance(target, App):
        raise AppLoadError(f"'{spec}' is not an App (got {type(target).__name__})")
    return target


def _import(module_name: str) -> ModuleType:
    if module_name.endswith(".py"):
        path = Path(module_name)
        if not path.exists():
            raise AppLoadError(f"App file not found: {path}")
        module_spec = importlib.util.spec_from_file_location(path.stem, path)
        if module_spec is None or module_spec.loader is None:
            raise AppLoadError(f"Cannot import app file: {path}")
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)
        return module
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise AppLoadError(f"Cannot import app module '{module_name}': {e}") from e
