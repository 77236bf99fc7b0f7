"""The construct tree."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from infrasynth.core.errors import DuplicateNameError
from infrasynth.core.logical_ids import PATH_SEP, make_unique_id

if TYPE_CHECKING:
    from infrasynth.core.config import SynthConfig
    from infrasynth.core.template import Template

LOG = logging.getLogger(__name__)


class MetadataType(str, Enum):
    """Well-known metadata entry types."""

    INFO = "infrasynth:info"
    WARNING = "infrasynth:warning"
    ERROR = "infrasynth:error"


@dataclass(frozen=True)
class MetadataEntry:
    type: str
    data: Any


class Construct:
    """
    A node in the construct tree.

    The parent is fixed at creation: constructing ``Construct(scope, id)``
    attaches the new node as the last child of ``scope``. Children keep
    insertion order and their ids are unique within the parent.
    """

    def __init__(self, scope: Construct | None, id: str) -> None:
        self._id = id
        self._parent = scope
        self._children: dict[str, Construct] = {}
        self._metadata: list[MetadataEntry] = []
        self._context: dict[str, Any] = {}
        self._dependencies: list[Construct] = []
        self._locked = False

        if scope is None:
            return

        if not id:
            raise ValueError(f"Only the root construct may have an empty id (under {scope.path or '<root>'})")
        if PATH_SEP in id:
            raise ValueError(f"Construct id '{id}' cannot contain '{PATH_SEP}'")
        scope._add_child(self)

    def _add_child(self, child: Construct) -> None:
        if self.root._locked:
            raise RuntimeError(
                f"Cannot add '{child.id}' to {self.path or '<root>'}: the tree is being synthesized"
            )
        if child.id in self._children:
            raise DuplicateNameError(self.path, child.id)
        self._children[child.id] = child
        LOG.debug("Added construct %s", child.path)

    @property
    def id(self) -> str:
        return self._id

    @property
    def parent(self) -> Construct | None:
        return self._parent

    @property
    def root(self) -> Construct:
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    @property
    def children(self) -> list[Construct]:
        return list(self._children.values())

    @property
    def path_components(self) -> tuple[str, ...]:
        """Ids from the root down to this node; an empty root id is left out."""
        components: list[str] = []
        node: Construct | None = self
        while node is not None:
            if node._id:
                components.append(node._id)
            node = node._parent
        return tuple(reversed(components))

    @property
    def path(self) -> str:
        return PATH_SEP.join(self.path_components)

    @property
    def unique_id(self) -> str:
        """Path-derived identifier, stable across runs; usable as a default physical name."""
        return make_unique_id(self.path_components)

    def ancestors(self) -> list[Construct]:
        """Nodes from the root down to (and including) this one."""
        result: list[Construct] = []
        node: Construct | None = self
        while node is not None:
            result.append(node)
            node = node._parent
        return list(reversed(result))

    def try_find_child(self, id: str) -> Construct | None:
        return self._children.get(id)

    def find_child(self, id: str) -> Construct:
        child = self.try_find_child(id)
        if child is None:
            raise KeyError(f"No child named '{id}' in {self.path or '<root>'}")
        return child

    def find_all(self) -> list[Construct]:
        """This node and all its descendants, in pre-order."""
        return list(self.iter_tree())

    def iter_tree(self) -> Iterator[Construct]:
        yield self
        for child in self._children.values():
            yield from child.iter_tree()

    # --- context ---

    def set_context(self, key: str, value: Any) -> None:
        if self._children:
            raise ValueError(
                f"Cannot set context '{key}' on {self.path or '<root>'} after children were added"
            )
        self._context[key] = value

    def get_context(self, key: str, default: Any = None) -> Any:
        """Look up a context value on this node or the closest ancestor that has it."""
        node: Construct | None = self
        while node is not None:
            if key in node._context:
                return node._context[key]
            node = node._parent
        return default

    # --- metadata ---

    @property
    def metadata(self) -> list[MetadataEntry]:
        return list(self._metadata)

    def add_metadata(self, type: str, data: Any) -> Construct:
        if data is not None:
            self._metadata.append(MetadataEntry(type, data))
        return self

    def add_info(self, message: str) -> Construct:
        return self.add_metadata(MetadataType.INFO.value, message)

    def add_warning(self, message: str) -> Construct:
        return self.add_metadata(MetadataType.WARNING.value, message)

    def add_error(self, message: str) -> Construct:
        """Record an error; it is reported as a validation failure at synthesis."""
        return self.add_metadata(MetadataType.ERROR.value, message)

    # --- validation and dependencies ---

    def validate(self) -> list[str]:
        """Return local validation problems. Subclasses override this."""
        return []

    def add_dependency(self, *targets: Construct) -> None:
        """Order every resource under this node after every resource under ``targets``."""
        for target in targets:
            if target is self:
                raise ValueError(f"{self.path} cannot depend on itself")
            if target not in self._dependencies:
                self._dependencies.append(target)

    @property
    def dependencies(self) -> list[Construct]:
        return list(self._dependencies)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path or '<root>'})"


@contextmanager
def locked(root: Construct) -> Iterator[Construct]:
    """Reject tree changes while the tree is being read."""
    root._locked = True
    try:
        yield root
    finally:
        root._locked = False


class App(Construct):
    """The root of a construct tree."""

    def __init__(self, context: dict[str, Any] | None = None) -> None:
        super().__init__(None, "")
        for key, value in (context or {}).items():
            self.set_context(key, value)

    def synth(self, config: SynthConfig | None = None) -> list[Template]:
        """Synthesize every stack in this app. See ``infrasynth.core.synthesizer``."""
        from infrasynth.core.synthesizer import synthesize

        return synthesize(self, config)
