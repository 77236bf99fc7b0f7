"""Tokens: values that are only known at synthesis time.

A token can appear anywhere in a property bag: directly, nested inside
mappings and sequences, or embedded in a string. Embedding works through
``str(token)``, which returns an opaque marker such as
``${Token[Ref.12]}``. During resolution markers are located again, their
tokens resolved, and the pieces reassembled into either a plain string or an
``Fn::Join`` expression when some piece is a structured intrinsic.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from infrasynth.core.errors import UnresolvableTokenError

LOG = logging.getLogger(__name__)

TOKEN_MARKER_RE = re.compile(r"\$\{Token\[([A-Za-z0-9_:.\-]+)\]\}")
_HINT_SANITIZE_RE = re.compile(r"[^A-Za-z0-9_:\-]")


@dataclass
class ResolveContext:
    """
    State visible to token resolvers while one stack is being resolved.

    ``logical_ids`` is the completed identifier table of the stack, keyed
    by construct path. Every reference looked up through the context is
    recorded in ``references`` so the synthesizer can infer dependencies.
    """

    logical_ids: Mapping[str, str]
    stack_name: str = ""
    owner_path: str = ""
    max_depth: int = 50
    references: list[str] = field(default_factory=list)
    depth: int = 0

    def lookup_logical_id(self, target_path: str, token: Token) -> str:
        logical_id = self.logical_ids.get(target_path)
        if logical_id is None:
            raise UnresolvableTokenError(
                self.owner_path,
                token,
                f"'{target_path}' is not an element of stack '{self.stack_name}'",
            )
        if target_path not in self.references:
            LOG.debug("%s references %s (%s)", self.owner_path, target_path, logical_id)
            self.references.append(target_path)
        return logical_id

    def for_owner(self, owner_path: str) -> ResolveContext:
        """A fresh context sharing the identifier table, for another element."""
        return ResolveContext(
            logical_ids=self.logical_ids,
            stack_name=self.stack_name,
            owner_path=owner_path,
            max_depth=self.max_depth,
        )


class Token:
    """
    A placeholder for a value produced at synthesis time.

    ``value`` is either the final value (which may itself contain tokens) or
    a callable taking the ``ResolveContext``.
    """

    def __init__(self, value: Any = None, display_hint: str | None = None) -> None:
        self._value = value
        self.display_hint = display_hint
        self._marker: str | None = None

    def resolve(self, context: ResolveContext) -> Any:
        if callable(self._value):
            return self._value(context)
        return self._value

    def intern_key(self) -> tuple[Any, ...] | None:
        """Key under which equivalent tokens share one marker, or None."""
        return None

    def __str__(self) -> str:
        if self._marker is None:
            self._marker = TOKEN_MAP.register(self)
        return self._marker

    def __format__(self, format_spec: str) -> str:
        return format(str(self), format_spec)

    def __add__(self, other: Any) -> str:
        return str(self) + str(other)

    def __radd__(self, other: Any) -> str:
        return str(other) + str(self)

    def __repr__(self) -> str:
        return f"Token({self.display_hint or 'TOKEN'})"


class TokenMap:
    """
    Registry translating string markers back into their tokens.

    Entries are never released since a marker may be embedded in a string
    that outlives its token. Tokens with an intern key (references) share
    one entry, so building the same tree repeatedly does not grow the map.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, Token] = {}
        self._interned: dict[tuple[Any, ...], str] = {}
        self._counter = itertools.count(1)

    def register(self, token: Token) -> str:
        intern_key = token.intern_key()
        if intern_key is not None and intern_key in self._interned:
            return self._interned[intern_key]

        hint = _HINT_SANITIZE_RE.sub("_", token.display_hint or "TOKEN")
        key = f"{hint}.{next(self._counter)}"
        self._tokens[key] = token
        marker = "${Token[" + key + "]}"
        if intern_key is not None:
            self._interned[intern_key] = marker
        return marker

    def lookup(self, key: str) -> Token:
        return self._tokens[key]

    def __len__(self) -> int:
        return len(self._tokens)

    def split(self, s: str) -> list[str | Token]:
        """Split a string into literal fragments and the tokens between them."""
        fragments: list[str | Token] = []
        pos = 0
        for match in TOKEN_MARKER_RE.finditer(s):
            if match.start() > pos:
                fragments.append(s[pos : match.start()])
            fragments.append(self.lookup(match.group(1)))
            pos = match.end()
        if pos < len(s):
            fragments.append(s[pos:])
        return fragments


TOKEN_MAP = TokenMap()


def is_token(obj: Any) -> bool:
    """True for tokens and for strings carrying an embedded token marker."""
    if isinstance(obj, Token):
        return True
    return isinstance(obj, str) and TOKEN_MARKER_RE.search(obj) is not None


# Validators use this to skip values that are not known before synthesis
unresolved = is_token


def resolve(obj: Any, context: ResolveContext) -> Any:
    """
    Return a copy of ``obj`` with every token replaced by its final value.

    Token results are resolved again until no token remains; more than
    ``context.max_depth`` nested resolutions raise ``UnresolvableTokenError``.
    ``None`` entries are dropped from mappings and sequences.
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj

    if isinstance(obj, Token):
        return _resolve_token(obj, context)

    if isinstance(obj, str):
        if TOKEN_MARKER_RE.search(obj) is None:
            return obj
        return _resolve_string(obj, context)

    if isinstance(obj, Mapping):
        result: dict[str, Any] = {}
        for key, value in obj.items():
            resolved_key = resolve(key, context)
            if not isinstance(resolved_key, str):
                raise UnresolvableTokenError(
                    context.owner_path, key, "mapping keys must resolve to strings"
                )
            resolved_value = resolve(value, context)
            if resolved_value is not None:
                result[resolved_key] = resolved_value
        return result

    if isinstance(obj, (list, tuple)):
        items = (resolve(item, context) for item in obj)
        return [item for item in items if item is not None]

    raise UnresolvableTokenError(
        context.owner_path, obj, f"values of type {type(obj).__name__} cannot be synthesized"
    )


def _resolve_token(token: Token, context: ResolveContext) -> Any:
    if context.depth >= context.max_depth:
        raise UnresolvableTokenError(
            context.owner_path,
            token,
            f"exceeded maximum resolution depth ({context.max_depth}), "
            "the token probably depends on itself",
        )
    context.depth += 1
    try:
        return resolve(token.resolve(context), context)
    finally:
        context.depth -= 1


def _resolve_string(s: str, context: ResolveContext) -> Any:
    try:
        fragments = TOKEN_MAP.split(s)
    except KeyError as e:
        raise UnresolvableTokenError(context.owner_path, s, f"unknown token marker {e}") from e

    parts = []
    for fragment in fragments:
        if isinstance(fragment, Token):
            fragment = _resolve_token(fragment, context)
            if fragment is None:
                fragment = ""
            elif isinstance(fragment, bool):
                fragment = "true" if fragment else "false"
        parts.append(fragment)
    return join_fragments(parts, delimiter="")


def join_fragments(parts: list[Any], delimiter: str) -> Any:
    """
    Concatenate resolved fragments.

    Plain strings and numbers are joined directly. If any fragment is a
    structured intrinsic the result is an ``Fn::Join`` expression.
    """
    if all(isinstance(p, (str, int, float)) and not isinstance(p, bool) for p in parts):
        return delimiter.join(str(p) for p in parts)

    if delimiter == "" and len(parts) == 1:
        return parts[0]

    flat: list[Any] = []
    for part in parts:
        if isinstance(part, (int, float)) and not isinstance(part, bool):
            part = str(part)
        if delimiter == "" and _is_empty_join(part):
            nested = part["Fn::Join"][1]
        else:
            nested = [part]
        for item in nested:
            if delimiter == "" and item == "":
                continue
            if delimiter == "" and flat and isinstance(item, str) and isinstance(flat[-1], str):
                flat[-1] += item
            else:
                flat.append(item)

    if delimiter == "" and len(flat) == 1:
        return flat[0]
    return {"Fn::Join": [delimiter, flat]}


def _is_empty_join(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and list(value) == ["Fn::Join"]
        and isinstance(value["Fn::Join"], list)
        and len(value["Fn::Join"]) == 2
        and value["Fn::Join"][0] == ""
    )


# --- References ---


class Reference(Token):
    """A token pointing at another element of the same stack.

    Holds the target's construct path only; the logical id is looked up in
    the resolve context, which also records the implied dependency.
    """

    def __init__(self, target_path: str, display_hint: str) -> None:
        super().__init__(display_hint=display_hint)
        self.target_path = target_path

    def resolve(self, context: ResolveContext) -> Any:
        logical_id = context.lookup_logical_id(self.target_path, self)
        return self.render(logical_id)

    def intern_key(self) -> tuple[Any, ...]:
        return (type(self), self.target_path, self.display_hint)

    def render(self, logical_id: str) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target_path})"


class Ref(Reference):
    def __init__(self, target_path: str) -> None:
        super().__init__(target_path, "Ref")

    def render(self, logical_id: str) -> Any:
        return {"Ref": logical_id}


class GetAtt(Reference):
    def __init__(self, target_path: str, attribute: str) -> None:
        super().__init__(target_path, f"GetAtt:{attribute}")
        self.attribute = attribute

    def render(self, logical_id: str) -> Any:
        return {"Fn::GetAtt": [logical_id, self.attribute]}


class LogicalIdToken(Reference):
    """Resolves to the bare logical id string of the target."""

    def __init__(self, target_path: str) -> None:
        super().__init__(target_path, "LogicalId")

    def render(self, logical_id: str) -> Any:
        return logical_id


class PseudoParameter(Token):
    def __init__(self, name: str) -> None:
        super().__init__({"Ref": name}, display_hint=name)
        self.name = name


class Aws:
    """Pseudo parameters provided by the deployment engine."""

    ACCOUNT_ID = PseudoParameter("AWS::AccountId")
    NOTIFICATION_ARNS = PseudoParameter("AWS::NotificationARNs")
    NO_VALUE = PseudoParameter("AWS::NoValue")
    PARTITION = PseudoParameter("AWS::Partition")
    REGION = PseudoParameter("AWS::Region")
    STACK_ID = PseudoParameter("AWS::StackId")
    STACK_NAME = PseudoParameter("AWS::StackName")
    URL_SUFFIX = PseudoParameter("AWS::URLSuffix")


# --- Intrinsic functions ---


def lazy(producer: Callable[[], Any], display_hint: str = "Lazy") -> Token:
    """Token over a zero-argument function, evaluated at synthesis time."""
    return Token(lambda _context: producer(), display_hint)


def fn_join(delimiter: str, values: list[Any] | Token) -> Token:
    """
    Join values; collapses to a plain string when every value resolves to one.

    ``values`` may also be a list-valued intrinsic such as ``fn_get_azs()``,
    which is only known at deploy time and stays an ``Fn::Join``.
    """

    def _join(context: ResolveContext) -> Any:
        resolved = resolve(values if isinstance(values, (Token, str)) else list(values), context)
        if not isinstance(resolved, list):
            return {"Fn::Join": [delimiter, resolved]}
        if all(isinstance(v, str) for v in resolved):
            return delimiter.join(resolved)
        return join_fragments(resolved, delimiter)

    return Token(_join, "Fn::Join")


def fn_concat(*values: Any) -> Token:
    return fn_join("", list(values))


def fn_select(index: int, values: Any) -> Token:
    return Token({"Fn::Select": [index, values]}, "Fn::Select")


def fn_split(delimiter: str, source: Any) -> Token:
    return Token({"Fn::Split": [delimiter, source]}, "Fn::Split")


def fn_sub(body: str, variables: Mapping[str, Any] | None = None) -> Token:
    if variables:
        return Token({"Fn::Sub": [body, dict(variables)]}, "Fn::Sub")
    return Token({"Fn::Sub": body}, "Fn::Sub")


def fn_base64(data: Any) -> Token:
    return Token({"Fn::Base64": data}, "Fn::Base64")


def fn_get_azs(region: Any = "") -> Token:
    return Token({"Fn::GetAZs": region}, "Fn::GetAZs")


def fn_import_value(shared_value: Any) -> Token:
    return Token({"Fn::ImportValue": shared_value}, "Fn::ImportValue")


def fn_find_in_map(map_name: Any, top_level_key: Any, second_level_key: Any) -> Token:
    return Token(
        {"Fn::FindInMap": [_name_of(map_name), top_level_key, second_level_key]},
        "Fn::FindInMap",
    )


def fn_if(condition: Any, value_if_true: Any, value_if_false: Any) -> Token:
    return Token({"Fn::If": [_name_of(condition), value_if_true, value_if_false]}, "Fn::If")


def fn_equals(lhs: Any, rhs: Any) -> Token:
    return Token({"Fn::Equals": [lhs, rhs]}, "Fn::Equals")


def fn_not(condition: Any) -> Token:
    return Token({"Fn::Not": [_condition_operand(condition)]}, "Fn::Not")


def fn_and(*conditions: Any) -> Token:
    return Token({"Fn::And": [_condition_operand(c) for c in conditions]}, "Fn::And")


def fn_or(*conditions: Any) -> Token:
    return Token({"Fn::Or": [_condition_operand(c) for c in conditions]}, "Fn::Or")


def _name_of(element: Any) -> Any:
    # Conditions and mappings are referred to by logical id
    return getattr(element, "logical_id", element)


def _condition_operand(condition: Any) -> Any:
    if hasattr(condition, "logical_id"):
        return {"Condition": condition.logical_id}
    return condition

