"""Path-derived logical identifiers.

A logical id is a readable prefix built from the construct path followed by
a short hash of the full path::

    ["Pipeline", "Build", "Queue"]  ->  "PipelineBuildQueue" + "1A2B3C4D"

Compatibility contract: the diff engine correlates resources across
deployments purely by logical id, so the output of ``make_unique_id`` must
never change for an existing path. Any change to the hash input, the hash
algorithm, the hidden components or the readable-part rules is a breaking
change and must bump ``LOGICAL_ID_SCHEME_VERSION``.
"""

from __future__ import annotations

import hashlib
import re
from typing import Sequence

LOGICAL_ID_SCHEME_VERSION = 1

PATH_SEP = "/"
HASH_LENGTH = 8
MAX_LOGICAL_ID_LENGTH = 255

# Left out of the readable part only; the hash always covers the full path
HIDDEN_ID = "Resource"
HIDDEN_FROM_HUMAN_ID = "Default"

# Used when every component is hidden or has no alphanumeric characters
FALLBACK_HUMAN_ID = "Element"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def path_hash(components: Sequence[str]) -> str:
    """Uppercase hex digest prefix of the "/"-joined path."""
    digest = hashlib.md5(PATH_SEP.join(components).encode("utf-8"), usedforsecurity=False).hexdigest()
    return digest.upper()[:HASH_LENGTH]


def remove_non_alphanumeric(s: str) -> str:
    return _NON_ALNUM.sub("", s)


def remove_dupes(components: Sequence[str]) -> list[str]:
    """Drop components equal to the one right before them ("Queue/Queue" -> "Queue")."""
    result: list[str] = []
    for c in components:
        if not result or result[-1] != c:
            result.append(c)
    return result


def human_part(components: Sequence[str]) -> str:
    visible = [c for c in components if c not in (HIDDEN_ID, HIDDEN_FROM_HUMAN_ID)]
    human = "".join(remove_non_alphanumeric(c) for c in remove_dupes(visible))
    if not human:
        human = remove_non_alphanumeric(components[-1]) or FALLBACK_HUMAN_ID
    return human


def make_unique_id(components: Sequence[str], max_length: int = MAX_LOGICAL_ID_LENGTH) -> str:
    """
    Build the logical id for a path.

    The hash suffix is never dropped; when the result would be longer than
    ``max_length`` the readable prefix is truncated instead.
    """
    if not components:
        raise ValueError("Unable to calculate a unique id for an empty set of components")
    if max_length <= HASH_LENGTH:
        raise ValueError(f"max_length must be greater than {HASH_LENGTH}")

    human = human_part(components)[: max_length - HASH_LENGTH]
    return human + path_hash(components)
