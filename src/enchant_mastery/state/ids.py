"""Enchantment identifier parsing.

Enchantment ids are namespaced ``namespace:path`` strings such as
``minecraft:sharpness``.  A bare path is read in the ``minecraft`` namespace,
matching how the host resolves unqualified ids.
"""

from __future__ import annotations

import re

DEFAULT_NAMESPACE = "minecraft"

_NAMESPACE_RE = re.compile(r"[a-z0-9_.-]+")
_PATH_RE = re.compile(r"[a-z0-9_./-]+")


def parse_enchantment_id(raw: object) -> str | None:
    """Return the canonical ``namespace:path`` form of *raw*, or ``None`` if invalid.

    Examples::

        parse_enchantment_id("sharpness")           # "minecraft:sharpness"
        parse_enchantment_id("mymod:frost_edge")    # "mymod:frost_edge"
        parse_enchantment_id("Bad Id!")             # None
    """
    if not isinstance(raw, str) or not raw:
        return None
    namespace, sep, path = raw.partition(":")
    if not sep:
        namespace, path = DEFAULT_NAMESPACE, raw
    if not _NAMESPACE_RE.fullmatch(namespace) or not _PATH_RE.fullmatch(path):
        return None
    return f"{namespace}:{path}"
