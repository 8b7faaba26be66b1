"""Enchant Mastery: per-player enchantment progression engine.

Players absorb enchantment knowledge from single-enchantment books, spend
currency to push an enchantment past the host's normal level cap, and slowly
decode the obfuscated enchantment name one letter at a time.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed we fall back to the
# last released version so the engine can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("enchant-mastery")
except PackageNotFoundError:
    __version__ = "0.3.0"
