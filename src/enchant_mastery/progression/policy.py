"""Progression policy: YAML loader and typed policy dataclasses.

The progression policy is the declarative tuning surface of the engine: every
curve coefficient plus the cap on letter unlocks per transaction.  It lives in
``data/policies/progression.yaml`` and is loaded once when a
:class:`~enchant_mastery.progression.engine.MasteryEngine` is built.

Design notes:
- All dataclasses are frozen (immutable after load).
- :func:`load_progression_policy` raises :exc:`FileNotFoundError` if the
  policy file is absent and :exc:`ValueError` on schema validation failure.
  Neither exception is caught here; the caller decides whether to fall back
  to :data:`DEFAULT_POLICY`.
- Any coefficient the YAML omits keeps its default from
  :class:`~enchant_mastery.progression.curves.ProgressionCurves`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from enchant_mastery.progression.curves import DEFAULT_CURVES, ProgressionCurves

# ---------------------------------------------------------------------------
# Typed dataclasses
# ---------------------------------------------------------------------------

#: YAML location of each curve coefficient: ``(block, key) -> field name``.
#: ``block`` is ``None`` for keys that sit directly under ``curves``.
_CURVE_FIELDS: dict[tuple[str | None, str], str] = {
    ("absorb", "base"): "absorb_base",
    ("absorb", "quadratic"): "absorb_quadratic",
    ("apply", "base"): "apply_base",
    ("apply", "quadratic"): "apply_quadratic",
    ("mastery_xp", "base"): "mastery_xp_base",
    ("mastery_xp", "linear"): "mastery_xp_linear",
    ("mastery_xp", "quadratic"): "mastery_xp_quadratic",
    (None, "xp_gain_multiplier"): "xp_gain_multiplier",
    ("decode", "base"): "decode_base",
    ("decode", "scaling"): "decode_scaling",
}

DEFAULT_MAX_UNLOCKS_PER_TRANSACTION = 3


@dataclass(frozen=True)
class DecodePolicy:
    """Rules for the letter-unlock cascade.

    Attributes:
        max_unlocks_per_transaction: Upper bound on letters revealed by one
                                     absorb or apply.  Leftover budget is
                                     discarded, never banked.
    """

    max_unlocks_per_transaction: int = DEFAULT_MAX_UNLOCKS_PER_TRANSACTION


@dataclass(frozen=True)
class ProgressionPolicy:
    """Top-level container for all progression tuning.

    Attributes:
        version: Schema version string read from the YAML file.  Stored on
                 audit events so a replay knows which curves were in force.
        curves:  Curve coefficients.
        decode:  Letter-unlock cascade rules.
    """

    version: str = "default"
    curves: ProgressionCurves = field(default_factory=lambda: DEFAULT_CURVES)
    decode: DecodePolicy = field(default_factory=DecodePolicy)


DEFAULT_POLICY = ProgressionPolicy()


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_progression_policy(path: Path) -> ProgressionPolicy:
    """Load and validate a progression policy YAML file.

    Args:
        path: Location of the policy file, usually
              ``data/policies/progression.yaml``.

    Returns:
        A fully-constructed, immutable :class:`ProgressionPolicy`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError:        On schema validation failure (missing version,
                           non-mapping blocks, non-numeric or negative
                           coefficients, a non-positive XP threshold base, or
                           a non-positive unlock cap).
    """
    if not path.exists():
        raise FileNotFoundError(f"Progression policy not found: {path}")

    with path.open() as fh:
        raw = yaml.safe_load(fh)

    if not isinstance(raw, dict):
        raise ValueError("progression.yaml must be a YAML mapping at the top level.")

    version = raw.get("version")
    if not version:
        raise ValueError("progression.yaml: missing required field 'version'.")

    curves_raw = raw.get("curves", {})
    if not isinstance(curves_raw, dict):
        raise ValueError("progression.yaml: 'curves' must be a mapping.")

    decode_raw = raw.get("decode", {})
    if not isinstance(decode_raw, dict):
        raise ValueError("progression.yaml: 'decode' must be a mapping.")

    return ProgressionPolicy(
        version=str(version),
        curves=_parse_curves(curves_raw),
        decode=_parse_decode(decode_raw),
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _parse_curves(raw: dict) -> ProgressionCurves:
    """Parse the ``curves`` block into :class:`ProgressionCurves`.

    Raises:
        ValueError: On non-mapping sub-blocks or invalid coefficients.
    """
    overrides: dict[str, float] = {}
    for (block, key), field_name in _CURVE_FIELDS.items():
        if block is None:
            container = raw
            label = f"curves.{key}"
        else:
            container = raw.get(block, {})
            if not isinstance(container, dict):
                raise ValueError(f"progression.yaml: curves.{block} must be a mapping.")
            label = f"curves.{block}.{key}"

        if key not in container:
            continue
        overrides[field_name] = _coefficient(container[key], label)

    curves = ProgressionCurves(**overrides)
    if curves.mastery_xp_base <= 0:
        raise ValueError(
            "progression.yaml: curves.mastery_xp.base must be > 0 "
            f"(got {curves.mastery_xp_base})."
        )
    return curves


def _parse_decode(raw: dict) -> DecodePolicy:
    cap = raw.get("max_unlocks_per_transaction", DEFAULT_MAX_UNLOCKS_PER_TRANSACTION)
    if isinstance(cap, bool) or not isinstance(cap, int) or cap <= 0:
        raise ValueError(
            "progression.yaml: decode.max_unlocks_per_transaction must be a positive "
            f"integer, got {cap!r}."
        )
    return DecodePolicy(max_unlocks_per_transaction=cap)


def _coefficient(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"progression.yaml: {label} must be a number, got {value!r}.")
    if value < 0:
        raise ValueError(f"progression.yaml: {label} must be >= 0, got {value!r}.")
    return float(value)
