"""Progression curve functions.

Each function maps a level or count to a cost or an XP requirement.  All of
them are pure: no I/O, no shared state, integers in and integers out.  The
coefficients live on :class:`ProgressionCurves` so a world can retune the
curves through ``data/policies/progression.yaml`` (see
:mod:`enchant_mastery.progression.policy`) without touching code.

Curve contract:
- Accept the level/count positionally and the curves keyword-only.
- Round up with :func:`math.ceil` and floor the result at ``1`` for every
  positive input, so no positive action is ever free.
- Evaluate the polynomial in the same left-to-right order as the formulas
  below so float rounding is reproducible.

Default formulas::

    absorb_cost(L)       = ceil(3.0*L + 1.5*L*L)          L >= 1, else 0
    apply_cost(L)        = ceil(2.0*L + 1.2*L*L)          L >= 1, else 0
    xp_threshold(L)      = ceil(10.0 + L*3.0 + L*L*1.5)   L clamped to >= 0
    xp_gain(cost)        = ceil(cost * 5.0)               cost >= 1, else 0
    decode_cost(n)       = ceil(1.0 + 0.5*n)              n clamped to >= 0
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressionCurves:
    """Coefficients for every progression curve.

    Attributes:
        absorb_base:          Linear factor of the absorb cost.
        absorb_quadratic:     Quadratic factor of the absorb cost.
        apply_base:           Linear factor of the apply cost.
        apply_quadratic:      Quadratic factor of the apply cost.
        mastery_xp_base:      XP needed to go from mastery 0 to mastery 1.
        mastery_xp_linear:    Linear growth of the XP threshold per level.
        mastery_xp_quadratic: Quadratic growth of the XP threshold per level.
        xp_gain_multiplier:   Mastery XP earned per currency level spent on
                              an apply.
        decode_base:          Cost of the first letter unlock.
        decode_scaling:       Extra cost per letter already unlocked.
    """

    absorb_base: float = 3.0
    absorb_quadratic: float = 1.5
    apply_base: float = 2.0
    apply_quadratic: float = 1.2
    mastery_xp_base: float = 10.0
    mastery_xp_linear: float = 3.0
    mastery_xp_quadratic: float = 1.5
    xp_gain_multiplier: float = 5.0
    decode_base: float = 1.0
    decode_scaling: float = 0.5


#: The stock curves.  Used whenever a caller does not pass its own.
DEFAULT_CURVES = ProgressionCurves()


def absorb_cost(book_level: int, *, curves: ProgressionCurves = DEFAULT_CURVES) -> int:
    """Return the currency cost of absorbing a book of *book_level*.

    Args:
        book_level: Level of the single enchantment stored on the book.
        curves:     Coefficients to use.

    Returns:
        ``0`` for ``book_level <= 0``; otherwise at least ``1``.
    """
    if book_level <= 0:
        return 0
    cost = curves.absorb_base * book_level + curves.absorb_quadratic * book_level * book_level
    return max(1, math.ceil(cost))


def apply_cost(target_level: int, *, curves: ProgressionCurves = DEFAULT_CURVES) -> int:
    """Return the currency cost of applying an enchantment at *target_level*.

    Returns:
        ``0`` for ``target_level <= 0``; otherwise at least ``1``.
    """
    if target_level <= 0:
        return 0
    cost = curves.apply_base * target_level + curves.apply_quadratic * target_level * target_level
    return max(1, math.ceil(cost))


def xp_threshold(current_mastery_level: int, *, curves: ProgressionCurves = DEFAULT_CURVES) -> int:
    """Return the mastery XP needed to advance from *current_mastery_level* to the next.

    Negative levels are treated as ``0``.  The result is always at least
    ``1``, which is what guarantees :func:`resolve_level_ups` terminates.
    """
    level = max(0, current_mastery_level)
    needed = (
        curves.mastery_xp_base
        + level * curves.mastery_xp_linear
        + level * level * curves.mastery_xp_quadratic
    )
    return max(1, math.ceil(needed))


def xp_gain_from_apply_cost(cost: int, *, curves: ProgressionCurves = DEFAULT_CURVES) -> int:
    """Return the mastery XP earned by spending *cost* currency on an apply."""
    if cost <= 0:
        return 0
    return max(1, math.ceil(cost * curves.xp_gain_multiplier))


def decode_cost(letters_already_unlocked: int, *, curves: ProgressionCurves = DEFAULT_CURVES) -> int:
    """Return the budget consumed by the next letter unlock.

    Args:
        letters_already_unlocked: How many letters of the name are already
                                  revealed.  Negative counts are treated as
                                  ``0``.
    """
    n = max(0, letters_already_unlocked)
    cost = curves.decode_base + curves.decode_scaling * n
    return max(1, math.ceil(cost))


def resolve_level_ups(
    level: int,
    xp: int,
    xp_to_add: int,
    *,
    curves: ProgressionCurves = DEFAULT_CURVES,
) -> tuple[int, int]:
    """Add *xp_to_add* to *xp* and apply every level-up it pays for.

    The threshold is re-evaluated at each new level, so one large gain can
    carry a mastery across several levels.

    Args:
        level:     Current mastery level.
        xp:        XP already banked toward the next level.
        xp_to_add: XP being added.  Must not be negative.

    Returns:
        ``(new_level, remaining_xp)`` where ``remaining_xp`` is strictly below
        ``xp_threshold(new_level)``.

    Raises:
        ValueError: If *xp_to_add* is negative.
    """
    if xp_to_add < 0:
        raise ValueError(f"resolve_level_ups: xp_to_add must be >= 0, got {xp_to_add}.")

    total = xp + xp_to_add
    needed = xp_threshold(level, curves=curves)
    while total >= needed:
        total -= needed
        level += 1
        needed = xp_threshold(level, curves=curves)
    return level, total


def total_absorb_cost(
    from_level: int,
    to_level: int,
    *,
    curves: ProgressionCurves = DEFAULT_CURVES,
) -> int:
    """Return the summed absorb cost of every level in ``(from_level, to_level]``.

    An empty range (``to_level <= from_level``) costs ``0``.
    """
    return sum(absorb_cost(i, curves=curves) for i in range(from_level + 1, to_level + 1))
