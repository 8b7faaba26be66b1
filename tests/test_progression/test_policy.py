"""Tests for the progression policy YAML loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from enchant_mastery.config import PROJECT_ROOT
from enchant_mastery.progression.curves import DEFAULT_CURVES
from enchant_mastery.progression.policy import (
    DEFAULT_MAX_UNLOCKS_PER_TRANSACTION,
    DEFAULT_POLICY,
    load_progression_policy,
)

SHIPPED_POLICY = PROJECT_ROOT / "data" / "policies" / "progression.yaml"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "progression.yaml"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
class TestLoadProgressionPolicy:
    def test_shipped_policy_matches_defaults(self) -> None:
        """The YAML in data/policies spells out the built-in defaults."""
        policy = load_progression_policy(SHIPPED_POLICY)

        assert policy.version == "1.0"
        assert policy.curves == DEFAULT_CURVES
        assert policy.decode == DEFAULT_POLICY.decode

    def test_omitted_keys_keep_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, 'version: "2"\ncurves:\n  absorb:\n    base: 4\n')

        policy = load_progression_policy(path)

        assert policy.version == "2"
        assert policy.curves.absorb_base == 4.0
        assert policy.curves.absorb_quadratic == DEFAULT_CURVES.absorb_quadratic
        assert policy.decode.max_unlocks_per_transaction == DEFAULT_MAX_UNLOCKS_PER_TRANSACTION

    def test_top_level_multiplier_and_cap(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            'version: "x"\ncurves:\n  xp_gain_multiplier: 2.5\n'
            "decode:\n  max_unlocks_per_transaction: 1\n",
        )

        policy = load_progression_policy(path)

        assert policy.curves.xp_gain_multiplier == 2.5
        assert policy.decode.max_unlocks_per_transaction == 1

    def test_policy_is_frozen(self) -> None:
        with pytest.raises(AttributeError):
            DEFAULT_POLICY.version = "mutated"  # type: ignore[misc]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_progression_policy(tmp_path / "absent.yaml")

    @pytest.mark.parametrize(
        ("text", "match"),
        [
            ("- just\n- a list\n", "mapping"),
            ("curves: {}\n", "version"),
            ('version: "1"\ncurves: [1, 2]\n', "'curves' must be a mapping"),
            ('version: "1"\ncurves:\n  absorb: 3\n', "curves.absorb must be a mapping"),
            ('version: "1"\ncurves:\n  absorb:\n    base: cheap\n', "must be a number"),
            ('version: "1"\ncurves:\n  apply:\n    quadratic: -0.1\n', "must be >= 0"),
            ('version: "1"\ncurves:\n  decode:\n    base: true\n', "must be a number"),
            ('version: "1"\ncurves:\n  mastery_xp:\n    base: 0\n', "mastery_xp.base must be > 0"),
            ('version: "1"\ndecode:\n  max_unlocks_per_transaction: 0\n', "positive"),
            ('version: "1"\ndecode:\n  max_unlocks_per_transaction: 2.5\n', "positive"),
            ('version: "1"\ndecode: off\n', "'decode' must be a mapping"),
        ],
    )
    def test_schema_violations(self, tmp_path: Path, text: str, match: str) -> None:
        with pytest.raises(ValueError, match=match):
            load_progression_policy(_write(tmp_path, text))
