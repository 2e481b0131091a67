from __future__ import annotations

import pytest

from flashfusion.cost import DEFAULT_COEFFICIENTS, ModelTier, estimate_cost, profile_for, tier_for
from flashfusion.errors import UnknownTier


def test_formula():
    coef = DEFAULT_COEFFICIENTS[ModelTier.PRO]
    assert estimate_cost("x" * 400, ModelTier.PRO) == pytest.approx(100 * coef)
    assert estimate_cost("", ModelTier.FLASH) == 0.0


def test_monotonic_in_length():
    for tier in ModelTier:
        costs = [estimate_cost("a" * n, tier) for n in range(0, 200, 7)]
        assert costs == sorted(costs)


def test_pro_costs_more_than_flash():
    text = "architecture " * 20
    assert estimate_cost(text, ModelTier.PRO) > estimate_cost(text, ModelTier.FLASH)


def test_unknown_tier():
    with pytest.raises(UnknownTier):
        estimate_cost("hi", "ultra")  # type: ignore[arg-type]
    with pytest.raises(UnknownTier):
        estimate_cost("hi", ModelTier.PRO, coefficients={ModelTier.FLASH: 1.0})
    with pytest.raises(UnknownTier):
        profile_for(ModelTier.PRO, {})


def test_tier_selection():
    assert tier_for(True) is ModelTier.PRO
    assert tier_for(False) is ModelTier.FLASH
    assert profile_for(ModelTier.PRO).thinking_budget == 16384
    assert profile_for(ModelTier.FLASH).thinking_budget is None
