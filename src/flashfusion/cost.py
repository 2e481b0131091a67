from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .errors import UnknownTier


class ModelTier(str, Enum):
    FLASH = "flash"  # low-latency
    PRO = "pro"  # high-reasoning


@dataclass(frozen=True)
class TierProfile:
    tier: ModelTier
    model: str
    temperature: float
    thinking_budget: int | None
    cost_per_token: float  # simulated USD per ~4 chars of output


DEFAULT_PROFILES: dict[ModelTier, TierProfile] = {
    ModelTier.FLASH: TierProfile(
        tier=ModelTier.FLASH,
        model="gemini-3-flash-preview",
        temperature=0.45,
        thinking_budget=None,
        cost_per_token=0.0000003,
    ),
    ModelTier.PRO: TierProfile(
        tier=ModelTier.PRO,
        model="gemini-3-pro-preview",
        temperature=0.75,
        thinking_budget=16384,
        cost_per_token=0.0000125,
    ),
}

DEFAULT_COEFFICIENTS: dict[ModelTier, float] = {t: p.cost_per_token for t, p in DEFAULT_PROFILES.items()}


def tier_for(is_boosted: bool) -> ModelTier:
    return ModelTier.PRO if is_boosted else ModelTier.FLASH


def profile_for(tier: ModelTier, profiles: Mapping[ModelTier, TierProfile] | None = None) -> TierProfile:
    table = DEFAULT_PROFILES if profiles is None else profiles
    try:
        return table[tier]
    except KeyError:
        raise UnknownTier(tier) from None


def estimate_cost(
    response_text: str,
    tier: ModelTier,
    coefficients: Mapping[ModelTier, float] | None = None,
) -> float:
    """
    Simulated monetary cost of a response.

    Uses the usual ~4 characters per token rule of thumb, so the estimate is
    monotonic non-decreasing in response length for a fixed tier.
    """
    table = DEFAULT_COEFFICIENTS if coefficients is None else coefficients
    try:
        coef = table[tier]
    except KeyError:
        raise UnknownTier(tier) from None
    return (len(response_text) / 4.0) * float(coef)
