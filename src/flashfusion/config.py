from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    v = env.get(name)
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_positive(env: Mapping[str, str], name: str, default: float) -> float:
    v = _env_float(env, name, default)
    return v if v > 0 else default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    v = env.get(name)
    if v is None or not v.strip():
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_s: float = 60.0
    dry_run: bool = False
    cache_ttl_s: float = 300.0
    cache_max_entries: int = 128
    collapse_inflight: bool = False
    tick_interval_s: float = 1.5
    seed: int | None = None
    runs_dir: str = "runs"

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "Settings":
        """
        Read FLASHFUSION_* variables. The API key falls back to GEMINI_API_KEY
        and then API_KEY. Unparseable or non-positive numbers keep their defaults.
        """
        env = os.environ if env is None else env
        d = Settings()
        seed = env.get("FLASHFUSION_SEED")
        return Settings(
            api_key=env.get("FLASHFUSION_API_KEY") or env.get("GEMINI_API_KEY") or env.get("API_KEY") or None,
            base_url=env.get("FLASHFUSION_BASE_URL") or d.base_url,
            timeout_s=_env_positive(env, "FLASHFUSION_TIMEOUT_S", d.timeout_s),
            dry_run=_env_bool(env, "FLASHFUSION_DRY_RUN", d.dry_run),
            cache_ttl_s=_env_positive(env, "FLASHFUSION_CACHE_TTL_S", d.cache_ttl_s),
            cache_max_entries=max(1, int(_env_float(env, "FLASHFUSION_CACHE_MAX_ENTRIES", d.cache_max_entries))),
            collapse_inflight=_env_bool(env, "FLASHFUSION_COLLAPSE_INFLIGHT", d.collapse_inflight),
            tick_interval_s=_env_positive(env, "FLASHFUSION_TICK_INTERVAL_S", d.tick_interval_s),
            seed=int(seed) if seed and seed.lstrip("-").isdigit() else None,
            runs_dir=env.get("FLASHFUSION_RUNS_DIR") or d.runs_dir,
        )

    def with_overrides(self, **kwargs: object) -> "Settings":
        """Apply CLI flags; None means "not given"."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})
