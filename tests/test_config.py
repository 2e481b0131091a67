from __future__ import annotations

from flashfusion.config import Settings


def test_defaults_from_empty_env():
    s = Settings.from_env({})
    assert s == Settings()
    assert s.api_key is None and s.dry_run is False


def test_env_values_and_key_fallbacks():
    s = Settings.from_env(
        {
            "GEMINI_API_KEY": "g",
            "API_KEY": "a",
            "FLASHFUSION_DRY_RUN": "yes",
            "FLASHFUSION_CACHE_TTL_S": "12.5",
            "FLASHFUSION_CACHE_MAX_ENTRIES": "3",
            "FLASHFUSION_COLLAPSE_INFLIGHT": "1",
            "FLASHFUSION_SEED": "42",
        }
    )
    assert s.api_key == "g"
    assert s.dry_run is True
    assert s.cache_ttl_s == 12.5
    assert s.cache_max_entries == 3
    assert s.collapse_inflight is True
    assert s.seed == 42
    assert Settings.from_env({"FLASHFUSION_API_KEY": "f", "GEMINI_API_KEY": "g"}).api_key == "f"


def test_bad_numbers_keep_defaults():
    s = Settings.from_env({"FLASHFUSION_TIMEOUT_S": "soon", "FLASHFUSION_SEED": "abc", "FLASHFUSION_CACHE_MAX_ENTRIES": "0"})
    assert s.timeout_s == Settings().timeout_s
    assert s.seed is None
    assert s.cache_max_entries == 1


def test_overrides_skip_none():
    s = Settings(cache_ttl_s=5.0).with_overrides(cache_ttl_s=None, dry_run=True)
    assert s.cache_ttl_s == 5.0 and s.dry_run is True


def test_non_positive_durations_keep_defaults():
    s = Settings.from_env(
        {"FLASHFUSION_CACHE_TTL_S": "0", "FLASHFUSION_TIMEOUT_S": "-5", "FLASHFUSION_TICK_INTERVAL_S": "0"}
    )
    d = Settings()
    assert (s.cache_ttl_s, s.timeout_s, s.tick_interval_s) == (d.cache_ttl_s, d.timeout_s, d.tick_interval_s)
