from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

import httpx

from .cache import CacheEntry, InferenceMetrics, ResponseCache, cache_key
from .cost import ModelTier, TierProfile, estimate_cost, profile_for, tier_for
from .errors import ClusterSaturated, InferenceUnavailable
from .model_client import GenerationResult, ModelBackend
from .simulation import DISTRICT_LABELS
from .telemetry import ChatTelemetry, TelemetryLogger, now_ms
from .tools import TOOL_DECLARATIONS, ToolCall, parse_tool_calls, tool_call_to_dict

log = logging.getLogger(__name__)

# No streaming timer exists; TTFT is reported as this fraction of total latency.
TTFT_FRACTION = 0.3

EMPTY_RESPONSE_TEXT = "Architectural packet dropped. Please retry initialization."

_INVENTORY = "; ".join(f"{d.value}: {label}" for d, label in DISTRICT_LABELS.items())

SYSTEM_INSTRUCTION = f"""
You are the FlashFusion Planning Intelligence (FFPI), an expert urban planner for federated digital stacks.
FlashFusion optimizes by routing through transit hubs (n8n, Zapier, MCP) instead of point-to-point chaos.

ARCHITECTURE CONTEXT:
- Primary Hub: n8n (Metro) - Handles the majority of orchestrated data flows.
- Secondary Hub: Zapier - Failover transit for SaaS-to-SaaS flows.
- District Inventory: {_INVENTORY}

CAPABILITIES:
1. Reference specific district platforms (e.g., tRPC for DEV, Drizzle for persistence).
2. Utilize 'triggerSimulationEvent' to demonstrate failures or hub switches.
3. Use 'navigateToSection' to visually guide the user through the dashboard.
4. Use 'toggleGpuBoost' to demonstrate accelerated inference on the AI district.
5. Provide deep architectural reasoning.
""".strip()


@dataclass(frozen=True)
class ChatResult:
    text: str
    metrics: InferenceMetrics
    cost_estimate: float
    tier: ModelTier
    cache_key: str
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_dict(self) -> dict:
        out = {
            "text": self.text,
            "metrics": self.metrics.to_dict(),
            "costEstimate": self.cost_estimate,
        }
        if self.tool_calls:
            out["toolCalls"] = [tool_call_to_dict(c) for c in self.tool_calls]
        return out


class InferenceOrchestrator:
    """
    Routes chat requests to a model tier, with a response cache in front.

    Cache policy: partitioned per tier. Boosted and non-boosted requests are
    cached under different keys, so one never serves the other's answer.
    Responses that carry tool calls are not cached (they trigger actions),
    and neither are empty responses.

    Concurrent misses for the same key both go to the model and the last
    write wins, unless `collapse_inflight=True`, in which case followers
    await the first caller's in-flight request.
    """

    def __init__(
        self,
        *,
        client: ModelBackend,
        cache: ResponseCache | None = None,
        profiles: Mapping[ModelTier, TierProfile] | None = None,
        coefficients: Mapping[ModelTier, float] | None = None,
        system_instruction: str = SYSTEM_INSTRUCTION,
        telemetry: TelemetryLogger | None = None,
        run_id: str = "session",
        collapse_inflight: bool = False,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.client = client
        self.cache = cache
        self.profiles = profiles
        self.coefficients = coefficients
        self.system_instruction = system_instruction
        self.telemetry = telemetry
        self.run_id = run_id
        self.collapse_inflight = collapse_inflight
        self.clock = clock
        self.remote_calls = 0
        self._inflight: dict[str, asyncio.Future] = {}

    def _cache_get(self, key: str) -> CacheEntry | None:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception:
            log.warning("Response cache read failed; treating as miss", exc_info=True)
            return None

    def _cache_put(self, key: str, entry: CacheEntry) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(key, entry)
        except Exception:
            log.warning("Response cache write failed; skipping", exc_info=True)

    def _cache_now(self) -> float:
        if self.cache is None:
            return time.monotonic()
        try:
            return self.cache.now()
        except Exception:
            return time.monotonic()

    async def chat(self, message: str, is_boosted: bool = False) -> ChatResult:
        tier = tier_for(is_boosted)
        profile = profile_for(tier, self.profiles)
        key = cache_key(message, tier)

        t0 = self.clock()
        entry = self._cache_get(key)
        if entry is not None:
            lookup_ms = (self.clock() - t0) * 1000.0
            result = ChatResult(
                text=entry.text,
                metrics=InferenceMetrics(
                    ttft=lookup_ms * TTFT_FRACTION,
                    total_latency=lookup_ms,
                    cached=True,
                    accelerated=is_boosted,
                ),
                cost_estimate=entry.cost_estimate,
                tier=tier,
                cache_key=key,
            )
            self._record(result, profile)
            return result

        if not self.collapse_inflight:
            return await self._generate(message, tier, profile, key)

        pending = self._inflight.get(key)
        if pending is not None:
            log.debug("Joining in-flight request for %s", key[:12])
            return await asyncio.shield(pending)

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        # Mark the outcome as retrieved even when nobody joined.
        fut.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = fut
        try:
            result = await self._generate(message, tier, profile, key)
        except asyncio.CancelledError:
            # Only the leader was cancelled; joined callers get a retryable error.
            fut.set_exception(InferenceUnavailable("Request was cancelled before the model answered. Please retry."))
            raise
        except Exception as exc:
            fut.set_exception(exc)
            raise
        else:
            fut.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)

    async def _call_model(self, message: str, profile: TierProfile) -> GenerationResult:
        self.remote_calls += 1
        try:
            return await self.client.generate(
                model=profile.model,
                system=self.system_instruction,
                user=message,
                tools=TOOL_DECLARATIONS,
                temperature=profile.temperature,
                thinking_budget=profile.thinking_budget,
            )
        except InferenceUnavailable:
            raise
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                log.warning("Model %s rate-limited the request", profile.model)
                raise ClusterSaturated() from exc
            log.error("FFPI inference failure on %s: HTTP %s", profile.model, exc.response.status_code)
            raise InferenceUnavailable() from exc
        except Exception as exc:
            log.error("FFPI inference failure on %s: %s", profile.model, exc)
            raise InferenceUnavailable() from exc

    async def _generate(self, message: str, tier: ModelTier, profile: TierProfile, key: str) -> ChatResult:
        t0 = self.clock()
        try:
            gen = await self._call_model(message, profile)
        except InferenceUnavailable as exc:
            self._record_error(key, tier, profile, exc)
            raise
        total_ms = (self.clock() - t0) * 1000.0

        text = gen.text or EMPTY_RESPONSE_TEXT
        cost = estimate_cost(text, tier, self.coefficients)
        tool_calls = parse_tool_calls(gen.tool_calls)
        metrics = InferenceMetrics(
            ttft=total_ms * TTFT_FRACTION,
            total_latency=total_ms,
            cached=False,
            accelerated=tier == ModelTier.PRO,
        )
        if gen.text and not tool_calls:
            self._cache_put(
                key,
                CacheEntry(key=key, text=text, metrics=metrics, cost_estimate=cost, created_at=self._cache_now()),
            )

        result = ChatResult(
            text=text,
            metrics=metrics,
            cost_estimate=cost,
            tier=tier,
            cache_key=key,
            tool_calls=tool_calls,
        )
        self._record(result, profile)
        return result

    def _record(self, result: ChatResult, profile: TierProfile) -> None:
        if self.telemetry is None:
            return
        self.telemetry.record(
            ChatTelemetry(
                event="chat",
                ts_ms=now_ms(),
                run_id=self.run_id,
                cache_key=result.cache_key,
                tier=result.tier.value,
                model=profile.model,
                cached=result.metrics.cached,
                accelerated=result.metrics.accelerated,
                ttft_ms=result.metrics.ttft,
                total_latency_ms=result.metrics.total_latency,
                cost_estimate=result.cost_estimate,
                response_chars=len(result.text),
                tool_calls=[c.name for c in result.tool_calls],
            )
        )

    def _record_error(self, key: str, tier: ModelTier, profile: TierProfile, exc: Exception) -> None:
        if self.telemetry is None:
            return
        self.telemetry.record(
            ChatTelemetry(
                event="chat",
                ts_ms=now_ms(),
                run_id=self.run_id,
                cache_key=key,
                tier=tier.value,
                model=profile.model,
                cached=False,
                accelerated=tier == ModelTier.PRO,
                ttft_ms=0.0,
                total_latency_ms=0.0,
                cost_estimate=0.0,
                response_chars=0,
                tool_calls=[],
                error=type(exc).__name__,
            )
        )
