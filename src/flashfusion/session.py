from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ResponseCache
from .config import Settings
from .dispatcher import DispatchOutcome, Navigator, ToolCallDispatcher
from .model_client import GeminiClient, ModelBackend
from .orchestrator import ChatResult, InferenceOrchestrator
from .simulation import SimulationConfig, SimulationState, SimulationStateStore, TelemetryTicker
from .telemetry import TelemetryLogger, default_run_id, make_run_dir

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    chat: ChatResult
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    state: SimulationState | None = None


class Session:
    """
    One dashboard session: simulation store, telemetry ticker, response
    cache, orchestrator and dispatcher, with a shared lifetime.

    Use as `async with Session(...) as s:`; leaving the block stops the
    ticker and disposes the cache.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: ModelBackend | None = None,
        navigate: Navigator | None = None,
        telemetry_dir: Path | None = None,
        run_id: str | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.run_id = run_id or default_run_id()
        s = self.settings

        self.telemetry: TelemetryLogger | None = None
        if telemetry_dir is not None:
            self.telemetry = TelemetryLogger(run_dir=telemetry_dir)

        self.store = SimulationStateStore(
            config=SimulationConfig(tick_interval_s=s.tick_interval_s),
            rng=random.Random(s.seed),
        )
        self.ticker = TelemetryTicker(self.store, interval_s=s.tick_interval_s)
        self.cache = ResponseCache(ttl_s=s.cache_ttl_s, max_entries=s.cache_max_entries)
        self.client = client or GeminiClient(
            api_key=s.api_key, base_url=s.base_url, timeout_s=s.timeout_s, dry_run=s.dry_run
        )
        self.orchestrator = InferenceOrchestrator(
            client=self.client,
            cache=self.cache,
            telemetry=self.telemetry,
            run_id=self.run_id,
            collapse_inflight=s.collapse_inflight,
        )
        self.dispatcher = ToolCallDispatcher(
            self.store, navigate=navigate, telemetry=self.telemetry, run_id=self.run_id
        )

    @classmethod
    def with_run_dir(cls, settings: Settings, **kwargs: object) -> "Session":
        run_id = kwargs.pop("run_id", None) or default_run_id()
        run_dir = make_run_dir(settings.runs_dir, run_id=str(run_id))
        return cls(settings, telemetry_dir=run_dir, run_id=str(run_id), **kwargs)  # type: ignore[arg-type]

    async def ask(self, message: str, *, boosted: bool = False) -> TurnResult:
        result = await self.orchestrator.chat(message, boosted)
        outcomes = self.dispatcher.dispatch(result.tool_calls) if result.tool_calls else []
        return TurnResult(chat=result, outcomes=outcomes, state=self.store.get_state())

    async def close(self) -> None:
        await self.ticker.stop()
        self.cache.dispose()

    async def __aenter__(self) -> "Session":
        self.ticker.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
