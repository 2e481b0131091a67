from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .simulation import COMPUTE_DISTRICT, DistrictId, RoutingBackbone, SimulationStateStore
from .telemetry import DispatchTelemetry, TelemetryLogger, now_ms
from .tools import (
    EventType,
    NavigateCall,
    SectionId,
    SimulationEventCall,
    ToggleBoostCall,
    ToolCall,
    UnknownCall,
    parse_tool_call,
)

log = logging.getLogger(__name__)

Navigator = Callable[[SectionId], None]

_FAILOVER = {
    RoutingBackbone.PRIMARY: RoutingBackbone.SECONDARY,
    RoutingBackbone.SECONDARY: RoutingBackbone.PRIMARY,
    RoutingBackbone.MANUAL: RoutingBackbone.PRIMARY,
}


@dataclass(frozen=True)
class DispatchOutcome:
    name: str
    applied: bool
    detail: str

    def to_dict(self) -> dict:
        return {"name": self.name, "applied": self.applied, "detail": self.detail}


class ToolCallDispatcher:
    """
    Applies model tool calls to the simulation, strictly in received order.

    Each call maps to one navigation side effect or one store operation.
    Calls that can't be applied are logged and skipped; they never stop the
    remaining calls from running.
    """

    def __init__(
        self,
        store: SimulationStateStore,
        *,
        navigate: Navigator | None = None,
        telemetry: TelemetryLogger | None = None,
        run_id: str = "session",
    ) -> None:
        self.store = store
        self.navigate = navigate
        self.telemetry = telemetry
        self.run_id = run_id

    def dispatch(self, calls: Iterable[ToolCall | dict[str, Any]]) -> list[DispatchOutcome]:
        outcomes = [self._apply(parse_tool_call(c)) for c in calls]
        if outcomes and self.telemetry is not None:
            state = self.store.get_state()
            self.telemetry.record(
                DispatchTelemetry(
                    event="dispatch",
                    ts_ms=now_ms(),
                    run_id=self.run_id,
                    outcomes=[o.to_dict() for o in outcomes],
                    routing_backbone=state.routing_backbone.value,
                    simulation_active=state.simulation_active,
                    offline_districts=[d.value for d, s in state.districts.items() if not s.is_active],
                )
            )
        return outcomes

    def _apply(self, call: ToolCall) -> DispatchOutcome:
        if isinstance(call, NavigateCall):
            return self._navigate(call)
        if isinstance(call, SimulationEventCall):
            return self._simulation_event(call)
        if isinstance(call, ToggleBoostCall):
            state = self.store.toggle_gpu_boost()
            gpu = state.districts[COMPUTE_DISTRICT].gpu_acceleration
            if gpu is None:
                return DispatchOutcome(call.name, False, "no GPU acceleration on compute district")
            return DispatchOutcome(call.name, True, "boost on" if gpu.is_boosted else "boost off")
        if isinstance(call, UnknownCall):
            log.warning("Skipping tool call %r: %s", call.name, call.reason)
            return DispatchOutcome(call.name, False, call.reason)
        raise TypeError(f"Unhandled tool call variant: {type(call).__name__}")

    def _navigate(self, call: NavigateCall) -> DispatchOutcome:
        if self.navigate is None:
            log.info("No navigator attached; ignoring navigation to %s", call.section.value)
            return DispatchOutcome(call.name, False, "no navigator")
        self.navigate(call.section)
        return DispatchOutcome(call.name, True, call.section.value)

    def _simulation_event(self, call: SimulationEventCall) -> DispatchOutcome:
        if call.event == EventType.RESET:
            self.store.reset()
            return DispatchOutcome(call.name, True, "RESET")

        if call.event == EventType.FAIL_DISTRICT:
            try:
                did = DistrictId.parse(call.target_id or "")
            except ValueError:
                log.warning("FAIL_DISTRICT with unknown target %r; skipped", call.target_id)
                return DispatchOutcome(call.name, False, f"unknown district {call.target_id!r}")
            self.store.fail_district(did)
            return DispatchOutcome(call.name, True, f"FAIL_DISTRICT {did.value}")

        # SWITCH_TRANSIT: explicit target if we recognize it, else fail over.
        backbone: RoutingBackbone | None = None
        if call.target_id:
            try:
                backbone = RoutingBackbone.parse(call.target_id)
            except ValueError:
                log.info("SWITCH_TRANSIT target %r not a backbone; failing over", call.target_id)
        if backbone is None:
            backbone = _FAILOVER[self.store.get_state().routing_backbone]
        self.store.set_backbone(backbone)
        return DispatchOutcome(call.name, True, f"SWITCH_TRANSIT {backbone.value}")
