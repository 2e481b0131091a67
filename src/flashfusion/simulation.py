from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping

log = logging.getLogger(__name__)


class DistrictId(str, Enum):
    DEV = "DEV"
    DATA = "DATA"
    AI = "AI"
    OPS = "OPS"
    GROWTH = "GROWTH"
    COMMERCE = "COMMERCE"
    COLLAB = "COLLAB"

    @classmethod
    def parse(cls, value: str) -> "DistrictId":
        return cls(str(value).strip().upper())


COMPUTE_DISTRICT = DistrictId.AI

DISTRICT_LABELS: dict[DistrictId, str] = {
    DistrictId.DEV: "Developer Platform (tRPC, Vercel, GitHub)",
    DistrictId.DATA: "Data & Persistence (Supabase, Drizzle, Postgres)",
    DistrictId.AI: "AI Compute (Gemini, vector search, GPU pool)",
    DistrictId.OPS: "Operations (monitoring, incident response)",
    DistrictId.GROWTH: "Growth (analytics, marketing automation)",
    DistrictId.COMMERCE: "Commerce (billing, payments)",
    DistrictId.COLLAB: "Collaboration (Slack, docs, meetings)",
}


class RoutingBackbone(str, Enum):
    PRIMARY = "n8n"
    SECONDARY = "Zapier"
    MANUAL = "Manual"

    @classmethod
    def parse(cls, value: str) -> "RoutingBackbone":
        """Accept either the hub label ("n8n") or the role name ("primary")."""
        v = str(value).strip()
        for b in cls:
            if v.lower() in (b.value.lower(), b.name.lower()):
                return b
        raise ValueError(f"Unknown routing backbone: {value!r}")


@dataclass(frozen=True)
class GpuAcceleration:
    is_boosted: bool
    throughput: float  # TFLOPS
    memory_used: float  # GB of VRAM


@dataclass(frozen=True)
class District:
    id: DistrictId
    is_active: bool
    load: float  # 0..100
    health: float  # 0..100
    gpu_acceleration: GpuAcceleration | None = None


@dataclass(frozen=True)
class SimulationState:
    districts: Mapping[DistrictId, District]
    routing_backbone: RoutingBackbone
    simulation_active: bool

    def __post_init__(self) -> None:
        # Read-only view over a private copy; only the store swaps states.
        object.__setattr__(self, "districts", MappingProxyType(dict(self.districts)))

    def to_dict(self) -> dict:
        out: dict = {"districts": {}, "routingBackbone": self.routing_backbone.value, "simulationActive": self.simulation_active}
        for did in DistrictId:
            d = self.districts[did]
            row: dict = {"id": d.id.value, "isActive": d.is_active, "load": d.load, "health": d.health}
            if d.gpu_acceleration is not None:
                row["gpuAcceleration"] = {
                    "isBoosted": d.gpu_acceleration.is_boosted,
                    "throughput": d.gpu_acceleration.throughput,
                    "memoryUsed": d.gpu_acceleration.memory_used,
                }
            out["districts"][did.value] = row
        return out


@dataclass(frozen=True)
class SimulationConfig:
    activation_load_range: tuple[float, float] = (15.0, 35.0)
    baseline_load: float = 20.0
    baseline_throughput: float = 120.0
    baseline_memory_used: float = 42.0
    # (base, jitter): each tick draws base + U[0, jitter)
    boosted_throughput: tuple[float, float] = (850.0, 50.0)
    boosted_memory: tuple[float, float] = (78.0, 2.0)
    unboosted_throughput: tuple[float, float] = (120.0, 10.0)
    unboosted_memory: tuple[float, float] = (42.0, 3.0)
    default_backbone: RoutingBackbone = RoutingBackbone.PRIMARY
    tick_interval_s: float = 1.5


Listener = Callable[[SimulationState], None]


class SimulationStateStore:
    """
    Owner of the simulated infrastructure state.

    Every mutation swaps in a new immutable `SimulationState` and publishes it
    to subscribers. All operations touch at most one pass over the districts.
    """

    def __init__(self, *, config: SimulationConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or SimulationConfig()
        self.rng = rng or random.Random()
        self._listeners: list[Listener] = []
        self._state = self._initial_state()

    def _baseline_gpu(self) -> GpuAcceleration:
        return GpuAcceleration(
            is_boosted=False,
            throughput=self.config.baseline_throughput,
            memory_used=self.config.baseline_memory_used,
        )

    def _baseline_district(self, did: DistrictId) -> District:
        return District(
            id=did,
            is_active=True,
            load=self.config.baseline_load,
            health=100.0,
            gpu_acceleration=self._baseline_gpu() if did == COMPUTE_DISTRICT else None,
        )

    def _initial_state(self) -> SimulationState:
        return SimulationState(
            districts={did: self._baseline_district(did) for did in DistrictId},
            routing_backbone=self.config.default_backbone,
            simulation_active=False,
        )

    def get_state(self) -> SimulationState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: SimulationState) -> SimulationState:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("Simulation listener failed")
        return state

    def _with_district(self, district: District, *, simulation_active: bool | None = None) -> SimulationState:
        districts = dict(self._state.districts)
        districts[district.id] = district
        return replace(
            self._state,
            districts=districts,
            simulation_active=self._state.simulation_active if simulation_active is None else simulation_active,
        )

    def _activated(self, d: District) -> District:
        lo, hi = self.config.activation_load_range
        return replace(d, is_active=True, health=100.0, load=self.rng.uniform(lo, hi))

    @staticmethod
    def _deactivated(d: District) -> District:
        return replace(d, is_active=False, health=0.0, load=0.0)

    def toggle_district(self, district_id: DistrictId | str) -> SimulationState:
        did = DistrictId.parse(district_id) if not isinstance(district_id, DistrictId) else district_id
        d = self._state.districts[did]
        nd = self._deactivated(d) if d.is_active else self._activated(d)
        log.info("District %s -> %s", did.value, "active" if nd.is_active else "offline")
        return self._commit(self._with_district(nd, simulation_active=True))

    def fail_district(self, district_id: DistrictId | str) -> SimulationState:
        """Take a district offline. Failing an offline district leaves it offline."""
        did = DistrictId.parse(district_id) if not isinstance(district_id, DistrictId) else district_id
        d = self._state.districts[did]
        nd = self._deactivated(d) if d.is_active else d
        return self._commit(self._with_district(nd, simulation_active=True))

    def restore_district(self, district_id: DistrictId | str) -> SimulationState:
        did = DistrictId.parse(district_id) if not isinstance(district_id, DistrictId) else district_id
        d = self._state.districts[did]
        nd = d if d.is_active else self._activated(d)
        return self._commit(self._with_district(nd, simulation_active=True))

    def set_backbone(self, choice: RoutingBackbone | str) -> SimulationState:
        backbone = choice if isinstance(choice, RoutingBackbone) else RoutingBackbone.parse(choice)
        log.info("Routing backbone -> %s", backbone.value)
        return self._commit(replace(self._state, routing_backbone=backbone, simulation_active=True))

    def toggle_gpu_boost(self) -> SimulationState:
        d = self._state.districts[COMPUTE_DISTRICT]
        if d.gpu_acceleration is None:
            return self._state
        gpu = replace(d.gpu_acceleration, is_boosted=not d.gpu_acceleration.is_boosted)
        return self._commit(self._with_district(replace(d, gpu_acceleration=gpu)))

    def reset(self) -> SimulationState:
        return self._commit(self._initial_state())

    def tick(self) -> SimulationState:
        """Telemetry drift for the compute district's GPU counters."""
        d = self._state.districts[COMPUTE_DISTRICT]
        gpu = d.gpu_acceleration
        if gpu is None or not d.is_active:
            return self._state
        cfg = self.config
        tp_base, tp_jitter = cfg.boosted_throughput if gpu.is_boosted else cfg.unboosted_throughput
        mem_base, mem_jitter = cfg.boosted_memory if gpu.is_boosted else cfg.unboosted_memory
        gpu = replace(
            gpu,
            throughput=tp_base + self.rng.random() * tp_jitter,
            memory_used=mem_base + self.rng.random() * mem_jitter,
        )
        return self._commit(self._with_district(replace(d, gpu_acceleration=gpu)))


class TelemetryTicker:
    """Calls `store.tick()` every `interval_s` until stopped."""

    def __init__(self, store: SimulationStateStore, *, interval_s: float | None = None) -> None:
        self.store = store
        self.interval_s = float(interval_s if interval_s is not None else store.config.tick_interval_s)
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            self.store.tick()
            self.ticks += 1

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "TelemetryTicker":
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
