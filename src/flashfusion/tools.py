from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Union

from pydantic import BaseModel, ValidationError


class SectionId(str, Enum):
    HERO = "hero"
    INTRODUCTION = "introduction"
    INFRASTRUCTURE = "infrastructure"
    INTEGRATION = "integration"
    SIMULATION = "simulation"
    INVESTMENT = "investment"
    ROADMAP = "roadmap"
    GOVERNANCE = "governance"


class EventType(str, Enum):
    FAIL_DISTRICT = "FAIL_DISTRICT"
    SWITCH_TRANSIT = "SWITCH_TRANSIT"
    RESET = "RESET"


NAVIGATE = "navigateToSection"
SIMULATION_EVENT = "triggerSimulationEvent"
TOGGLE_BOOST = "toggleGpuBoost"


TOOL_DECLARATIONS: list[dict[str, Any]] = [
    {
        "name": NAVIGATE,
        "description": "Scrolls the user to a specific architectural section.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "sectionId": {
                    "type": "STRING",
                    "description": "Target section ID.",
                    "enum": [s.value for s in SectionId],
                },
            },
            "required": ["sectionId"],
        },
    },
    {
        "name": SIMULATION_EVENT,
        "description": "Initiates a simulation event like district failure or hub failover.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "eventType": {
                    "type": "STRING",
                    "description": "The type of event to trigger.",
                    "enum": [e.value for e in EventType],
                },
                "targetId": {
                    "type": "STRING",
                    "description": "ID of the target district or hub.",
                },
            },
            "required": ["eventType"],
        },
    },
    {
        "name": TOGGLE_BOOST,
        "description": "Toggles GPU acceleration on the AI compute district.",
        "parameters": {"type": "OBJECT", "properties": {}},
    },
]


@dataclass(frozen=True)
class NavigateCall:
    section: SectionId
    name: str = NAVIGATE


@dataclass(frozen=True)
class SimulationEventCall:
    event: EventType
    target_id: str | None = None
    name: str = SIMULATION_EVENT


@dataclass(frozen=True)
class ToggleBoostCall:
    name: str = TOGGLE_BOOST


@dataclass(frozen=True)
class UnknownCall:
    """Anything the model returned that we can't act on."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    reason: str = "unrecognized tool"


ToolCall = Union[NavigateCall, SimulationEventCall, ToggleBoostCall, UnknownCall]
_VARIANTS = (NavigateCall, SimulationEventCall, ToggleBoostCall, UnknownCall)


class _NavigateArgs(BaseModel):
    sectionId: SectionId


class _SimulationEventArgs(BaseModel):
    eventType: EventType
    targetId: str | None = None


def parse_tool_call(raw: Any) -> ToolCall:
    """Turn one raw `{name, args}` payload into a typed call. Never raises."""
    if isinstance(raw, _VARIANTS):  # already parsed
        return raw
    if not isinstance(raw, dict):
        return UnknownCall(name=str(raw), reason="malformed tool call")
    name = str(raw.get("name") or "")
    args = raw.get("args")
    if args is None:
        args = {}
    if not isinstance(args, dict):
        return UnknownCall(name=name, reason="args must be an object")

    try:
        if name == NAVIGATE:
            nav = _NavigateArgs.model_validate(args)
            return NavigateCall(section=nav.sectionId)
        if name == SIMULATION_EVENT:
            ev = _SimulationEventArgs.model_validate(args)
            target = ev.targetId.strip() if ev.targetId else None
            return SimulationEventCall(event=ev.eventType, target_id=target or None)
        if name == TOGGLE_BOOST:
            return ToggleBoostCall()
    except ValidationError as exc:
        return UnknownCall(name=name, args=dict(args), reason=f"invalid args: {exc.error_count()} error(s)")
    return UnknownCall(name=name, args=dict(args))


def parse_tool_calls(raws: Iterable[Any] | None) -> list[ToolCall]:
    return [parse_tool_call(r) for r in (raws or [])]


def tool_call_to_dict(call: ToolCall) -> dict[str, Any]:
    if isinstance(call, NavigateCall):
        return {"name": call.name, "args": {"sectionId": call.section.value}}
    if isinstance(call, SimulationEventCall):
        args: dict[str, Any] = {"eventType": call.event.value}
        if call.target_id is not None:
            args["targetId"] = call.target_id
        return {"name": call.name, "args": args}
    if isinstance(call, ToggleBoostCall):
        return {"name": call.name, "args": {}}
    return {"name": call.name, "args": dict(call.args)}
