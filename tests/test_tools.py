from __future__ import annotations

from flashfusion.tools import (
    TOOL_DECLARATIONS,
    EventType,
    NavigateCall,
    SectionId,
    SimulationEventCall,
    ToggleBoostCall,
    UnknownCall,
    parse_tool_call,
    parse_tool_calls,
    tool_call_to_dict,
)


def test_schema_is_closed_set():
    assert [d["name"] for d in TOOL_DECLARATIONS] == ["navigateToSection", "triggerSimulationEvent", "toggleGpuBoost"]
    nav = TOOL_DECLARATIONS[0]["parameters"]["properties"]["sectionId"]["enum"]
    assert "simulation" in nav and len(nav) == 8


def test_parse_known_calls():
    calls = parse_tool_calls(
        [
            {"name": "navigateToSection", "args": {"sectionId": "roadmap"}},
            {"name": "triggerSimulationEvent", "args": {"eventType": "FAIL_DISTRICT", "targetId": " DATA "}},
            {"name": "toggleGpuBoost"},
        ]
    )
    assert calls == [
        NavigateCall(section=SectionId.ROADMAP),
        SimulationEventCall(event=EventType.FAIL_DISTRICT, target_id="DATA"),
        ToggleBoostCall(),
    ]


def test_unknown_and_invalid_calls_never_raise():
    assert isinstance(parse_tool_call({"name": "launchRocket", "args": {}}), UnknownCall)
    bad_enum = parse_tool_call({"name": "navigateToSection", "args": {"sectionId": "basement"}})
    assert isinstance(bad_enum, UnknownCall) and bad_enum.reason.startswith("invalid args")
    assert isinstance(parse_tool_call({"name": "triggerSimulationEvent", "args": {}}), UnknownCall)
    assert isinstance(parse_tool_call({"name": "toggleGpuBoost", "args": "nope"}), UnknownCall)
    assert isinstance(parse_tool_call("garbage"), UnknownCall)
    assert parse_tool_calls(None) == []


def test_already_parsed_calls_pass_through():
    call = ToggleBoostCall()
    assert parse_tool_call(call) is call


def test_to_dict_shape():
    d = tool_call_to_dict(SimulationEventCall(event=EventType.RESET))
    assert d == {"name": "triggerSimulationEvent", "args": {"eventType": "RESET"}}
