from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx


@dataclass(frozen=True)
class GenerationResult:
    text: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)  # [{name, args}]
    model: str | None = None
    latency_ms: float | None = None


class ModelBackend(Protocol):
    async def generate(
        self,
        *,
        model: str,
        system: str,
        user: str,
        tools: list[dict[str, Any]],
        temperature: float,
        thinking_budget: Optional[int] = None,
    ) -> GenerationResult: ...


class GeminiClient:
    """Thin async client for the Generative Language `generateContent` endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 60.0,
        dry_run: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.dry_run = dry_run
        self.transport = transport

    def _payload(
        self,
        *,
        system: str,
        user: str,
        tools: list[dict[str, Any]],
        temperature: float,
        thinking_budget: Optional[int],
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"temperature": temperature}
        if thinking_budget is not None:
            generation_config["thinkingConfig"] = {"thinkingBudget": int(thinking_budget)}
        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": generation_config,
        }
        if tools:
            payload["tools"] = [{"functionDeclarations": tools}]
        return payload

    async def generate_raw(
        self,
        *,
        model: str,
        system: str,
        user: str,
        tools: list[dict[str, Any]],
        temperature: float,
        thinking_budget: Optional[int] = None,
    ) -> dict[str, Any]:
        if self.dry_run:
            return self._dry_run_response(model=model, user=user)
        if not self.api_key:
            raise OSError("No API key configured for the generative model")

        payload = self._payload(
            system=system, user=user, tools=tools, temperature=temperature, thinking_budget=thinking_budget
        )
        t0 = time.perf_counter()
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
            resp = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        data["_client_latency_ms"] = (time.perf_counter() - t0) * 1000.0
        return data

    async def generate(
        self,
        *,
        model: str,
        system: str,
        user: str,
        tools: list[dict[str, Any]],
        temperature: float,
        thinking_budget: Optional[int] = None,
    ) -> GenerationResult:
        data = await self.generate_raw(
            model=model,
            system=system,
            user=user,
            tools=tools,
            temperature=temperature,
            thinking_budget=thinking_budget,
        )
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list):
            raise OSError("Model response has malformed candidates")
        parts: list[Any] = []
        if candidates and isinstance(candidates[0], dict):
            parts = ((candidates[0].get("content") or {}).get("parts")) or []

        texts: list[str] = []
        calls: list[dict[str, Any]] = []
        for p in parts:
            if not isinstance(p, dict):
                continue
            # Thought summaries are not part of the answer.
            if isinstance(p.get("text"), str) and not p.get("thought"):
                texts.append(p["text"])
            fc = p.get("functionCall")
            if isinstance(fc, dict) and fc.get("name"):
                calls.append({"name": str(fc["name"]), "args": fc.get("args") or {}})

        latency_ms = data.get("_client_latency_ms")
        return GenerationResult(
            text="".join(texts),
            tool_calls=calls,
            model=str(data.get("modelVersion") or model),
            latency_ms=float(latency_ms) if isinstance(latency_ms, (int, float)) else None,
        )

    def _dry_run_response(self, *, model: str, user: str) -> dict[str, Any]:
        # Deterministic stubs so the full pipeline runs without network access.
        words = re.findall(r"[a-z0-9]+", user.lower())
        parts: list[dict[str, Any]] = []
        if "reset" in words:
            parts.append({"functionCall": {"name": "triggerSimulationEvent", "args": {"eventType": "RESET"}}})
        if "fail" in words:
            target = next((d for d in ("DEV", "DATA", "AI", "OPS", "GROWTH", "COMMERCE", "COLLAB") if d.lower() in words), "DATA")
            parts.append(
                {"functionCall": {"name": "triggerSimulationEvent", "args": {"eventType": "FAIL_DISTRICT", "targetId": target}}}
            )
        if "switch" in words or "failover" in words:
            parts.append({"functionCall": {"name": "triggerSimulationEvent", "args": {"eventType": "SWITCH_TRANSIT"}}})
        if "boost" in words:
            parts.append({"functionCall": {"name": "toggleGpuBoost", "args": {}}})
        if "show" in words:
            parts.append({"functionCall": {"name": "navigateToSection", "args": {"sectionId": "simulation"}}})
        parts.append({"text": "DRY_RUN: " + user[:200]})

        # Mimic generateContent response shape.
        return {
            "candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}],
            "modelVersion": model,
            "_client_latency_ms": 5.0,
        }
