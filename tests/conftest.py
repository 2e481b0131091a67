from __future__ import annotations

from typing import Any, Optional

import pytest

from flashfusion.model_client import GenerationResult


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.t = float(start)

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += float(seconds)


class FakeBackend:
    """Scripted ModelBackend: returns queued results (or raises queued errors)."""

    def __init__(self, *results: GenerationResult | Exception, default_text: str = "stub answer") -> None:
        self.queue: list[GenerationResult | Exception] = list(results)
        self.default_text = default_text
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append(
            {"model": model, "user": user, "temperature": temperature, "thinking_budget": thinking_budget, "tools": tools}
        )
        if self.queue:
            item = self.queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return GenerationResult(text=self.default_text, model=model)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
