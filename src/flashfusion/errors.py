from __future__ import annotations


class InferenceUnavailable(RuntimeError):
    """Transport or model failure. Surfaced to the user as a retry prompt."""

    default_message = "Unable to reach inference cluster. Check district connectivity."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class ClusterSaturated(InferenceUnavailable):
    """The remote model rate-limited us (HTTP 429)."""

    default_message = "Inference cluster saturated. Wait a moment or retry without the boost."


class UnknownTier(KeyError):
    """A model tier with no cost coefficient / profile was requested."""
