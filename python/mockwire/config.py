"""Configuration for the stubbing engine."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum


class UnhandledPolicy(str, Enum):
    """What the hook reports for a call no stub rule handles."""

    CALL_ORIGINAL = "call_original"  # not handled, the real body runs
    RETURN_DEFAULT = "return_default"  # handled, returns the zero value


@dataclass
class EngineConfig:
    """Engine settings.

    Attributes:
        unhandled_policy: Behavior for calls that match no stub rule.
        report_indent: Spaces before each body line of a verification report.
        thread_safe: Serialize record, register, dispatch, verify and reset
            with one re-entrant lock.
    """

    unhandled_policy: UnhandledPolicy = UnhandledPolicy.CALL_ORIGINAL
    report_indent: int = 4
    thread_safe: bool = True

    def __post_init__(self) -> None:
        if self.report_indent < 0:
            raise ValueError(f"report_indent must be non-negative, got {self.report_indent}")

    def to_json(self) -> str:
        """Serialize to JSON string."""
        d = asdict(self)
        d["unhandled_policy"] = self.unhandled_policy.value
        return json.dumps(d)

    @classmethod
    def from_json(cls, data: str) -> EngineConfig:
        """Deserialize from JSON string."""
        d = json.loads(data)
        d["unhandled_policy"] = UnhandledPolicy(d["unhandled_policy"])
        return cls(**d)
