from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class CommandAction(str, Enum):
    CLICK = "click"
    SET_VALUE = "setValue"
    VERIFY_VISIBLE = "verifyVisible"
    LAUNCH_APP = "launchApp"


class LocatorStrategy(str, Enum):
    RESOURCE_ID = "resource-id"
    ACCESSIBILITY_ID = "accessibility-id"
    XPATH = "xpath"
    CSS = "css"
    UNKNOWN = "unknown"


class Surface(str, Enum):
    NATIVE = "native"
    EMBEDDED = "embedded"


class StepStatus(str, Enum):
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    text: str
    ordinal_index: int


@dataclass(frozen=True)
class Command:
    action: CommandAction
    selector: Optional[str]
    value: Optional[str]
    original_step: str

    @classmethod
    def placeholder(cls, step_text: str) -> "Command":
        """
        A selector-less verifyVisible command.

        Used when translation produced nothing usable so the executor goes straight to
        self-healing instead of silently skipping the step.
        """
        return cls(
            action=CommandAction.VERIFY_VISIBLE,
            selector=None,
            value=None,
            original_step=step_text,
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, original_step: str) -> Optional["Command"]:
        """
        Build a command from one translated object, or None if it is unusable.

        The action may arrive under "command" or "action". The original step always
        comes from the caller; whatever the collaborator echoed back is ignored.
        """
        raw_action = payload.get("command") or payload.get("action")
        if not isinstance(raw_action, str):
            return None
        try:
            action = CommandAction(raw_action.strip())
        except ValueError:
            return None

        selector = payload.get("selector")
        if not isinstance(selector, str) or not selector.strip():
            selector = None
        value = payload.get("value")
        if value is not None and not isinstance(value, str):
            value = str(value)

        return cls(
            action=action,
            selector=selector.strip() if selector else None,
            value=value,
            original_step=original_step,
        )


@dataclass
class ExecutionContext:
    current_page_name: str = "initial"
    active_surface: Surface = Surface.NATIVE


@dataclass(frozen=True)
class StepOutcome:
    step_number: int
    status: StepStatus
    error_detail: Optional[str] = None


_LINE_BREAK = re.compile(r"\r?\n")


def parse_steps(raw_steps_text: str) -> list[Step]:
    """Split raw input on line breaks, dropping blank lines. Indices are 1-based."""
    lines = [line.strip() for line in _LINE_BREAK.split(raw_steps_text or "")]
    return [Step(text=line, ordinal_index=idx) for idx, line in enumerate((l for l in lines if l), 1)]
