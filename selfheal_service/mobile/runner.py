from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .appium_http_client import AppiumHTTPClient
from .config import RunConfig, load_run_config
from .llm_client import ChatCompletionsCollaborator
from .models import StepOutcome, StepStatus, parse_steps
from .orchestrator import run_orchestration
from .selector_cache import SelectorCache


class NLTestRunError(RuntimeError):
    pass


@dataclass(frozen=True)
class NLTestRunResult:
    session_id: str
    passed: bool
    total_steps: int
    outcomes: list[StepOutcome] = field(default_factory=list)
    failed_step: Optional[str] = None


def _read_steps(config: RunConfig, steps_text: Optional[str]) -> str:
    if steps_text is not None:
        return steps_text
    if not config.steps_path:
        raise NLTestRunError("No steps given: pass steps_text or set 'steps_path' in the run config")
    path = Path(config.steps_path)
    if not path.exists() or path.is_dir():
        raise NLTestRunError(f"Steps file not found: {path}")
    return path.read_text(encoding="utf-8")


def run_nl_test(*, config_json_path: str, steps_text: Optional[str] = None) -> NLTestRunResult:
    """
    Run natural-language test steps against a fresh Appium session.

    The session is always deleted afterwards. A failing step ends the run; its
    text and error are reported in the result rather than raised.
    """
    config = load_run_config(config_json_path)
    raw_steps = _read_steps(config, steps_text)
    steps = parse_steps(raw_steps)
    if not steps:
        raise NLTestRunError("Steps text contains no non-blank lines")

    cache = SelectorCache.load(config.platform, cache_dir=config.cache_dir, app_id=config.app_id)
    collaborator = ChatCompletionsCollaborator(config.llm)

    client = AppiumHTTPClient(config.appium_server_url)
    session_id = client.create_session(config.capabilities_payload)
    outcomes: list[StepOutcome] = []
    failed_step: Optional[str] = None
    try:
        print("\n=== Self-healing NL test run ===")
        print(f"Session started: {session_id}")
        print(f"App: {config.app_id} ({config.platform})")
        print(f"Cache: {cache.path}")

        for outcome in run_orchestration(
            client,
            raw_steps,
            cache=cache,
            translator=collaborator,
            healer=collaborator,
            app_id=config.app_id,
            platform=config.platform,
            timings=config.timings,
        ):
            outcomes.append(outcome)
            step_text = steps[outcome.step_number - 1].text
            if outcome.status == StepStatus.RUNNING:
                print(f"\n[{outcome.step_number}/{len(steps)}] {step_text}")
            elif outcome.status == StepStatus.PASSED:
                print("  passed")
            else:
                failed_step = step_text
                print(f"  FAILED: {outcome.error_detail}")
    finally:
        client.delete_session()

    passed = failed_step is None and bool(outcomes) and outcomes[-1].step_number == len(steps)
    return NLTestRunResult(
        session_id=session_id,
        passed=passed,
        total_steps=len(steps),
        outcomes=outcomes,
        failed_step=failed_step,
    )
