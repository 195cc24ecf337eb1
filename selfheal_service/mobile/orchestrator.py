from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import Any, Iterator, Optional

from .appium_http_client import AppiumHTTPClient
from .config import EngineTimings
from .context_switcher import ContextSwitcher
from .errors import ContextNotFoundError, ResolutionError
from .executor import SelfHealingExecutor, sanitize_suggested_selector
from .llm_client import SelectorHealer, TranslationPayload, Translator
from .locators import classify_selector, extract_element_name
from .models import (
    Command,
    CommandAction,
    ExecutionContext,
    Step,
    StepOutcome,
    StepStatus,
    Surface,
    parse_steps,
)
from .page_source import (
    best_effort,
    reduce_page_source,
    wait_for_loading_to_disappear,
    wait_for_page_stability,
)
from .selector_cache import CacheKey, SelectorCache

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    LAUNCH = "launch"
    PAGE_LOAD = "page-load"
    ACTION = "action"


# Structural steps are whole phrases; "Tap the *Launch* button" is an ordinary action.
_LAUNCH = re.compile(r"^\s*(?:re)?launch\s+(?:the\s+)?app(?:lication)?\b", re.IGNORECASE)
_PAGE_LOAD = re.compile(
    r"^\s*wait\s+(?:for|until)\b.*\b(?:to\s+load|loads?|loaded)\s*[.!]?\s*$",
    re.IGNORECASE,
)
_EMBEDDED_HINT = re.compile(r"\b(webview|web view|embedded)\b", re.IGNORECASE)
_NATIVE_HINT = re.compile(r"\bnative\b", re.IGNORECASE)

_PAGE_LABEL_PATTERNS = (
    re.compile(r"\*([^*]+)\*"),
    re.compile(r"[\"']([^\"']+)[\"']"),
    re.compile(r"\bwait\s+for\s+(?:the\s+)?(.+?)\s+(?:page|screen)\b", re.IGNORECASE),
)


def classify_step(text: str) -> StepKind:
    if _LAUNCH.search(text):
        return StepKind.LAUNCH
    if _PAGE_LOAD.search(text):
        return StepKind.PAGE_LOAD
    return StepKind.ACTION


def extract_page_label(text: str) -> Optional[str]:
    """'Wait for *home* page to load' / 'Wait for "home" to load' / 'Wait for home page to load' -> 'home'."""
    for pattern in _PAGE_LABEL_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def normalize_translation(payload: Optional[TranslationPayload], *, step_text: str) -> list[Command]:
    """
    Turn any accepted translation shape into a non-empty command list.

    Accepted: a list of command objects, {"steps": [...]}, {"commands": [...]},
    or a single command object. If nothing usable remains, a selector-less
    verifyVisible placeholder is returned so the step still goes through healing.
    """
    items: list[Any]
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        nested = payload.get("steps")
        if not isinstance(nested, list):
            nested = payload.get("commands")
        if isinstance(nested, list):
            items = nested
        elif "command" in payload or "action" in payload:
            items = [payload]
        else:
            items = []
    else:
        items = []

    commands = [
        command
        for command in (Command.from_payload(item, original_step=step_text) for item in items if isinstance(item, dict))
        if command is not None
    ]
    if not commands:
        logger.info('Translation returned nothing usable for "%s"; using a placeholder command', step_text)
        return [Command.placeholder(step_text)]
    return commands


class PageAwareOrchestrator:
    """
    Runs natural-language steps in order against one Appium session.

    Structural steps (launch, page-load waits) are handled here; every other
    step is translated and handed to the self-healing executor.
    """

    def __init__(
        self,
        client: AppiumHTTPClient,
        cache: SelectorCache,
        translator: Translator,
        healer: SelectorHealer,
        *,
        app_id: str,
        platform: str = "android",
        timings: Optional[EngineTimings] = None,
        context: Optional[ExecutionContext] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.translator = translator
        self.healer = healer
        self.app_id = app_id
        self.platform = platform
        self.timings = timings or EngineTimings()
        self.context = context or ExecutionContext()
        self.switcher = ContextSwitcher(client, poll_interval_s=self.timings.context_poll_s)
        self.executor = SelfHealingExecutor(client, cache, healer, app_id=app_id, timings=self.timings)
        self.step_counter = 0

    def run(self, steps_text: str) -> Iterator[StepOutcome]:
        """Yield running/passed/failed outcomes; stops right after the first failure."""
        steps = parse_steps(steps_text)
        for idx, step in enumerate(steps):
            self.step_counter += 1
            step_number = self.step_counter
            yield StepOutcome(step_number, StepStatus.RUNNING)

            kind = classify_step(step.text)
            logger.info("Step %d (%s): %s", step_number, kind.value, step.text)
            if kind == StepKind.LAUNCH:
                self._sleep(self.timings.launch_settle_s)
                yield StepOutcome(step_number, StepStatus.PASSED)
                continue

            if kind == StepKind.PAGE_LOAD:
                next_step = steps[idx + 1] if idx + 1 < len(steps) else None
                self._handle_page_load(step, next_step)
                yield StepOutcome(step_number, StepStatus.PASSED)
                continue

            try:
                self._run_action_step(step)
            except Exception as e:
                logger.error("Error on step %d: %s", step_number, e)
                yield StepOutcome(step_number, StepStatus.FAILED, str(e))
                return
            yield StepOutcome(step_number, StepStatus.PASSED)

    def _run_action_step(self, step: Step) -> None:
        self._ensure_surface()
        snapshot = reduce_page_source(self.client.get_page_source())
        payload = self.translator.translate(step.text, snapshot)
        commands = normalize_translation(payload, step_text=step.text)

        for command in commands:
            if command.action == CommandAction.LAUNCH_APP:
                self._sleep(self.timings.launch_settle_s)
                continue
            report = self.executor.execute(
                command,
                self.context.current_page_name,
                step.text,
                surface=self.context.active_surface,
            )
            logger.info("Step resolved via %s selector %r", report.source, report.selector)

        self._ensure_surface()

    def _ensure_surface(self) -> Surface:
        if self.context.active_surface == Surface.EMBEDDED:
            return self._enter_embedded()
        return self._enter_native()

    def _enter_embedded(self) -> Surface:
        try:
            self.switcher.switch_to_embedded(self.timings.context_timeout_s)
            self.context.active_surface = Surface.EMBEDDED
        except ContextNotFoundError as e:
            logger.warning("%s; falling back to the native surface", e)
            self.switcher.switch_to_native()
            self.context.active_surface = Surface.NATIVE
        return self.context.active_surface

    def _enter_native(self) -> Surface:
        self.switcher.switch_to_native()
        self.context.active_surface = Surface.NATIVE
        return self.context.active_surface

    def _handle_page_load(self, step: Step, next_step: Optional[Step]) -> None:
        """Never raises: every failure here degrades to a timed pause."""
        if _EMBEDDED_HINT.search(step.text):
            best_effort("embedded surface switch", self._enter_embedded)
            return
        if _NATIVE_HINT.search(step.text):
            best_effort("native surface switch", self._enter_native)
            return

        label = extract_page_label(step.text)
        if label:
            logger.info("Current page is now %r", label)
            self.context.current_page_name = label

        prefetched = best_effort("page-load prefetch", lambda: self._prefetch_next_target(next_step))
        if not prefetched:
            self._sleep(self.timings.page_load_fallback_s)

    def _prefetch_next_target(self, next_step: Optional[Step]) -> bool:
        """
        Wait for the page to settle and resolve the next step's element ahead of time.

        A selector found here is cached so the next step resolves it without healing.
        Returns False when no target can be derived.
        """
        if next_step is None or classify_step(next_step.text) != StepKind.ACTION:
            return False
        element_name = extract_element_name(next_step.text)
        if not element_name:
            return False

        wait_for_loading_to_disappear(
            self.client,
            platform=self.platform,
            timeout_s=self.timings.loading_timeout_s,
            poll_s=self.timings.element_poll_s,
        )
        stable_source = wait_for_page_stability(
            self.client,
            timeout_s=self.timings.stability_timeout_s,
            interval_s=self.timings.stability_interval_s,
        )

        page = self.context.current_page_name
        surface = self.context.active_surface
        resolver = self.executor.resolver

        cached = self.executor.lookup_cached(page, element_name)
        if cached is not None:
            key, selector = cached
            try:
                resolver.resolve(selector, surface, timeout_s=self.timings.prefetch_wait_s)
                logger.info("Page %r ready: cached target %r is present", page, selector)
                return True
            except ResolutionError as e:
                logger.info("Cached target %r for %r is stale: %s", selector, page, e)
                self.cache.invalidate(self.app_id, key)

        snapshot = reduce_page_source(stable_source or self.client.get_page_source())
        suggestion = sanitize_suggested_selector(self.healer.suggest_selector(next_step.text, snapshot))
        resolver.resolve(suggestion, surface, timeout_s=self.timings.prefetch_wait_s)
        self.cache.put(self.app_id, CacheKey(page, element_name, classify_selector(suggestion)), suggestion)
        logger.info("Page %r ready: prefetched target %r", page, suggestion)
        return True

    def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def run_orchestration(
    client: AppiumHTTPClient,
    steps_text: str,
    *,
    cache: SelectorCache,
    translator: Translator,
    healer: SelectorHealer,
    app_id: str,
    platform: str = "android",
    timings: Optional[EngineTimings] = None,
) -> Iterator[StepOutcome]:
    """Stream StepOutcome events for one run; each call gets its own ExecutionContext."""
    orchestrator = PageAwareOrchestrator(
        client,
        cache,
        translator,
        healer,
        app_id=app_id,
        platform=platform,
        timings=timings,
    )
    return orchestrator.run(steps_text)
