"""
Self-healing execution of a single translated command.

Resolution order for the target element:
  1. the cached selector for (page, element, strategy-of-the-proposed-selector);
  2. the selector proposed by translation;
  3. a selector suggested by the healing collaborator from a fresh page snapshot.

Whatever selector finally worked is written back under a key derived from its
own strategy, so a healed selector is found first on the next run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .appium_http_client import AppiumHTTPClient, WebDriverElementRef
from .config import EngineTimings
from .element_resolver import ElementResolver
from .errors import ElementNotFoundError, ResolutionError
from .llm_client import SelectorHealer
from .locators import classify_selector, extract_element_name
from .models import Command, CommandAction, Surface
from .page_source import reduce_page_source
from .selector_cache import CacheKey, SelectorCache

logger = logging.getLogger(__name__)

_QUOTING_CHARS = "`\"'"
# Operands of these forms are plain ids/names; quotes around them are never part of the value.
_BARE_OPERAND_PREFIXES = ("resource-id:", "resource-id=", "name=", "label=", "~")


@dataclass(frozen=True)
class ExecutionReport:
    selector: str
    source: str  # "cache" | "direct" | "healed"


def sanitize_suggested_selector(raw: str) -> str:
    """
    Drop stray backticks/quotes from an LLM-suggested selector.

    Quotes wrapping the whole selector or the operand of a prefixed form
    (`name="Login"`, `~"login"`) are removed; quotes inside an XPath are kept.
    """
    selector = (raw or "").replace("`", "").strip().strip(_QUOTING_CHARS).strip()
    lowered = selector.lower()
    for prefix in _BARE_OPERAND_PREFIXES:
        if lowered.startswith(prefix):
            operand = selector[len(prefix) :].strip().strip(_QUOTING_CHARS).strip()
            return selector[: len(prefix)] + operand
    return selector


class SelfHealingExecutor:
    def __init__(
        self,
        client: AppiumHTTPClient,
        cache: SelectorCache,
        healer: SelectorHealer,
        *,
        app_id: str,
        timings: Optional[EngineTimings] = None,
        resolver: Optional[ElementResolver] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.healer = healer
        self.app_id = app_id
        self.timings = timings or EngineTimings()
        self.resolver = resolver or ElementResolver(client, poll_s=self.timings.element_poll_s)

    def cache_key(self, page_name: str, step_text: str, selector: Optional[str]) -> CacheKey:
        return CacheKey(page_name, extract_element_name(step_text), classify_selector(selector))

    def lookup_cached(self, page_name: str, element_name: str) -> Optional[tuple[CacheKey, str]]:
        """Cached selector for (page, element) under whichever strategy was stored."""
        return self.cache.find_by_prefix(self.app_id, page_name, element_name)

    def execute(
        self,
        command: Command,
        page_name: str,
        original_step_text: Optional[str] = None,
        *,
        surface: Surface = Surface.NATIVE,
    ) -> ExecutionReport:
        step_text = original_step_text or command.original_step
        key = self.cache_key(page_name, step_text, command.selector)

        cached = self.cache.get(self.app_id, key)
        if cached:
            logger.info('Found cached selector for "%s": %r', key, cached)
            try:
                element = self.resolver.resolve(cached, surface, timeout_s=self.timings.cache_wait_s)
                self._perform(command, element)
            except Exception as e:
                logger.info("Cached selector failed (%s). Deleting it and trying the proposed selector.", e)
                self.cache.invalidate(self.app_id, key)
            else:
                self._settle()
                return ExecutionReport(selector=cached, source="cache")

        element, final_selector, source = self._resolve_or_heal(command, step_text, surface)
        self._perform(command, element)

        final_key = self.cache_key(page_name, step_text, final_selector)
        self.cache.put(self.app_id, final_key, final_selector)
        self._settle()
        return ExecutionReport(selector=final_selector, source=source)

    def _resolve_or_heal(
        self, command: Command, step_text: str, surface: Surface
    ) -> tuple[WebDriverElementRef, str, str]:
        try:
            if not command.selector:
                raise ResolutionError("Translation did not provide a selector.")
            logger.info('Executing step "%s" with proposed selector %r', step_text, command.selector)
            element = self.resolver.resolve(command.selector, surface, timeout_s=self.timings.direct_wait_s)
            return element, command.selector, "direct"
        except ResolutionError as initial_error:
            logger.info("%s Initiating self-healing.", initial_error)

        try:
            snapshot = reduce_page_source(self.client.get_page_source())
            healed = sanitize_suggested_selector(self.healer.suggest_selector(step_text, snapshot))
            logger.info("Self-healing: retrying with suggested selector %r", healed)
            element = self.resolver.resolve(healed, surface, timeout_s=self.timings.healed_wait_s)
        except Exception as e:
            logger.error("Self-healing failed for step %r: %s", step_text, e)
            raise ElementNotFoundError(step_text) from e
        return element, healed, "healed"

    def _perform(self, command: Command, element: WebDriverElementRef) -> None:
        if command.action == CommandAction.CLICK:
            self.client.click(element)
        elif command.action == CommandAction.SET_VALUE:
            self.client.set_value(element, text=command.value or "")

    def _settle(self) -> None:
        if self.timings.settle_s > 0:
            time.sleep(self.timings.settle_s)
