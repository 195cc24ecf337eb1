"""Shared fakes for the engine tests."""
from __future__ import annotations

from typing import Any, Iterable, Optional

import pytest

from selfheal_service.mobile.appium_http_client import WebDriverElementRef
from selfheal_service.mobile.config import EngineTimings
from selfheal_service.mobile.errors import TranslationError
from selfheal_service.mobile.selector_cache import SelectorCache

APP_ID = "com.example.app"


class FakeAppiumClient:
    """
    In-memory stand-in for AppiumHTTPClient.

    `matches` is the set of (using, value) queries that find an element; the
    returned element id is "<using>:<value>" so tests can tell what was clicked.
    """

    def __init__(
        self,
        *,
        matches: Iterable[tuple[str, str]] = (),
        page_sources: Optional[list[str]] = None,
        contexts: Optional[list[str]] = None,
        context: str = "NATIVE_APP",
    ) -> None:
        self.matches = set(matches)
        self.page_sources = list(page_sources or ["<hierarchy><node text='Hello'/></hierarchy>"])
        self.contexts = list(contexts or ["NATIVE_APP"])
        self.context = context
        self.session_id: Optional[str] = None
        self.queries: list[tuple[str, str]] = []
        self.clicks: list[str] = []
        self.values: list[tuple[str, str]] = []
        self.switches: list[str] = []
        self.source_calls = 0
        self.deleted = False

    def create_session(self, payload: dict[str, Any]) -> str:
        self.session_id = "fake-session"
        return self.session_id

    def delete_session(self) -> None:
        self.deleted = True
        self.session_id = None

    def get_page_source(self) -> str:
        self.source_calls += 1
        if len(self.page_sources) > 1:
            return self.page_sources.pop(0)
        return self.page_sources[0]

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        self.queries.append((using, value))
        if (using, value) in self.matches:
            return [WebDriverElementRef(element_id=f"{using}:{value}")]
        return []

    def is_displayed(self, element: WebDriverElementRef) -> bool:
        return True

    def click(self, element: WebDriverElementRef) -> None:
        self.clicks.append(element.element_id)

    def set_value(self, element: WebDriverElementRef, *, text: str) -> None:
        self.values.append((element.element_id, text))

    def get_contexts(self) -> list[str]:
        return list(self.contexts)

    def get_context(self) -> str:
        return self.context

    def switch_context(self, name: str) -> None:
        self.switches.append(name)
        self.context = name


class FakeCollaborator:
    """Scripted translator + healer keyed by step text."""

    def __init__(
        self,
        translations: Optional[dict[str, Any]] = None,
        suggestions: Optional[dict[str, Any]] = None,
    ) -> None:
        self.translations = dict(translations or {})
        self.suggestions = dict(suggestions or {})
        self.translate_calls: list[str] = []
        self.suggest_calls: list[str] = []

    def translate(self, step_text: str, page_snapshot: str) -> Any:
        self.translate_calls.append(step_text)
        value = self.translations.get(step_text)
        if isinstance(value, Exception):
            raise value
        return value

    def suggest_selector(self, original_step: str, page_snapshot: str) -> str:
        self.suggest_calls.append(original_step)
        value = self.suggestions.get(original_step)
        if value is None:
            raise TranslationError(f"no suggestion for {original_step!r}")
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def timings() -> EngineTimings:
    return EngineTimings.immediate()


@pytest.fixture
def cache(tmp_path) -> SelectorCache:
    return SelectorCache.load("android", cache_dir=tmp_path)
