"""
Selector resolution, caching and self-healing execution over Appium (Android/iOS).

This package is intentionally "fail-fast":
- Capabilities are provided explicitly via JSON (no hidden defaults).
- Only the two cosmetic waits (loading indicators, page-load steps) swallow errors.

Natural-language translation and selector healing are external collaborators;
`llm_client.ChatCompletionsCollaborator` is one implementation of both.
"""

from .appium_http_client import AppiumHTTPClient, AppiumHTTPError, WebDriverElementRef
from .errors import (
    ContextNotFoundError,
    ElementNotFoundError,
    ResolutionError,
    SelfHealError,
    TranslationError,
)
from .executor import SelfHealingExecutor
from .locators import classify_selector, extract_element_name
from .models import Command, CommandAction, LocatorStrategy, StepOutcome, StepStatus, Surface
from .orchestrator import PageAwareOrchestrator, run_orchestration
from .runner import run_nl_test
from .selector_cache import CacheKey, SelectorCache

__all__ = [
    "AppiumHTTPClient",
    "AppiumHTTPError",
    "WebDriverElementRef",
    "ContextNotFoundError",
    "ElementNotFoundError",
    "ResolutionError",
    "SelfHealError",
    "TranslationError",
    "SelfHealingExecutor",
    "classify_selector",
    "extract_element_name",
    "Command",
    "CommandAction",
    "LocatorStrategy",
    "StepOutcome",
    "StepStatus",
    "Surface",
    "PageAwareOrchestrator",
    "run_orchestration",
    "run_nl_test",
    "CacheKey",
    "SelectorCache",
]
