"""
Selector string + surface -> live element.

A selector is parsed exactly once into a `ParsedSelector` (a `SelectorForm` tag
plus its operand) and turned into a WebDriver `Locator` by the builder registered
for that form. Parse order matters: structured, unambiguous forms are recognised
before anything that could be mistaken for free text, and free-text matching is
the last resort.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .appium_http_client import AppiumHTTPClient, WebDriverElementRef
from .errors import ResolutionError
from .locators import RESOURCE_ID_SEPARATOR
from .models import Surface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Locator:
    using: str
    value: str


class SelectorForm(str, Enum):
    WEB = "web"
    CSS = "css"
    RESOURCE_ID_PREFIX = "resource-id-prefix"
    UI_SELECTOR = "ui-selector"
    NAME = "name"
    LABEL = "label"
    ACCESSIBILITY_ID = "accessibility-id"
    RESOURCE_ID = "resource-id"
    FREE_TEXT = "free-text"


@dataclass(frozen=True)
class ParsedSelector:
    form: SelectorForm
    operand: str


_STRUCTURED_PREFIXES: tuple[tuple[str, SelectorForm], ...] = (
    ("resource-id:", SelectorForm.RESOURCE_ID_PREFIX),
    ("resource-id=", SelectorForm.RESOURCE_ID_PREFIX),
    ("name=", SelectorForm.NAME),
    ("label=", SelectorForm.LABEL),
)

_UI_SELECTOR_PREFIX = "new uiselector"
_UNQUOTED_RESOURCE_ID = re.compile(r"resourceId\(([^)\"]+)\)")

_LOWER = "abcdefghijklmnopqrstuvwxyz"
_UPPER = _LOWER.upper()
FREE_TEXT_ATTRIBUTES: tuple[str, ...] = ("text", "content-desc", "name", "label")


def _strip_css_prefix(selector: str) -> Optional[str]:
    if selector.lower().startswith("css="):
        return selector[len("css=") :]
    return None


def parse_selector(selector: str, surface: Surface) -> ParsedSelector:
    """Classify a non-empty selector into its resolution form."""
    css = _strip_css_prefix(selector)

    if surface == Surface.EMBEDDED:
        return ParsedSelector(SelectorForm.WEB, css if css is not None else selector)
    if css is not None:
        return ParsedSelector(SelectorForm.CSS, css)

    lowered = selector.lower()
    for prefix, form in _STRUCTURED_PREFIXES:
        if lowered.startswith(prefix):
            return ParsedSelector(form, selector[len(prefix) :])
    if lowered.startswith(_UI_SELECTOR_PREFIX):
        return ParsedSelector(SelectorForm.UI_SELECTOR, selector)

    if selector.startswith("~"):
        return ParsedSelector(SelectorForm.ACCESSIBILITY_ID, selector[1:])
    if RESOURCE_ID_SEPARATOR in selector:
        return ParsedSelector(SelectorForm.RESOURCE_ID, selector)
    return ParsedSelector(SelectorForm.FREE_TEXT, selector)


def _xpath_literal(value: str) -> str:
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{p}"' for p in parts) + ")"


def free_text_xpath(text: str) -> str:
    """Case-insensitive "contains" match over the human-readable attributes."""
    needle = _xpath_literal(text.lower())
    clauses = [
        f"contains(translate(@{attr}, '{_UPPER}', '{_LOWER}'), {needle})" for attr in FREE_TEXT_ATTRIBUTES
    ]
    return "//*[" + " or ".join(clauses) + "]"


def sanitize_ui_selector(selector: str) -> str:
    """Quote a bare resourceId(...) operand so UiAutomator can parse it."""
    return _UNQUOTED_RESOURCE_ID.sub(lambda m: f'resourceId("{m.group(1).strip()}")', selector)


def _web(operand: str) -> Locator:
    if operand.startswith("//") or operand.startswith("("):
        return Locator("xpath", operand)
    return Locator("css selector", operand)


_QUERY_BUILDERS: dict[SelectorForm, Callable[[str], Locator]] = {
    SelectorForm.WEB: _web,
    SelectorForm.CSS: lambda operand: Locator("css selector", operand),
    SelectorForm.RESOURCE_ID_PREFIX: lambda operand: Locator("id", operand.strip()),
    SelectorForm.UI_SELECTOR: lambda operand: Locator("-android uiautomator", sanitize_ui_selector(operand)),
    SelectorForm.NAME: lambda operand: Locator("accessibility id", operand.strip()),
    SelectorForm.LABEL: lambda operand: Locator("xpath", f"//*[@label={_xpath_literal(operand.strip())}]"),
    SelectorForm.ACCESSIBILITY_ID: lambda operand: Locator("accessibility id", operand),
    SelectorForm.RESOURCE_ID: lambda operand: Locator("id", operand),
    SelectorForm.FREE_TEXT: lambda operand: Locator("xpath", free_text_xpath(operand)),
}


def build_query(selector: Optional[str], surface: Surface) -> Locator:
    if not selector or not selector.strip():
        raise ResolutionError("Selector is null or empty.")
    parsed = parse_selector(selector.strip(), surface)
    locator = _QUERY_BUILDERS[parsed.form](parsed.operand)
    logger.debug("Selector %r parsed as %s -> %s=%s", selector, parsed.form.value, locator.using, locator.value)
    return locator


class ElementResolver:
    def __init__(self, client: AppiumHTTPClient, *, poll_s: float = 0.5) -> None:
        self.client = client
        self.poll_s = poll_s

    def build_query(self, selector: Optional[str], surface: Surface) -> Locator:
        return build_query(selector, surface)

    def resolve(self, selector: Optional[str], surface: Surface, *, timeout_s: float) -> WebDriverElementRef:
        """
        Wait up to `timeout_s` for `selector` to match and return the first element.

        Driver errors during polling count as "no match yet"; ResolutionError is raised
        once the deadline passes.
        """
        locator = self.build_query(selector, surface)
        logger.info("Resolving %r via %s=%s", selector, locator.using, locator.value)

        deadline = time.time() + timeout_s
        last_error: Optional[Exception] = None
        while True:
            try:
                elements = self.client.find_elements(using=locator.using, value=locator.value)
            except Exception as e:
                elements = []
                last_error = e
            if elements:
                return elements[0]
            if time.time() >= deadline:
                break
            time.sleep(self.poll_s)

        message = f"No element matched selector {selector!r} within {timeout_s:.1f}s"
        if last_error is not None:
            message += f" (last driver error: {last_error})"
        raise ResolutionError(message)
