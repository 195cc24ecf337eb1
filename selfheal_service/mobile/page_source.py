from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar
from xml.etree import ElementTree

from .appium_http_client import AppiumHTTPClient
from .element_resolver import Locator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Enough for the collaborator to build selectors on either platform.
ATTRIBUTES_TO_KEEP: tuple[str, ...] = (
    # Android / common
    "class",
    "resource-id",
    "content-desc",
    "text",
    "package",
    "checkable",
    "checked",
    "clickable",
    "enabled",
    "selected",
    # iOS
    "name",
    "label",
    "value",
    "visible",
    "accessible",
    "type",
    "x",
    "y",
    "width",
    "height",
    "index",
)

_ANDROID_LOADING_LOCATORS: tuple[Locator, ...] = (
    Locator(using="class name", value="android.widget.ProgressBar"),
    Locator(using="xpath", value='//*[contains(@resource-id, "progress")]'),
    Locator(using="xpath", value='//*[contains(@resource-id, "loading")]'),
    Locator(
        using="xpath",
        value=(
            '//*[contains(translate(@text, "ABCDEFGHIJKLMNOPQRSTUVWXYZ", '
            '"abcdefghijklmnopqrstuvwxyz"), "loading")]'
        ),
    ),
)

_IOS_LOADING_LOCATORS: tuple[Locator, ...] = (
    Locator(using="-ios class chain", value="**/XCUIElementTypeActivityIndicator"),
    Locator(using="-ios class chain", value="**/XCUIElementTypeProgressIndicator"),
)


def best_effort(label: str, fn: Callable[[], T]) -> Optional[T]:
    """
    Run a cosmetic operation whose failure must never fail a test.

    Any Exception is logged and swallowed; the result is None in that case.
    """
    try:
        return fn()
    except Exception as e:
        logger.info("Best-effort %s did not complete: %s", label, e)
        return None


def reduce_page_source(xml: str) -> str:
    """
    Strip every attribute not in ATTRIBUTES_TO_KEEP from a UI tree dump.

    Returns the input unchanged if it cannot be parsed.
    """
    if not xml or not xml.strip():
        return xml
    try:
        root = ElementTree.fromstring(xml)
    except ElementTree.ParseError as e:
        logger.warning("Failed to reduce page source, using it unchanged: %s", e)
        return xml

    for el in root.iter():
        kept = {k: v for k, v in el.attrib.items() if k in ATTRIBUTES_TO_KEEP}
        el.attrib.clear()
        el.attrib.update(kept)
    return ElementTree.tostring(root, encoding="unicode")


def wait_for_page_stability(
    client: AppiumHTTPClient,
    *,
    timeout_s: float = 30.0,
    interval_s: float = 1.0,
) -> Optional[str]:
    """
    Poll /source until two consecutive snapshots match.

    On timeout the most recent snapshot is returned even though it may still be moving.
    """
    last_source: Optional[str] = None
    deadline = time.time() + timeout_s
    while True:
        current = client.get_page_source()
        if last_source is not None and current == last_source:
            return current
        last_source = current
        if time.time() >= deadline:
            logger.info("Page source did not settle within %.1fs", timeout_s)
            return last_source
        time.sleep(interval_s)


def _any_visible(client: AppiumHTTPClient, locator: Locator) -> bool:
    for element in client.find_elements(using=locator.using, value=locator.value):
        if client.is_displayed(element):
            return True
    return False


def _wait_for_locators_to_vanish(
    client: AppiumHTTPClient,
    locators: tuple[Locator, ...],
    *,
    timeout_s: float,
    poll_s: float,
) -> None:
    deadline = time.time() + timeout_s
    for locator in locators:
        try:
            visible = _any_visible(client, locator)
        except Exception as e:
            # Some strategies are not supported by every driver.
            logger.debug("Skipping loading indicator check %s=%s: %s", locator.using, locator.value, e)
            continue
        while visible and time.time() < deadline:
            time.sleep(poll_s)
            visible = _any_visible(client, locator)


def wait_for_loading_to_disappear(
    client: AppiumHTTPClient,
    *,
    platform: str = "android",
    timeout_s: float = 15.0,
    poll_s: float = 0.5,
) -> None:
    """
    Best-effort wait for spinners and progress bars to go away.

    Never raises; an indicator that outlives the timeout is simply ignored.
    """
    locators = _IOS_LOADING_LOCATORS if (platform or "android").lower() == "ios" else _ANDROID_LOADING_LOCATORS
    best_effort(
        "loading-indicator wait",
        lambda: _wait_for_locators_to_vanish(client, locators, timeout_s=timeout_s, poll_s=poll_s),
    )
