from __future__ import annotations

import re
from typing import Optional

from .models import LocatorStrategy

# Android resource ids look like "com.example:id/login".
RESOURCE_ID_SEPARATOR = ":id/"

_MARKED_SPAN = re.compile(r"\*([^*]+)\*")


def classify_selector(selector: Optional[str]) -> LocatorStrategy:
    """
    Infer the locator strategy from a selector's surface syntax.

    Total and side-effect free; the result becomes the last part of a cache key.
    """
    if not selector:
        return LocatorStrategy.UNKNOWN
    if selector.startswith("~"):
        return LocatorStrategy.ACCESSIBILITY_ID
    if RESOURCE_ID_SEPARATOR in selector or "resource-id" in selector:
        return LocatorStrategy.RESOURCE_ID
    if selector.startswith("//") or selector.startswith("("):
        return LocatorStrategy.XPATH
    if selector.lower().startswith("css="):
        return LocatorStrategy.CSS
    return LocatorStrategy.UNKNOWN


def extract_element_name(step_text: Optional[str]) -> str:
    """
    Pull a canonical element name out of a natural-language step.

    "Tap the *Login* button" -> "Login"; without markers the last word is used
    ("Tap the Login button" -> "button").
    """
    text = step_text or ""
    match = _MARKED_SPAN.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    words = text.split()
    if not words:
        return ""
    return words[-1]
