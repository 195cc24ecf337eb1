from __future__ import annotations

import logging
import time
from typing import Optional

from .appium_http_client import AppiumHTTPClient
from .errors import ContextNotFoundError
from .models import Surface

logger = logging.getLogger(__name__)

NATIVE_CONTEXT = "NATIVE_APP"
EMBEDDED_CONTEXT_PREFIX = "WEBVIEW"


def is_embedded_context(name: Optional[str]) -> bool:
    return bool(name) and str(name).startswith(EMBEDDED_CONTEXT_PREFIX)


class ContextSwitcher:
    """Toggles the driver between the native app surface and the first WEBVIEW surface."""

    def __init__(self, client: AppiumHTTPClient, *, poll_interval_s: float = 0.5) -> None:
        self.client = client
        self.poll_interval_s = poll_interval_s

    def current_surface(self) -> Surface:
        return Surface.EMBEDDED if is_embedded_context(self.client.get_context()) else Surface.NATIVE

    def switch_to_embedded(self, timeout_s: float = 10.0) -> str:
        """
        Poll the available contexts until a WEBVIEW shows up and make it current.

        Returns the context name. Raises ContextNotFoundError after `timeout_s`.
        """
        deadline = time.time() + timeout_s
        while True:
            try:
                contexts = self.client.get_contexts()
                webview = next((ctx for ctx in contexts if is_embedded_context(ctx)), None)
                if webview is not None:
                    if self.client.get_context() != webview:
                        logger.info("Switching to WebView context: %s", webview)
                        self.client.switch_context(webview)
                    else:
                        logger.debug("Already in WebView context: %s", webview)
                    return webview
            except Exception as e:
                logger.info("Error getting contexts: %s", e)
            if time.time() >= deadline:
                break
            time.sleep(self.poll_interval_s)
        raise ContextNotFoundError(f"{EMBEDDED_CONTEXT_PREFIX} context not found within {timeout_s:.1f}s")

    def switch_to_native(self) -> None:
        if self.client.get_context() != NATIVE_CONTEXT:
            logger.info("Switching to native context: %s", NATIVE_CONTEXT)
            self.client.switch_context(NATIVE_CONTEXT)
        else:
            logger.debug("Already in native context: %s", NATIVE_CONTEXT)
