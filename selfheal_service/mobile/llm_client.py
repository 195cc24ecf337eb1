from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Protocol, Union

import requests

from .config import LLMConfig
from .env import read_secret
from .errors import TranslationError

logger = logging.getLogger(__name__)

# Raw translation output: a bare command object, a list of them, or {"steps": [...]}.
TranslationPayload = Union[dict[str, Any], list[Any]]


class Translator(Protocol):
    def translate(self, step_text: str, page_snapshot: str) -> TranslationPayload: ...


class SelectorHealer(Protocol):
    def suggest_selector(self, original_step: str, page_snapshot: str) -> str: ...


_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

_TRANSLATE_SYSTEM = (
    "You convert one natural-language mobile test step into automation commands. "
    "Reply with raw JSON only: either one object or an array of objects with keys "
    '"command" (one of "click", "setValue", "verifyVisible", "launchApp"), '
    '"selector" (string), "value" (string, only for setValue) and "original_step". '
    "Pick selectors from the provided UI tree. On Android prefer resource-id, then "
    "content-desc; on iOS prefer name or label. Prefix accessibility identifiers with '~'. "
    "Use a precise XPath only when nothing stable exists."
)

_HEAL_SYSTEM = (
    "A mobile test step failed because its element could not be found. From the UI tree, "
    "return the single most reliable selector for the element the step describes. "
    "Order of preference: resource-id (Android) or name/label (iOS); content-desc "
    "accessibility id prefixed with '~'; a precise XPath. Return only the selector string."
)


def strip_code_fences(raw: str) -> str:
    return _CODE_FENCE.sub("", raw.strip()).strip()


def extract_json_payload(raw: str) -> TranslationPayload:
    """Parse the first JSON object or array in an LLM reply."""
    text = strip_code_fences(raw)
    if not text:
        raise TranslationError("LLM response was empty")
    try:
        parsed = json.loads(text)
        if isinstance(parsed, (dict, list)):
            return parsed
    except json.JSONDecodeError:
        pass

    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        raise TranslationError("Could not find JSON in LLM response")
    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end <= start:
        raise TranslationError("Could not find JSON in LLM response")
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise TranslationError(f"Failed to parse JSON from LLM response: {e}") from e
    if not isinstance(parsed, (dict, list)):
        raise TranslationError("LLM JSON must be an object or an array")
    return parsed


class ChatCompletionsCollaborator:
    """
    Translation + healing backed by an OpenAI-compatible /v1/chat/completions endpoint.

    Works against any provider that speaks that API (set `base_url`), e.g. DeepSeek.
    """

    def __init__(self, config: LLMConfig, *, session: Any = None) -> None:
        self.config = config
        self._http = session or requests

    def _complete(self, *, system: str, user: str) -> str:
        api_key = read_secret(self.config.api_key_env)
        if not api_key:
            raise TranslationError(f"Missing API key env var {self.config.api_key_env!r} required for the LLM")

        payload: dict[str, Any] = {
            "model": self.config.model,
            "temperature": float(self.config.temperature),
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }

        url = f"{self.config.base_url.rstrip('/')}/v1/chat/completions"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        started = time.time()
        try:
            response = self._http.post(url, headers=headers, json=payload, timeout=float(self.config.timeout_s))
        except Exception as e:
            raise TranslationError(f"LLM API request failed: {e}") from e

        try:
            body = response.json()
        except Exception as e:
            raise TranslationError(f"LLM API returned non-JSON response: {e}") from e

        if response.status_code >= 400:
            raise TranslationError(f"LLM API error {response.status_code}: {body}")

        try:
            content = body["choices"][0]["message"]["content"]
        except Exception as e:
            raise TranslationError(f"Unexpected LLM response shape: {body}") from e

        logger.debug("LLM call to %s took %dms", self.config.model, int((time.time() - started) * 1000))
        return str(content or "")

    def translate(self, step_text: str, page_snapshot: str) -> TranslationPayload:
        user = f"UI tree:\n```xml\n{page_snapshot}\n```\n\nStep:\n{step_text}"
        raw = self._complete(system=_TRANSLATE_SYSTEM, user=user)
        return extract_json_payload(raw)

    def suggest_selector(self, original_step: str, page_snapshot: str) -> str:
        user = f'Failed step: "{original_step}"\n\nUI tree:\n```xml\n{page_snapshot}\n```'
        raw = self._complete(system=_HEAL_SYSTEM, user=user)
        selector = strip_code_fences(raw)
        if not selector:
            raise TranslationError("LLM returned an empty selector")
        return selector
