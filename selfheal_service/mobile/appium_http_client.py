from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import requests


class AppiumHTTPError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        response_json: Optional[dict[str, Any]] = None,
        response_text: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.response_json = response_json
        self.response_text = response_text


@dataclass(frozen=True)
class WebDriverElementRef:
    element_id: str


def _extract_webdriver_value(payload: dict[str, Any]) -> Any:
    # W3C WebDriver typically wraps in {"value": ...}
    if "value" in payload:
        return payload["value"]
    return payload


def _extract_element_id(element_obj: Any) -> str:
    if not isinstance(element_obj, dict):
        raise ValueError(f"Unexpected element payload type: {type(element_obj)}")

    # W3C element key
    w3c_key = "element-6066-11e4-a52e-4f735466cecf"
    if w3c_key in element_obj and element_obj[w3c_key]:
        return str(element_obj[w3c_key])

    # Legacy JSONWire key
    if "ELEMENT" in element_obj and element_obj["ELEMENT"]:
        return str(element_obj["ELEMENT"])

    raise ValueError(f"Could not extract element id from payload keys: {list(element_obj.keys())}")


class AppiumHTTPClient:
    """
    Minimal Appium client using WebDriver HTTP endpoints.

    Covers exactly what the self-healing engine needs: session lifecycle, page
    source, element lookup and interaction, and context (native / WEBVIEW) switching.
    """

    def __init__(self, server_url: str, *, timeout_s: float = 30.0) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session_id: Optional[str] = None
        self._session = requests.Session()

    def _request(self, method: str, path: str, *, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout_s)
        except Exception as e:
            raise AppiumHTTPError(
                message=f"Failed to call Appium server: {e}",
                method=method,
                url=url,
            ) from e

        response_text = None
        response_json: Optional[dict[str, Any]] = None
        try:
            response_json = response.json()
        except Exception:
            response_text = response.text

        if response.status_code >= 400:
            details = None
            if response_json is not None:
                value = _extract_webdriver_value(response_json)
                if isinstance(value, dict):
                    details = value.get("error") or value.get("message")
            raise AppiumHTTPError(
                message=f"Appium HTTP {response.status_code} for {method} {path}"
                + (f": {details}" if details else ""),
                method=method,
                url=url,
                status_code=response.status_code,
                response_json=response_json,
                response_text=response_text,
            )

        if response_json is None:
            raise AppiumHTTPError(
                message=f"Appium returned non-JSON response for {method} {path}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response_text,
            )

        return response_json

    def _session_value(self, method: str, suffix: str, *, json: Optional[dict[str, Any]] = None) -> Any:
        self._require_session()
        response = self._request(method, f"/session/{self.session_id}{suffix}", json=json)
        return _extract_webdriver_value(response)

    def _unexpected(self, method: str, suffix: str, expected: str, response: Any) -> AppiumHTTPError:
        return AppiumHTTPError(
            message=f"Unexpected {suffix} response shape (expected {expected})",
            method=method,
            url=f"{self.server_url}/session/{self.session_id}{suffix}",
            response_json=response if isinstance(response, dict) else {"value": response},
        )

    def create_session(self, session_payload: dict[str, Any]) -> str:
        """
        Create an Appium session.

        `session_payload` must be a valid WebDriver session creation payload.
        Most commonly:
          {"capabilities": {"alwaysMatch": {...}, "firstMatch": [{}]}}

        This method does not guess defaults; it fails loudly if the payload is invalid.
        """
        if not isinstance(session_payload, dict) or not session_payload:
            raise ValueError("session_payload must be a non-empty dict")

        response = self._request("POST", "/session", json=session_payload)

        # Common shapes:
        # - {"value": {"sessionId": "...", "capabilities": {...}}}
        # - {"sessionId": "...", "value": {...}}
        value = _extract_webdriver_value(response)
        session_id = None
        if isinstance(value, dict):
            session_id = value.get("sessionId")
        session_id = session_id or response.get("sessionId")

        if not session_id:
            raise AppiumHTTPError(
                message="Appium did not return a sessionId in the create_session response",
                method="POST",
                url=f"{self.server_url}/session",
                response_json=response,
            )

        self.session_id = str(session_id)
        return self.session_id

    def delete_session(self) -> None:
        if not self.session_id:
            return
        session_id = self.session_id
        try:
            self._request("DELETE", f"/session/{session_id}")
        finally:
            self.session_id = None

    def get_page_source(self) -> str:
        value = self._session_value("GET", "/source")
        if not isinstance(value, str):
            raise self._unexpected("GET", "/source", "string", value)
        return value

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find elements")
        payload = self._session_value("POST", "/elements", json={"using": using, "value": value})
        if not isinstance(payload, list):
            raise self._unexpected("POST", "/elements", "list", payload)
        return [WebDriverElementRef(element_id=_extract_element_id(item)) for item in payload]

    def is_displayed(self, element: WebDriverElementRef) -> bool:
        value = self._session_value("GET", f"/element/{element.element_id}/displayed")
        return bool(value)

    def click(self, element: WebDriverElementRef) -> None:
        self._session_value("POST", f"/element/{element.element_id}/click", json={})

    def clear(self, element: WebDriverElementRef) -> None:
        self._session_value("POST", f"/element/{element.element_id}/clear", json={})

    def send_keys(self, element: WebDriverElementRef, *, text: str) -> None:
        if text is None:
            raise ValueError("text must not be None")
        # W3C servers read `text`; older ones expect `value` as an array of chars.
        self._session_value(
            "POST",
            f"/element/{element.element_id}/value",
            json={"text": text, "value": list(text)},
        )

    def set_value(self, element: WebDriverElementRef, *, text: str) -> None:
        """Replace the element's content, like WebdriverIO's setValue."""
        self.clear(element)
        self.send_keys(element, text=text)

    def get_contexts(self) -> list[str]:
        value = self._session_value("GET", "/contexts")
        if not isinstance(value, list):
            raise self._unexpected("GET", "/contexts", "list", value)
        return [str(ctx) for ctx in value if ctx]

    def get_context(self) -> str:
        value = self._session_value("GET", "/context")
        if not isinstance(value, str):
            raise self._unexpected("GET", "/context", "string", value)
        return value

    def switch_context(self, name: str) -> None:
        if not name:
            raise ValueError("context name is required")
        self._session_value("POST", "/context", json={"name": name})

    def _require_session(self) -> None:
        if not self.session_id:
            raise RuntimeError("No active Appium session. Call create_session() first.")
