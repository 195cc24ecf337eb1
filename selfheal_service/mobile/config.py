from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional


def load_json_file(path: str) -> dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {file_path}")
    if file_path.is_dir():
        raise IsADirectoryError(f"Expected a JSON file but found a directory: {file_path}")

    raw = file_path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected top-level JSON object in {file_path}")
    return data


def require_key(obj: dict[str, Any], key: str, *, context: str) -> Any:
    if key not in obj:
        raise ValueError(f"Missing required key '{key}' in {context}")
    return obj[key]


def _as_non_empty_str(value: Any, *, field: str, context: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{context}: '{field}' must be a non-empty string")
    return value.strip()


def _as_non_negative_float(value: Any, *, field: str, context: str) -> float:
    try:
        parsed = float(value)
    except Exception as e:
        raise ValueError(f"{context}: '{field}' must be a number") from e
    if parsed < 0:
        raise ValueError(f"{context}: '{field}' must be >= 0")
    return parsed


def _as_optional_str(value: Any, *, field: str, context: str) -> Optional[str]:
    if value is None:
        return None
    return _as_non_empty_str(value, field=field, context=context)


@dataclass(frozen=True)
class EngineTimings:
    """Every bounded wait and settle delay the engine uses, in seconds."""

    cache_wait_s: float = 5.0
    direct_wait_s: float = 10.0
    healed_wait_s: float = 10.0
    element_poll_s: float = 0.5
    settle_s: float = 1.0
    launch_settle_s: float = 2.0
    page_load_fallback_s: float = 2.0
    context_timeout_s: float = 10.0
    context_poll_s: float = 0.5
    stability_timeout_s: float = 30.0
    stability_interval_s: float = 1.0
    loading_timeout_s: float = 15.0
    prefetch_wait_s: float = 10.0

    @classmethod
    def immediate(cls) -> "EngineTimings":
        """All-zero timings: single-shot polls, no sleeping."""
        return cls(**{f.name: 0.0 for f in fields(cls)})


def parse_timings(raw: Any, *, context: str) -> EngineTimings:
    if raw is None:
        return EngineTimings()
    if not isinstance(raw, dict):
        raise ValueError(f"{context}: 'timings' must be an object")
    known = {f.name for f in fields(EngineTimings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"{context}: unknown timing key(s): {', '.join(unknown)}")
    overrides = {
        key: _as_non_negative_float(value, field=key, context=f"{context}: timings")
        for key, value in raw.items()
    }
    return EngineTimings(**overrides)


@dataclass(frozen=True)
class LLMConfig:
    model: str
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str = "https://api.openai.com"
    timeout_s: float = 60.0
    temperature: float = 0.0


def parse_llm_config(raw: Any, *, context: str) -> LLMConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"{context}: 'llm' must be an object")
    return LLMConfig(
        model=_as_non_empty_str(raw.get("model"), field="model", context=f"{context}: llm"),
        api_key_env=str(raw.get("api_key_env") or "OPENAI_API_KEY").strip(),
        base_url=str(raw.get("base_url") or "https://api.openai.com").strip().rstrip("/"),
        timeout_s=_as_non_negative_float(raw.get("timeout_s", 60), field="timeout_s", context=f"{context}: llm"),
        temperature=_as_non_negative_float(
            raw.get("temperature", 0), field="temperature", context=f"{context}: llm"
        ),
    )


SUPPORTED_PLATFORMS = ("android", "ios")


@dataclass(frozen=True)
class RunConfig:
    appium_server_url: str
    capabilities_payload: dict[str, Any]
    platform: str
    app_id: str
    steps_path: Optional[str]
    cache_dir: Path
    llm: LLMConfig
    timings: EngineTimings


def _always_match(capabilities_payload: dict[str, Any]) -> dict[str, Any]:
    caps = capabilities_payload.get("capabilities") or {}
    if not isinstance(caps, dict):
        return {}
    always = caps.get("alwaysMatch")
    return always if isinstance(always, dict) else caps


def infer_platform(capabilities_payload: dict[str, Any]) -> Optional[str]:
    raw = _always_match(capabilities_payload).get("platformName")
    if isinstance(raw, str) and raw.strip():
        return raw.strip().lower()
    return None


def infer_app_id(capabilities_payload: dict[str, Any]) -> Optional[str]:
    caps = _always_match(capabilities_payload)
    for key in ("appium:appPackage", "appium:bundleId", "appPackage", "bundleId"):
        value = caps.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def load_run_config(config_json_path: str) -> RunConfig:
    """
    Load a natural-language test run config.

    Schema (fail-fast):
      {
        "appium_server_url": "http://127.0.0.1:4723",
        "capabilities_json_path": "selfheal_service/mobile_examples/android_capabilities.example.json",
        "platform": "android",
        "app_id": "com.example.app",
        "steps_path": "selfheal_service/mobile_examples/login_steps.example.txt",
        "cache_dir": ".",
        "llm": {"model": "gpt-4o-mini", "api_key_env": "OPENAI_API_KEY"},
        "timings": {"settle_s": 1.0}
      }

    `platform` and `app_id` may be omitted when the capabilities carry
    platformName and appium:appPackage / appium:bundleId.
    """
    config = load_json_file(config_json_path)
    context = config_json_path

    appium_server_url = _as_non_empty_str(
        require_key(config, "appium_server_url", context=context),
        field="appium_server_url",
        context=context,
    )
    capabilities_json_path = _as_non_empty_str(
        require_key(config, "capabilities_json_path", context=context),
        field="capabilities_json_path",
        context=context,
    )
    capabilities_payload = load_json_file(capabilities_json_path)
    require_key(capabilities_payload, "capabilities", context=capabilities_json_path)

    platform = _as_optional_str(config.get("platform"), field="platform", context=context)
    platform = (platform or infer_platform(capabilities_payload) or "").lower()
    if platform not in SUPPORTED_PLATFORMS:
        raise ValueError(
            f"{context}: 'platform' must be one of {', '.join(SUPPORTED_PLATFORMS)} "
            "(set it explicitly or provide platformName in capabilities)"
        )

    app_id = _as_optional_str(config.get("app_id"), field="app_id", context=context) or infer_app_id(
        capabilities_payload
    )
    if not app_id:
        raise ValueError(
            f"{context}: 'app_id' is required when capabilities do not carry appium:appPackage/appium:bundleId"
        )

    return RunConfig(
        appium_server_url=appium_server_url,
        capabilities_payload=capabilities_payload,
        platform=platform,
        app_id=app_id,
        steps_path=_as_optional_str(config.get("steps_path"), field="steps_path", context=context),
        cache_dir=Path(str(config.get("cache_dir") or ".")).resolve(),
        llm=parse_llm_config(require_key(config, "llm", context=context), context=context),
        timings=parse_timings(config.get("timings"), context=context),
    )
