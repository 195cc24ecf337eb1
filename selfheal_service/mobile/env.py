from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_DOTENV_LOADED = False

DOTENV_PATH_ENV = "SELFHEAL_DOTENV_PATH"


def _repo_root() -> Path:
    # selfheal_service/mobile/env.py -> repo root is two levels up
    return Path(__file__).resolve().parents[2]


def _parse_line(raw_line: str) -> Optional[tuple[str, str]]:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].strip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        value = value[1:-1]
    return key, value


def load_dotenv(*, path: Optional[str | Path] = None, override: bool = False) -> dict[str, str]:
    """
    Read KEY=VALUE pairs from a .env file into os.environ.

    The file defaults to $SELFHEAL_DOTENV_PATH, then `<repo root>/.env`. Existing
    environment variables win unless override=True. Returns the keys that were set.
    """
    if path is None:
        path = os.environ.get(DOTENV_PATH_ENV) or (_repo_root() / ".env")
    dotenv_path = Path(path).expanduser().resolve()
    if not dotenv_path.exists():
        return {}
    if dotenv_path.is_dir():
        raise RuntimeError(f".env path is a directory: {dotenv_path}")

    loaded: dict[str, str] = {}
    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_line(raw_line)
        if parsed is None:
            continue
        key, value = parsed
        if not override and os.environ.get(key) is not None:
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded


def ensure_dotenv_loaded() -> dict[str, str]:
    """
    Load the .env file exactly once per process.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return {}
    loaded = load_dotenv()
    _DOTENV_LOADED = True
    return loaded


def read_secret(env_var: str) -> str:
    """Return a stripped secret from the environment ('' when unset), loading .env first."""
    ensure_dotenv_loaded()
    return os.environ.get(env_var, "").strip()
