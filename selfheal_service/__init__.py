"""
Self-healing natural-language test runner for mobile apps.
"""

from __future__ import annotations

from typing import Any

__all__ = ["run_nl_test", "run_orchestration", "SelectorCache"]


def __getattr__(name: str) -> Any:
    """
    Lazy exports.

    Importing the package stays cheap (no `requests` session, no config loading)
    until one of the public entry points is actually used.
    """
    if name in __all__:
        from . import mobile

        return getattr(mobile, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
