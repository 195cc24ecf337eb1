from __future__ import annotations


class SelfHealError(RuntimeError):
    pass


class ResolutionError(SelfHealError):
    """A selector matched nothing (or was empty) within the bounded wait."""


class ContextNotFoundError(SelfHealError):
    """No embedded (WEBVIEW) surface appeared before the timeout."""


class ElementNotFoundError(SelfHealError):
    """Terminal: cache, direct and healed resolution were all exhausted."""

    def __init__(self, original_step: str) -> None:
        super().__init__(f'Could not find element for step: "{original_step}"')
        self.original_step = original_step


class TranslationError(SelfHealError):
    """The translation / healing collaborator failed or returned garbage."""
