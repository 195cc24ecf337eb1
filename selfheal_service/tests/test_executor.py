"""Tests for cache-first, self-healing command execution."""
import pytest

from selfheal_service.mobile.errors import ElementNotFoundError
from selfheal_service.mobile.executor import SelfHealingExecutor, sanitize_suggested_selector
from selfheal_service.mobile.models import Command, CommandAction, Surface

from .conftest import APP_ID, FakeAppiumClient, FakeCollaborator

LOGIN_STEP = "Tap the *Login* button"


def _executor(client, cache, healer, timings):
    return SelfHealingExecutor(client, cache, healer, app_id=APP_ID, timings=timings)


def test_cached_selector_is_used_without_healing(cache, timings):
    """A cached selector for the proposed strategy wins over the proposed selector."""
    cache.put(APP_ID, "login - Login - accessibility-id", "~loginButton")
    client = FakeAppiumClient(matches={("accessibility id", "loginButton")})
    healer = FakeCollaborator()

    report = _executor(client, cache, healer, timings).execute(
        Command(CommandAction.CLICK, "~wrongButton", None, LOGIN_STEP), "login"
    )

    assert report.source == "cache"
    assert report.selector == "~loginButton"
    assert client.clicks == ["accessibility id:loginButton"]
    assert ("accessibility id", "wrongButton") not in client.queries
    assert healer.suggest_calls == []


def test_direct_selector_is_cached_under_its_strategy(cache, timings):
    """A working proposed selector is written back."""
    client = FakeAppiumClient(matches={("id", "com.example:id/login")})
    report = _executor(client, cache, FakeCollaborator(), timings).execute(
        Command(CommandAction.CLICK, "com.example:id/login", None, LOGIN_STEP), "login"
    )

    assert report.source == "direct"
    assert cache.get(APP_ID, "login - Login - resource-id") == "com.example:id/login"


def test_healing_calls_collaborator_once_and_caches_healed_strategy(cache, timings):
    """A failing proposal is healed and stored under the healed selector's strategy."""
    client = FakeAppiumClient(matches={("accessibility id", "loginButton")})
    healer = FakeCollaborator(suggestions={LOGIN_STEP: '"~loginButton"'})

    report = _executor(client, cache, healer, timings).execute(
        Command(CommandAction.CLICK, "com.example:id/old_login", None, LOGIN_STEP), "login"
    )

    assert report.source == "healed"
    assert report.selector == "~loginButton"
    assert healer.suggest_calls == [LOGIN_STEP]
    assert client.clicks == ["accessibility id:loginButton"]
    assert cache.get(APP_ID, "login - Login - accessibility-id") == "~loginButton"
    assert cache.get(APP_ID, "login - Login - resource-id") is None


def test_stale_cache_entry_is_invalidated_once(cache, timings):
    """A cached selector that no longer matches is deleted and the proposal is used."""
    cache.put(APP_ID, "login - Login - resource-id", "com.example:id/stale")
    client = FakeAppiumClient(matches={("id", "com.example:id/login")})

    report = _executor(client, cache, FakeCollaborator(), timings).execute(
        Command(CommandAction.CLICK, "com.example:id/login", None, LOGIN_STEP), "login"
    )

    assert report.source == "direct"
    assert client.queries.count(("id", "com.example:id/stale")) == 1
    assert cache.get(APP_ID, "login - Login - resource-id") == "com.example:id/login"


def test_missing_selector_goes_straight_to_healing(cache, timings):
    """A placeholder command without a selector is healed."""
    client = FakeAppiumClient(matches={("accessibility id", "banner")})
    step = "Check the *Welcome* banner"
    healer = FakeCollaborator(suggestions={step: "~banner"})

    report = _executor(client, cache, healer, timings).execute(Command.placeholder(step), "home")

    assert report.source == "healed"
    assert client.clicks == []
    assert cache.get(APP_ID, "home - Welcome - accessibility-id") == "~banner"


def test_healing_failure_raises_element_not_found(cache, timings):
    """When healing cannot produce a working selector the step's text is reported."""
    client = FakeAppiumClient()
    healer = FakeCollaborator(suggestions={LOGIN_STEP: "~stillMissing"})

    with pytest.raises(ElementNotFoundError) as excinfo:
        _executor(client, cache, healer, timings).execute(
            Command(CommandAction.CLICK, "~missing", None, LOGIN_STEP), "login"
        )

    assert str(excinfo.value) == 'Could not find element for step: "Tap the *Login* button"'
    assert excinfo.value.original_step == LOGIN_STEP
    assert healer.suggest_calls == [LOGIN_STEP]
    assert cache.entries(APP_ID) == {APP_ID: {}}


def test_set_value_types_into_element(cache, timings):
    """setValue sends the command value; a missing value types an empty string."""
    client = FakeAppiumClient(matches={("id", "com.example:id/email")})
    executor = _executor(client, cache, FakeCollaborator(), timings)

    executor.execute(
        Command(CommandAction.SET_VALUE, "com.example:id/email", "me@example.com", "Type into *Email*"), "login"
    )
    executor.execute(Command(CommandAction.SET_VALUE, "com.example:id/email", None, "Clear *Email*"), "login")

    assert client.values == [
        ("id:com.example:id/email", "me@example.com"),
        ("id:com.example:id/email", ""),
    ]


def test_embedded_surface_is_passed_to_resolution(cache, timings):
    """In a WEBVIEW the selector is resolved as CSS."""
    client = FakeAppiumClient(matches={("css selector", "#buy")})
    _executor(client, cache, FakeCollaborator(), timings).execute(
        Command(CommandAction.CLICK, "css=#buy", None, "Tap *Buy*"), "shop", surface=Surface.EMBEDDED
    )
    assert client.clicks == ["css selector:#buy"]
    assert cache.get(APP_ID, "shop - Buy - css") == "css=#buy"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("~login", "~login"),
        ("  `~login`  ", "~login"),
        ("\"com.example:id/login\"", "com.example:id/login"),
        ("'//*[@text=\"Go\"]'", '//*[@text="Go"]'),
        ("resource-id=\"com.example:id/btn\"", "resource-id=com.example:id/btn"),
        ("resource-id: 'com.example:id/btn'", "resource-id:com.example:id/btn"),
        ("name=\"Login\"", "name=Login"),
        ("label='Sign in'", "label=Sign in"),
        ("~\"login\"", "~login"),
        ("`~`login``", "~login"),
    ],
)
def test_sanitize_suggested_selector(raw, expected):
    """Wrapping quotes, operand quotes and backticks are removed; XPath literals survive."""
    assert sanitize_suggested_selector(raw) == expected


@pytest.mark.parametrize(
    "suggestion, query",
    [
        ("resource-id=\"com.example:id/login\"", ("id", "com.example:id/login")),
        ("name=\"Login\"", ("accessibility id", "Login")),
        ("~\"loginButton\"", ("accessibility id", "loginButton")),
    ],
)
def test_quoted_structured_suggestion_heals(cache, timings, suggestion, query):
    """A healer answer with a quoted operand still resolves and is cached unquoted."""
    client = FakeAppiumClient(matches={query})
    healer = FakeCollaborator(suggestions={LOGIN_STEP: suggestion})

    report = _executor(client, cache, healer, timings).execute(
        Command(CommandAction.CLICK, "~gone", None, LOGIN_STEP), "login"
    )

    assert report.source == "healed"
    assert '"' not in report.selector
    assert client.clicks == [f"{query[0]}:{query[1]}"]
