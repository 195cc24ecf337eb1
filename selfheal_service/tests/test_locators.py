"""Tests for selector classification and element-name extraction."""
import pytest

from selfheal_service.mobile.locators import classify_selector, extract_element_name
from selfheal_service.mobile.models import LocatorStrategy


@pytest.mark.parametrize(
    "selector, expected",
    [
        ("~loginButton", LocatorStrategy.ACCESSIBILITY_ID),
        ("com.example:id/login", LocatorStrategy.RESOURCE_ID),
        ("resource-id=login", LocatorStrategy.RESOURCE_ID),
        ("//android.widget.Button", LocatorStrategy.XPATH),
        ("(//android.widget.Button)[2]", LocatorStrategy.XPATH),
        ("css=#submit", LocatorStrategy.CSS),
        ("CSS=.buy", LocatorStrategy.CSS),
        ("Login", LocatorStrategy.UNKNOWN),
        ("name=Login", LocatorStrategy.UNKNOWN),
        ("", LocatorStrategy.UNKNOWN),
        (None, LocatorStrategy.UNKNOWN),
    ],
)
def test_classify_selector(selector, expected):
    """Each surface syntax maps to its strategy."""
    assert classify_selector(selector) == expected


def test_classify_selector_is_stable():
    """Repeated calls give the same answer and the value is the hand-editable tag."""
    results = {classify_selector("~foo") for _ in range(5)}
    assert results == {LocatorStrategy.ACCESSIBILITY_ID}
    assert classify_selector("~foo").value == "accessibility-id"


def test_accessibility_prefix_wins_over_resource_id_separator():
    """A '~' selector is an accessibility id even if it contains ':id/'."""
    assert classify_selector("~pkg:id/thing") == LocatorStrategy.ACCESSIBILITY_ID


def test_extract_marked_element_name():
    """Text between asterisks is returned trimmed."""
    assert extract_element_name("Tap the *Login* button") == "Login"
    assert extract_element_name("Tap the *  Sign up now  * link") == "Sign up now"


def test_extract_falls_back_to_last_word():
    """Without markers the last word is used."""
    assert extract_element_name("Tap the Login button") == "button"
    assert extract_element_name("  Tap   Settings  ") == "Settings"


def test_extract_handles_empty_text():
    """Empty or missing text degrades to an empty name."""
    assert extract_element_name("") == ""
    assert extract_element_name(None) == ""


def test_extract_uses_first_marked_span():
    """Only the first span counts."""
    assert extract_element_name("Drag *Card* onto *Slot*") == "Card"
