from datetime import timedelta

from hypothesis import given
from hypothesis import strategies as st

from release_mcp.mcp.cache import (
    CHANGELOG_URI,
    COMMITS_URI,
    CONFIG_URI,
    RISK_REPORT_URI,
    STATE_URI,
    ResourceCache,
)
from tests.support.mcp_helpers import MCPTestClock

_KEYS = st.sampled_from(
    [STATE_URI, CONFIG_URI, COMMITS_URI, CHANGELOG_URI, RISK_REPORT_URI, "release://other"]
)
_VALUES = st.one_of(st.integers(), st.text(), st.lists(st.integers(), max_size=3))


@given(_KEYS, _VALUES)
def test_set_then_get_round_trips(key: str, value: object) -> None:
    cache = ResourceCache(clock=MCPTestClock())
    cache.set(key, value)
    assert cache.get(key) == value


@given(_KEYS, _VALUES)
def test_invalidate_always_wins(key: str, value: object) -> None:
    cache = ResourceCache(clock=MCPTestClock())
    cache.set_ttl(key, timedelta(days=1))
    cache.set(key, value)
    cache.invalidate(key)
    assert cache.get(key) is None


@given(st.lists(st.tuples(_KEYS, st.integers(min_value=0, max_value=600)), max_size=12))
def test_cleanup_removes_exactly_expired(entries: list[tuple[str, int]]) -> None:
    clock = MCPTestClock()
    cache = ResourceCache(clock=clock)
    for key, offset in entries:
        clock.advance(seconds=offset)
        cache.set(key, offset)
    clock.advance(seconds=15)

    before = cache.stats()
    expected_expired = {key for key, entry in before.entries.items() if entry.expired}
    removed = cache.cleanup()
    after = cache.stats()

    assert removed == len(expected_expired)
    assert set(after.entries) == set(before.entries) - expected_expired
    assert not any(entry.expired for entry in after.entries.values())


@given(st.lists(_KEYS, max_size=8), st.lists(_KEYS, max_size=8))
def test_disabled_writes_never_resurface(before: list[str], during: list[str]) -> None:
    cache = ResourceCache(clock=MCPTestClock())
    for key in before:
        cache.set(key, "before")
    cache.set_enabled(False)
    for key in during:
        cache.set(key, "during")
    cache.set_enabled(True)

    for key in {*before, *during}:
        assert cache.get(key) is None
