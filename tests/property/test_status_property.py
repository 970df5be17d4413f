from hypothesis import given
from hypothesis import strategies as st

from release_mcp.models.release import ReleaseState


@given(st.sampled_from([member.value for member in ReleaseState]))
def test_release_state_values_are_lowercase(value: str) -> None:
    assert value == value.lower()


@given(st.sampled_from(list(ReleaseState)))
def test_release_state_is_in_progress_or_terminal(state: ReleaseState) -> None:
    assert state.in_progress != state.terminal
