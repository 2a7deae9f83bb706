from __future__ import annotations

import pytest

from voice_memory.memory.scheduler import UpdateScheduler, count_turns, decide_update
from stubs import dialogue, user_turns


@pytest.mark.parametrize(
    "turn,run_flash,run_long_term",
    [
        (0, False, False),
        (1, False, False),
        (2, True, False),
        (3, False, False),
        (4, True, False),
        (10, True, True),
        (15, False, False),
        (20, True, True),
    ],
)
def test_default_intervals(turn, run_flash, run_long_term):
    decision = decide_update(turn)
    assert decision.turn_count == turn
    assert decision.run_flash is run_flash
    assert decision.run_long_term is run_long_term
    assert decision.should_run is (run_flash or run_long_term)


def test_custom_intervals():
    decision = decide_update(9, flash_interval=3, long_term_interval=9)
    assert decision.run_flash and decision.run_long_term
    assert not decide_update(5, flash_interval=3, long_term_interval=9).should_run


def test_turns_count_user_events_only():
    events = dialogue(
        ("user", "hi"),
        ("assistant", "hello"),
        ("system", "note"),
        ("user", "how are you"),
    )
    assert count_turns(events) == 2
    assert count_turns([]) == 0


def test_scheduler_decides_from_history():
    scheduler = UpdateScheduler(flash_interval=2, long_term_interval=4)
    assert scheduler.decide(user_turns(1)).should_run is False
    assert scheduler.decide(user_turns(2)).run_flash is True
    decision = scheduler.decide(user_turns(4))
    assert decision.run_flash and decision.run_long_term


@pytest.mark.parametrize("flash,long_term", [(0, 10), (2, 0), (-1, 10)])
def test_scheduler_rejects_non_positive_intervals(flash, long_term):
    with pytest.raises(ValueError):
        UpdateScheduler(flash_interval=flash, long_term_interval=long_term)
