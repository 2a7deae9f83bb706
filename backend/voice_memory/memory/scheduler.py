from __future__ import annotations

from collections.abc import Sequence

from voice_memory.memory.types import InteractionEvent, UpdateDecision

DEFAULT_FLASH_INTERVAL = 2
DEFAULT_LONG_TERM_INTERVAL = 10


def count_turns(events: Sequence[InteractionEvent]) -> int:
    """A turn is one user-authored event."""

    return sum(1 for event in events if event.role == "user")


def decide_update(
    turn_count: int,
    flash_interval: int = DEFAULT_FLASH_INTERVAL,
    long_term_interval: int = DEFAULT_LONG_TERM_INTERVAL,
) -> UpdateDecision:
    """Decide which extractors fire on this turn."""

    return UpdateDecision(
        turn_count=turn_count,
        run_flash=turn_count > 0 and turn_count % flash_interval == 0,
        run_long_term=turn_count > 0 and turn_count % long_term_interval == 0,
    )


class UpdateScheduler:
    """Periodic trigger for flash and long-term extraction."""

    def __init__(
        self,
        flash_interval: int = DEFAULT_FLASH_INTERVAL,
        long_term_interval: int = DEFAULT_LONG_TERM_INTERVAL,
    ) -> None:
        if flash_interval <= 0 or long_term_interval <= 0:
            raise ValueError("Update intervals must be positive integers")
        self.flash_interval = int(flash_interval)
        self.long_term_interval = int(long_term_interval)

    def decide(self, events: Sequence[InteractionEvent]) -> UpdateDecision:
        return decide_update(
            count_turns(events), self.flash_interval, self.long_term_interval
        )
