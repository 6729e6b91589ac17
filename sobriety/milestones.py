from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from sobriety.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Milestone:
    days: int
    title: str
    message: str


MILESTONES = (
    Milestone(1, "First Day!", "You took the first step. Every journey begins here."),
    Milestone(3, "Three Days Strong!", "You're building momentum. Keep going!"),
    Milestone(7, "One Week!", "A full week of growth. You're amazing!"),
    Milestone(14, "Two Weeks!", "You're proving your strength every day."),
    Milestone(30, "One Month!", "A whole month of dedication. You're incredible!"),
    Milestone(60, "Two Months!", "Look how far you've come. Keep flourishing!"),
    Milestone(90, "Three Months!", "You've built something truly special here."),
    Milestone(180, "Six Months!", "Half a year of growth and strength. Extraordinary!"),
    Milestone(365, "One Year!", "A full year of transformation. You're a champion!"),
)

# Days on which the plant illustration glows.
GLOW_DAYS = frozenset({7, 14, 30, 90})


def milestone_for_day(days: int) -> Milestone | None:
    # exact match: a threshold passed while the app was closed is not celebrated later
    for milestone in MILESTONES:
        if milestone.days == days:
            return milestone
    return None


def is_glow_day(days: int) -> bool:
    return days in GLOW_DAYS


class MilestoneTracker:
    """Celebrates each milestone at most once per installation.

    The shown-set lives in storage, so the guarantee survives restarts until
    ``StorageService.reset_shown_milestones`` is called.
    """

    def __init__(self, storage: StorageService) -> None:
        self.storage = storage
        self._listeners: list[Callable[[Milestone], None]] = []
        self._lock = asyncio.Lock()

    def subscribe(self, listener: Callable[[Milestone], None]) -> None:
        self._listeners.append(listener)

    async def check_for_milestone(self, days_clean: int) -> Milestone | None:
        milestone = milestone_for_day(days_clean)
        if milestone is None:
            return None
        async with self._lock:
            shown = await self.storage.get_shown_milestones()
            if milestone.days in shown:
                return None
            await self.storage.mark_milestone_as_shown(milestone.days)
        logger.info("Milestone reached: day %d", milestone.days)
        # already persisted, so a failing listener cannot make the celebration replay
        for listener in self._listeners:
            try:
                listener(milestone)
            except Exception:
                logger.exception("Milestone listener %r failed for day %d", listener, milestone.days)
        return milestone
