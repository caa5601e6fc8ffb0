"""Game lifecycle worker: persists clock-driven open/close transitions."""

import logging

from matka.services.game_service import sync_game_days
from matka.workers._state import set_synced

logger = logging.getLogger("matka.game_lifecycle")

STATE_KEY = "game_lifecycle"


async def run_game_lifecycle() -> int:
    """One scheduler tick. Returns how many game days moved forward.

    Status reads never depend on this job; it only records transition
    timestamps on the game day documents.
    """
    moved = await sync_game_days()
    if moved:
        logger.info("Game lifecycle tick: %d game days advanced", moved)
    else:
        logger.debug("Game lifecycle tick: no transitions")
    await set_synced(STATE_KEY, last_moved=moved)
    return moved
