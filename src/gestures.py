# gestures.py
# Input handling: maps a swipe or key press to a move direction.

from typing import Optional
import logging

from core import DIRECTION

logger = logging.getLogger(__name__)

MIN_SWIPE_DISTANCE = 30

KEY_DIRECTIONS = {
    "arrowup": DIRECTION.UP,
    "arrowdown": DIRECTION.DOWN,
    "arrowleft": DIRECTION.LEFT,
    "arrowright": DIRECTION.RIGHT,
    "w": DIRECTION.UP,
    "s": DIRECTION.DOWN,
    "a": DIRECTION.LEFT,
    "d": DIRECTION.RIGHT,
}


def direction_from_swipe(dx: float, dy: float, min_distance: float = MIN_SWIPE_DISTANCE) -> Optional[DIRECTION]:
    """
    Decodes a swipe given as the delta between touch start and touch end.
    Screen coordinates: positive dx is rightwards, positive dy is downwards.
    Args:
        dx (float): Horizontal travel.
        dy (float): Vertical travel.
        min_distance (float): Travel needed on at least one axis to count as a swipe.
    Returns:
        Optional[DIRECTION]: The direction of the dominant axis, or None for a tap.
    """
    if abs(dx) < min_distance and abs(dy) < min_distance:
        logger.debug("Ignoring short swipe (%s, %s)", dx, dy)
        return None
    if abs(dx) > abs(dy):
        return DIRECTION.RIGHT if dx > 0 else DIRECTION.LEFT
    return DIRECTION.DOWN if dy > 0 else DIRECTION.UP


def direction_from_key(key: str) -> Optional[DIRECTION]:
    """Arrow keys (browser key names) and WASD; anything else is None."""
    return KEY_DIRECTIONS.get(key.strip().lower())
