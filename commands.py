"""
Comment text to direction parsing
"""

from typing import Optional
from snake_core import Direction

# Checked in this order; the first keyword found anywhere in the text wins
PRIORITY = (Direction.UP, Direction.DOWN, Direction.LEFT, Direction.RIGHT)

INVALID = "invalid"


def parse_command(text) -> Optional[Direction]:
    """
    Find a direction keyword in free text.
    Substring match, so "pump it up!" is UP. Returns None when nothing matches.
    """
    if not isinstance(text, str):
        return None

    lower_text = text.lower().strip()
    for direction in PRIORITY:
        if direction.value in lower_text:
            return direction
    return None


def command_label(direction: Optional[Direction]) -> str:
    return direction.value if direction else INVALID
