"""The three fixed output roles.

Output files always carry exactly these tracks, in this order:

  0  Main Theme: highest voice at each onset by default
  1  Chord:      default landing slot for everything else
  2  Base:       only reached by overflow (or ``bass_for_lowest``)
"""

from __future__ import annotations

from enum import IntEnum
from typing import Tuple


class TrackRole(IntEnum):
    MAIN_THEME = 0
    CHORD = 1
    BASE = 2

    @property
    def label(self) -> str:
        return ROLE_NAMES[self.value]


ROLE_NAMES: Tuple[str, str, str] = ("Main Theme", "Chord", "Base")
ROLE_COUNT = len(ROLE_NAMES)


def ranking_with_first(first: TrackRole) -> Tuple[TrackRole, ...]:
    """Return ``first`` followed by the other roles in fixed order."""

    return (first,) + tuple(role for role in TrackRole if role != first)
