"""
Team assignment for detected players.

The projected court position of each player is drawn in its team colour. Only
a placeholder classifier exists for now: every player gets the same colour.

TODO: Implement JERSEY_COLOR by clustering mean HSV colour inside each
player box into two teams.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Tuple

from .data_structures import BoundingBox, Image

Color = Tuple[int, int, int]


class TeamClassifierType(Enum):
    DUMMY = "dummy"
    JERSEY_COLOR = "jersey_color"


class TeamClassifier(Protocol):
    def classify(self, frame: Image, box: BoundingBox) -> Color:
        """
        Return the BGR colour of the team the player inside ``box`` belongs to.
        """
        ...


@dataclass
class DummyTeamClassifier:
    """
    Assigns every player to a single team.
    """

    color: Color = (0, 0, 255)

    def classify(self, frame: Image, box: BoundingBox) -> Color:
        return self.color


def create_team_classifier(kind: TeamClassifierType | str = TeamClassifierType.DUMMY) -> TeamClassifier:
    """
    Factory for creating a team classifier.
    """
    kind = TeamClassifierType(kind)
    if kind is TeamClassifierType.DUMMY:
        return DummyTeamClassifier()
    raise NotImplementedError(f"Team classifier {kind.value!r} is not implemented yet.")
