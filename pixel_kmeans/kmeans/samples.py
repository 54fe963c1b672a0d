"""
Sample and Center records returned by the clustering engine.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


Feature = Tuple[float, float, float]


@dataclass
class Sample:
    """
    One input pixel.

    Attributes:
        row: Pixel row in the source grid
        col: Pixel column in the source grid
        feature: 3-channel color value as floats
        label: Index of the assigned center, -1 while unassigned
    """
    row: int
    col: int
    feature: Feature
    label: int = -1


@dataclass
class Center:
    """
    One cluster representative.

    Attributes:
        feature: Mean 3-channel color of the cluster
        row: Seed row, only set for position-aware metrics
        col: Seed column, only set for position-aware metrics
    """
    feature: Feature
    row: Optional[int] = None
    col: Optional[int] = None

    @property
    def position(self) -> Optional[Tuple[int, int]]:
        if self.row is None or self.col is None:
            return None
        return (self.row, self.col)
