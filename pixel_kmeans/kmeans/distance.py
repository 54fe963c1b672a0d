"""
Distance Metrics for Pixel Clustering

Two policies are provided:
1. Squared Euclidean: color channels only
2. Weighted: per-channel color weights plus a spatial term

The weighted metric fuses color similarity and spatial proximity into a single
scalar, biasing the clustering toward compact regions of similar color:

    d(x, v) = Σ w_c (x_c - v_c)² + s · ((r_x - r_v)² + (c_x - c_v)²)

Default weights (2.3, 0.4, 1.0) and s = 0.05 were tuned for a
hue/saturation/value-like color space.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Sequence, Union
import numpy as np

from .samples import Center, Sample


DEFAULT_CHANNEL_WEIGHTS = (2.3, 0.4, 1.0)
DEFAULT_SPATIAL_WEIGHT = 0.05


# ============================================================================
# Enums
# ============================================================================

class DistanceMethod(Enum):
    """Available distance metrics."""
    EUCLIDEAN = "euclidean"
    WEIGHTED = "weighted"


# ============================================================================
# Abstract Base Class (Interface)
# ============================================================================

class BaseDistance(ABC):
    """
    Abstract base class for distance metrics between samples and centers.

    Implementations must be pure and deterministic: the engine relies on
    comparing distances computed in separate passes.
    """

    uses_position: bool = False
    """Whether the metric reads sample and center positions."""

    @abstractmethod
    def to_center(
        self,
        features: np.ndarray,
        positions: np.ndarray,
        center_feature: np.ndarray,
        center_position: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Distance from every sample to one center.

        Args:
            features: Sample colors, shape (N, 3)
            positions: Sample (row, col) coordinates, shape (N, 2)
            center_feature: Center color, shape (3,)
            center_position: Center (row, col), shape (2,). Only read
                             by position-aware metrics.

        Returns:
            distances: Shape (N,)
        """
        pass

    def __call__(self, center: Center, sample: Sample) -> float:
        """Distance between a single center and a single sample."""
        center_position = None
        if center.position is not None:
            center_position = np.asarray(center.position, dtype=np.float64)

        distances = self.to_center(
            np.asarray([sample.feature], dtype=np.float64),
            np.asarray([[sample.row, sample.col]], dtype=np.float64),
            np.asarray(center.feature, dtype=np.float64),
            center_position
        )
        return float(distances[0])

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# ============================================================================
# Implementations
# ============================================================================

class SquaredEuclideanDistance(BaseDistance):
    """Sum of squared per-channel differences. Positions are ignored."""

    uses_position = False

    def to_center(
        self,
        features: np.ndarray,
        positions: np.ndarray,
        center_feature: np.ndarray,
        center_position: Optional[np.ndarray] = None
    ) -> np.ndarray:
        diff = features - center_feature
        return np.sum(diff * diff, axis=1)


class WeightedDistance(BaseDistance):
    """
    Weighted color distance plus a spatial term.

    Example:
        >>> metric = WeightedDistance()
        >>> d = metric(Center((0.0, 0.0, 0.0), row=1, col=2),
        ...            Sample(0, 0, (1.0, 2.0, 3.0)))  # ~13.15
    """

    uses_position = True

    def __init__(
        self,
        channel_weights: Sequence[float] = DEFAULT_CHANNEL_WEIGHTS,
        spatial_weight: float = DEFAULT_SPATIAL_WEIGHT
    ):
        """
        Initialize weighted metric.

        Args:
            channel_weights: One non-negative weight per color channel
            spatial_weight: Non-negative weight on squared row/col offsets

        Raises:
            ValueError: If weights have the wrong length, are negative or not finite
        """
        weights = np.asarray(channel_weights, dtype=np.float64)
        if weights.shape != (3,):
            raise ValueError(
                f"channel_weights must have 3 values, got shape {weights.shape}"
            )
        if not np.all(np.isfinite(weights)) or np.any(weights < 0):
            raise ValueError(
                f"channel_weights must be finite and >= 0, got {tuple(weights.tolist())}"
            )
        if not np.isfinite(spatial_weight) or spatial_weight < 0:
            raise ValueError(f"spatial_weight must be finite and >= 0, got {spatial_weight}")

        self.channel_weights = weights
        self.spatial_weight = float(spatial_weight)

    def to_center(
        self,
        features: np.ndarray,
        positions: np.ndarray,
        center_feature: np.ndarray,
        center_position: Optional[np.ndarray] = None
    ) -> np.ndarray:
        if center_position is None:
            raise ValueError("WeightedDistance requires a center position")

        diff = features - center_feature
        color = np.sum(self.channel_weights * diff * diff, axis=1)

        offset = positions - center_position
        spatial = self.spatial_weight * np.sum(offset * offset, axis=1)

        return color + spatial

    def __repr__(self) -> str:
        return (
            f"WeightedDistance(channel_weights={tuple(self.channel_weights.tolist())}, "
            f"spatial_weight={self.spatial_weight})"
        )


# ============================================================================
# Helper Functions
# ============================================================================

def calc_square_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Plain squared Euclidean distance between two feature vectors."""
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(np.dot(diff, diff))


# ============================================================================
# Factory Function
# ============================================================================

def create_distance(method: Union[DistanceMethod, str], **kwargs) -> BaseDistance:
    """
    Factory function to create a distance metric.

    Args:
        method: DistanceMethod or its string value
        **kwargs: Passed to the metric constructor (WeightedDistance only)

    Returns:
        metric: BaseDistance instance

    Raises:
        ValueError: If method is unknown, or kwargs are given for EUCLIDEAN

    Example:
        >>> metric = create_distance('weighted', spatial_weight=0.1)
    """
    method = DistanceMethod(method)

    if method == DistanceMethod.EUCLIDEAN:
        if kwargs:
            raise ValueError(f"EUCLIDEAN distance takes no parameters, got {sorted(kwargs)}")
        return SquaredEuclideanDistance()
    elif method == DistanceMethod.WEIGHTED:
        return WeightedDistance(**kwargs)
    else:
        raise ValueError(f"Unknown distance method: {method}")
