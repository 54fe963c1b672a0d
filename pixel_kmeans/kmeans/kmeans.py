"""
K-Means Clustering of Image Pixels

From-scratch Lloyd iteration over the pixels of a 3-channel image:
1. Seed K centers from K distinct random pixels
2. Assign each pixel to its nearest center under a pluggable metric
3. Move each center to the mean color of its pixels
4. Stop when the iteration cap is hit or the centers stop moving

Objective Function: J(V) = Σ Σ ||xn - vl||²
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union
import logging
import math
import numpy as np

from .distance import BaseDistance, DistanceMethod, create_distance
from .samples import Center, Sample


logger = logging.getLogger(__name__)


# ============================================================================
# Enums and Errors
# ============================================================================

class EmptyClusterPolicy(Enum):
    """What update_centers() does with a cluster that received no pixels."""
    KEEP = "keep"
    RESEED = "reseed"
    RAISE = "raise"


class DegenerateClusterError(RuntimeError):
    """Raised when a cluster ends up empty under EmptyClusterPolicy.RAISE."""

    def __init__(self, cluster: int, iteration: int):
        self.cluster = cluster
        self.iteration = iteration
        super().__init__(
            f"Cluster {cluster} received no samples (iteration {iteration})"
        )


# ============================================================================
# Configuration
# ============================================================================

@dataclass
class KMeansConfig:
    """
    Configuration for the clustering engine.

    Attributes:
        max_iteration: Maximum number of assign/update cycles
        convergence_radius: Stop once summed squared center movement is <= this
        random_state: Seed for the engine's random generator
        distance: Distance metric used for label assignment
        empty_cluster: Policy for clusters that receive no pixels
        max_seed_draws: Cap on random draws while seeding (None = automatic)
    """
    max_iteration: int = 100
    convergence_radius: float = 1.0
    random_state: Optional[int] = 42
    distance: DistanceMethod = DistanceMethod.EUCLIDEAN
    empty_cluster: EmptyClusterPolicy = EmptyClusterPolicy.KEEP
    max_seed_draws: Optional[int] = None

    def __post_init__(self):
        """Validate configuration parameters."""
        self.distance = DistanceMethod(self.distance)
        self.empty_cluster = EmptyClusterPolicy(self.empty_cluster)

        if self.max_iteration < 1:
            raise ValueError(f"max_iteration must be >= 1, got {self.max_iteration}")
        if self.convergence_radius < 0:
            raise ValueError(
                f"convergence_radius must be >= 0, got {self.convergence_radius}"
            )
        if self.max_seed_draws is not None and self.max_seed_draws < 1:
            raise ValueError(f"max_seed_draws must be >= 1, got {self.max_seed_draws}")


# ============================================================================
# Results
# ============================================================================

@dataclass
class KMeansResult:
    """
    Results from a clustering run.

    All arrays and lists are copies; mutating them does not affect the engine.
    """
    samples: List[Sample]
    """One Sample per pixel in row-major order, labels in [0, K)."""

    centers: List[Center]
    """Final centers, in cluster-index order."""

    labels: np.ndarray
    """Cluster label for each pixel. Shape: (H*W,)"""

    centroids: np.ndarray
    """Center colors. Shape: (K, 3)"""

    inertia: float
    """Objective function J(V) over color channels."""

    n_iter: int
    """Number of assign/update cycles performed."""

    converged: bool
    """Whether the centers settled within the convergence radius."""

    image_shape: Tuple[int, int]
    """(H, W) of the clustered grid."""

    def reshape_labels(self, shape: Optional[Tuple[int, int]] = None) -> np.ndarray:
        """
        Reshape flat labels to 2D image shape.

        Args:
            shape: (H, W) image dimensions. Defaults to the clustered grid.

        Returns:
            labels_2d: (H, W) cluster labels
        """
        return self.labels.reshape(shape or self.image_shape)


# ============================================================================
# Seeding and Convergence Helpers
# ============================================================================

def _default_seed_draws(n_samples: int) -> int:
    # Coupon-collector tail: P(more than n(ln n + c) draws) <= e^-c
    return int(math.ceil(n_samples * (math.log(n_samples) + 20)))


def get_random_index(
    n_samples: int,
    n: int,
    rng: np.random.Generator,
    max_draws: Optional[int] = None
) -> List[int]:
    """
    Draw n distinct indices from [0, n_samples) by rejection.

    Uniform integers are drawn and collected in a set until it holds n
    members.

    Args:
        n_samples: Size of the index range
        n: Number of distinct indices wanted
        rng: Random generator to draw from
        max_draws: Total draws allowed before giving up

    Returns:
        indices: Sorted list of n distinct indices

    Raises:
        ValueError: If n is not in [1, n_samples]
        RuntimeError: If max_draws is exhausted first
    """
    if n < 1 or n > n_samples:
        raise ValueError(f"Cannot draw {n} distinct indices from {n_samples} samples")

    if max_draws is None:
        max_draws = _default_seed_draws(n_samples)

    chosen = set()
    draws = 0
    while len(chosen) < n:
        if draws >= max_draws:
            raise RuntimeError(
                f"Drew {draws} indices but found only {len(chosen)} of {n} distinct ones"
            )
        batch = min(n - len(chosen), max_draws - draws)
        chosen.update(rng.integers(0, n_samples, size=batch).tolist())
        draws += batch

    logger.debug("Seeded %d centers after %d draws", n, draws)
    return sorted(chosen)


def check_convergence(
    current_centers: np.ndarray,
    last_centers: Optional[np.ndarray]
) -> float:
    """
    Summed squared distance between each center and its previous value.

    Always measured over the color channels with the plain squared
    distance. Returns inf when there is no previous center set.
    """
    if last_centers is None:
        return math.inf

    diff = current_centers - last_centers
    return float(np.sum(diff * diff))


# ============================================================================
# Clustering Engine
# ============================================================================

class ClusteringEngine:
    """
    K-Means engine over the pixels of one image.

    The engine owns its samples, centers and random generator for its whole
    lifetime. Results are handed out as copies.

    Example:
        >>> engine = ClusteringEngine(image, k=5)  # image shape: (H, W, 3)
        >>> result = engine.run(max_iteration=50, smallest_convergence_radius=1.0)
        >>> labels_2d = result.reshape_labels()
        >>> segmented = create_segmented_image(result)

        >>> # Color + position clustering
        >>> config = KMeansConfig(distance=DistanceMethod.WEIGHTED)
        >>> engine = ClusteringEngine(hsv_image, k=8, config=config)
    """

    def __init__(
        self,
        image: np.ndarray,
        k: int,
        config: Optional[KMeansConfig] = None,
        distance: Optional[BaseDistance] = None,
        random_state: Union[None, int, np.random.Generator] = None
    ):
        """
        Build the sample set from an image grid.

        Args:
            image: Grid of shape (H, W, 3), any numeric dtype
            k: Number of clusters, 1 <= k <= H*W
            config: Configuration. If None, uses defaults.
            distance: Metric instance, overrides config.distance
            random_state: Seed or Generator, overrides config.random_state

        Raises:
            ValueError: If image is not (H, W, 3) or k is out of range
        """
        self.config = config or KMeansConfig()

        pixels = np.array(image, dtype=np.float64)
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"image must have shape (H, W, 3), got {pixels.shape}")

        h, w = pixels.shape[:2]
        n_samples = h * w
        if k < 1 or k > n_samples:
            raise ValueError(f"k must be in [1, {n_samples}], got {k}")

        self.k = int(k)
        self.image_shape = (h, w)
        if distance is None:
            distance = create_distance(self.config.distance)
        self.distance = distance

        if random_state is None:
            random_state = self.config.random_state
        self._rng = np.random.default_rng(random_state)

        # Samples, row-major
        self._features = extract_pixels(pixels)
        rows, cols = np.divmod(np.arange(n_samples), w)
        self._positions = np.column_stack((rows, cols))
        self._labels = np.full(n_samples, -1, dtype=np.int64)

        # Centers
        self._center_features = np.zeros((self.k, 3))
        self._center_positions = np.zeros((self.k, 2), dtype=np.int64)
        self._last_center_features: Optional[np.ndarray] = None

        self._initialized = False
        self._assigned = False
        self._iteration = 0
        self.n_iter = 0
        self.converged = False

    @property
    def n_samples(self) -> int:
        return len(self._features)

    # ------------------------------------------------------------------
    # Algorithm steps
    # ------------------------------------------------------------------

    def initialize_centers(self) -> List[int]:
        """
        Seed every center from a distinct random sample.

        Center i takes the feature (and position) of the i-th smallest
        drawn index. Labels are reset to unassigned.

        Returns:
            indices: The sample indices the centers were copied from
        """
        indices = get_random_index(
            self.n_samples, self.k, self._rng, self.config.max_seed_draws
        )

        self._center_features = self._features[indices].copy()
        self._center_positions = self._positions[indices].copy()
        self._last_center_features = None
        self._labels.fill(-1)

        self._initialized = True
        self._assigned = False
        self._iteration = 0
        self.n_iter = 0
        self.converged = False
        return indices

    def update_labels(self) -> None:
        """
        Assign every sample to its nearest center.

        Ties go to the lowest center index.

        Raises:
            RuntimeError: If centers were not initialized
        """
        if not self._initialized:
            raise RuntimeError("Must call initialize_centers() before update_labels()")

        distances = np.empty((self.n_samples, self.k))
        for idx in range(self.k):
            center_position = None
            if self.distance.uses_position:
                center_position = self._center_positions[idx]
            distances[:, idx] = self.distance.to_center(
                self._features,
                self._positions,
                self._center_features[idx],
                center_position
            )

        self._labels = np.argmin(distances, axis=1)
        self._assigned = True

    def update_centers(self) -> None:
        """
        Move each center to the mean color of its samples.

        The previous centers are kept for the convergence test. Center
        positions are not re-meaned. Empty clusters follow
        config.empty_cluster.

        Raises:
            RuntimeError: If no assignment pass has run yet
            DegenerateClusterError: On an empty cluster under RAISE
        """
        if not self._assigned:
            raise RuntimeError("Must call update_labels() before update_centers()")

        self._last_center_features = self._center_features.copy()

        for idx in range(self.k):
            mask = self._labels == idx
            if np.any(mask):
                self._center_features[idx] = self._features[mask].mean(axis=0)
            else:
                self._handle_empty_cluster(idx)

    def _handle_empty_cluster(self, idx: int) -> None:
        policy = self.config.empty_cluster

        if policy == EmptyClusterPolicy.RAISE:
            raise DegenerateClusterError(idx, self._iteration)

        if policy == EmptyClusterPolicy.RESEED:
            sample = int(self._rng.integers(0, self.n_samples))
            self._center_features[idx] = self._features[sample]
            self._center_positions[idx] = self._positions[sample]
            logger.warning(
                "Cluster %d is empty, re-seeded from sample %d", idx, sample
            )
        else:
            logger.warning("Cluster %d is empty, keeping previous center", idx)

    def is_terminate(
        self,
        current_iter: int,
        max_iteration: int,
        smallest_convergence_radius: float
    ) -> bool:
        """
        Check terminate conditions.

        Returns:
            True when the iteration cap is reached or the summed squared
            center movement is within smallest_convergence_radius
        """
        if current_iter >= max_iteration:
            return True

        movement = check_convergence(self._center_features, self._last_center_features)
        return movement <= smallest_convergence_radius

    def run(
        self,
        max_iteration: Optional[int] = None,
        smallest_convergence_radius: Optional[float] = None
    ) -> KMeansResult:
        """
        Execute the k-means algorithm.

        1. Initialize k centers randomly
        2. Assign each sample to its nearest center
        3. Recompute centers
        4. Check terminate condition, return to step 2 if not fulfilled

        Args:
            max_iteration: Iteration cap. Defaults to config.max_iteration.
            smallest_convergence_radius: Movement threshold. Defaults to
                                         config.convergence_radius.

        Returns:
            result: KMeansResult

        Raises:
            ValueError: If max_iteration < 1 or the radius is negative
        """
        if max_iteration is None:
            max_iteration = self.config.max_iteration
        if smallest_convergence_radius is None:
            smallest_convergence_radius = self.config.convergence_radius

        if max_iteration < 1:
            raise ValueError(f"max_iteration must be >= 1, got {max_iteration}")
        if smallest_convergence_radius < 0:
            raise ValueError(
                f"smallest_convergence_radius must be >= 0, got {smallest_convergence_radius}"
            )

        self.initialize_centers()

        while not self.is_terminate(self._iteration, max_iteration, smallest_convergence_radius):
            self._iteration += 1
            self.update_labels()
            self.update_centers()

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Iteration %d, center movement: %.6f",
                    self._iteration,
                    check_convergence(self._center_features, self._last_center_features)
                )

        self.n_iter = self._iteration
        self.converged = (
            check_convergence(self._center_features, self._last_center_features)
            <= smallest_convergence_radius
        )

        result = self.get_result()
        logger.info(
            "K-means finished: k=%d, iterations=%d, converged=%s, inertia=%.2f",
            self.k, result.n_iter, result.converged, result.inertia
        )
        return result

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _require_assigned(self):
        if not self._assigned:
            raise RuntimeError("Must call run() before accessing results")

    @property
    def labels(self) -> np.ndarray:
        """Copy of the current labels, shape (N,)."""
        self._require_assigned()
        return self._labels.copy()

    @property
    def centroids(self) -> np.ndarray:
        """Copy of the current center colors, shape (K, 3)."""
        if not self._initialized:
            raise RuntimeError("Must call run() before accessing centroids")
        return self._center_features.copy()

    def compute_inertia(self) -> float:
        """
        Compute k-means objective function J(V).

        J(V) = Σ(n=1 to c) Σ(k=1 to cn) ||xn - vl||²

        Returns:
            inertia: Sum of squared color distances to the assigned center
        """
        self._require_assigned()
        diff = self._features - self._center_features[self._labels]
        return float(np.sum(diff * diff))

    def get_result_samples(self) -> List[Sample]:
        """Fresh Sample records, row-major."""
        return [
            Sample(row, col, tuple(feature), label)
            for (row, col), feature, label in zip(
                self._positions.tolist(),
                self._features.tolist(),
                self._labels.tolist()
            )
        ]

    def get_result_centers(self) -> List[Center]:
        """Fresh Center records. Positions are only set for position-aware metrics."""
        centers = []
        for feature, (row, col) in zip(
            self._center_features.tolist(), self._center_positions.tolist()
        ):
            if self.distance.uses_position:
                centers.append(Center(tuple(feature), row, col))
            else:
                centers.append(Center(tuple(feature)))
        return centers

    def get_result(self) -> KMeansResult:
        """Snapshot of the current state as a KMeansResult."""
        self._require_assigned()
        return KMeansResult(
            samples=self.get_result_samples(),
            centers=self.get_result_centers(),
            labels=self.labels,
            centroids=self.centroids,
            inertia=self.compute_inertia(),
            n_iter=self.n_iter,
            converged=self.converged,
            image_shape=self.image_shape
        )


# Public name used by callers of the clustering module
KMeans = ClusteringEngine


# ============================================================================
# Helper Functions
# ============================================================================

def extract_pixels(image: np.ndarray) -> np.ndarray:
    """
    Extract pixel features from image.

    Converts 3D image array to 2D feature matrix, row-major.

    Args:
        image: Image, shape (H, W, 3)

    Returns:
        pixels: Float features, shape (H*W, 3)
    """
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(
            f"image must have shape (H, W, 3), got {image.shape}"
        )

    h, w, c = image.shape
    return image.reshape(h * w, c).astype(np.float64)


def create_segmented_image(result: KMeansResult) -> np.ndarray:
    """
    Create segmented image with mean color per cluster.

    Each pixel is replaced by its cluster's centroid color.

    Args:
        result: Clustering result

    Returns:
        segmented: Image with K colors, shape (H, W, 3)
    """
    h, w = result.image_shape
    return result.centroids[result.labels].reshape(h, w, 3)


def cluster_images_batch(
    images: Dict[str, np.ndarray],
    n_clusters: Union[int, Dict[str, int]],
    config: Optional[KMeansConfig] = None
) -> Dict[str, KMeansResult]:
    """
    Aplica K-Means a un batch de imágenes.

    Cada imagen se agrupa con su propio motor; todos comparten la misma
    configuración (y por tanto la misma semilla).

    Args:
        images: Diccionario {image_id: numpy_array} con shape (H, W, 3).
        n_clusters: K común para todas las imágenes, o diccionario
                    {image_id: k} con los mismos IDs que images.
        config: Configuración compartida. Si None, usa valores por defecto.

    Returns:
        Diccionario {image_id: KMeansResult}.

    Raises:
        ValueError: Si images y n_clusters tienen IDs diferentes.

    Example:
        >>> results = cluster_images_batch({'a': img_a, 'b': img_b}, {'a': 3, 'b': 5})
        >>> segmented = create_segmented_image(results['a'])
    """
    if isinstance(n_clusters, dict):
        image_ids = set(images.keys())
        k_ids = set(n_clusters.keys())
        if image_ids != k_ids:
            raise ValueError(
                "Los diccionarios images y n_clusters deben tener los mismos IDs. "
                f"Faltan en n_clusters: {image_ids - k_ids}; "
                f"faltan en images: {k_ids - image_ids}"
            )

    results = {}
    for image_id, image in images.items():
        k = n_clusters[image_id] if isinstance(n_clusters, dict) else n_clusters
        engine = ClusteringEngine(image, k, config)
        results[image_id] = engine.run()

    return results
