"""
K-Means clustering module for image pixels.

Provides the clustering engine, its configuration and results, and the
distance metrics used for label assignment.

Example:
    >>> from pixel_kmeans.kmeans import ClusteringEngine, KMeansConfig
    >>>
    >>> engine = ClusteringEngine(image, k=5, config=KMeansConfig(random_state=0))
    >>> result = engine.run(max_iteration=50, smallest_convergence_radius=0.5)
    >>> print(result.n_iter, result.converged)
"""

from .samples import Sample, Center
from .distance import (
    DistanceMethod,
    BaseDistance,
    SquaredEuclideanDistance,
    WeightedDistance,
    calc_square_distance,
    create_distance
)
from .kmeans import (
    EmptyClusterPolicy,
    DegenerateClusterError,
    KMeansConfig,
    KMeansResult,
    ClusteringEngine,
    KMeans,
    get_random_index,
    check_convergence,
    extract_pixels,
    create_segmented_image,
    cluster_images_batch
)

__all__ = [
    # Data model
    'Sample',
    'Center',
    # Distance metrics
    'DistanceMethod',
    'BaseDistance',
    'SquaredEuclideanDistance',
    'WeightedDistance',
    'calc_square_distance',
    'create_distance',
    # Engine
    'EmptyClusterPolicy',
    'DegenerateClusterError',
    'KMeansConfig',
    'KMeansResult',
    'ClusteringEngine',
    'KMeans',
    'get_random_index',
    'check_convergence',
    # Helpers
    'extract_pixels',
    'create_segmented_image',
    'cluster_images_batch'
]
