import logging
from typing import Dict, Sequence, Tuple

import numpy as np

from .data_structures import TissueClass, Workflow
from .parameters import KMEANS_MAX_ITERATIONS, RESPLIT_MEANS

logger = logging.getLogger(__name__)

# Prior cluster means and the tissue class each cluster maps to.
# The low bone cluster is folded into cortical bone except at the 4% site.
PRIOR_MEANS: Dict[Workflow, Tuple[Tuple[float, ...], Tuple[TissueClass, ...]]] = {
    Workflow.FOUR_PCT_TIBIA: (
        (-400.0, -22.0, 72.0, 200.0, 500.0, 750.0),
        (TissueClass.AIR, TissueClass.FAT, TissueClass.MUSCLE,
         TissueClass.TRAB_BONE, TissueClass.CORT_BONE, TissueClass.H_CORT_BONE)),
    Workflow.THIRTY_EIGHT_PCT_TIBIA: (
        (-400.0, -22.0, 72.0, 514.0, 993.0),
        (TissueClass.AIR, TissueClass.FAT, TissueClass.MUSCLE,
         TissueClass.CORT_BONE, TissueClass.CORT_BONE)),
    Workflow.SIXTY_SIX_PCT_TIBIA: (
        (-400.0, -22.0, 72.0, 514.0, 993.0),
        (TissueClass.AIR, TissueClass.FAT, TissueClass.MUSCLE,
         TissueClass.CORT_BONE, TissueClass.CORT_BONE)),
    Workflow.MID_THIGH: (
        (-940.0, -20.0, 50.0, 700.0, 1200.0),
        (TissueClass.AIR, TissueClass.FAT, TissueClass.MUSCLE,
         TissueClass.CORT_BONE, TissueClass.CORT_BONE)),
}

def assign_clusters(values: np.ndarray, means: np.ndarray) -> np.ndarray:
    """Index of the nearest mean for every value.

    Distance is the absolute difference; ties go to the lower index.
    """
    values = np.asarray(values, dtype=np.float64)
    distances = np.abs(values[..., np.newaxis] - np.asarray(means, dtype=np.float64))
    return np.argmin(distances, axis=-1)

def estimate_means(samples: np.ndarray, initial_means: Sequence[float],
                   max_iterations: int = KMEANS_MAX_ITERATIONS) -> Tuple[np.ndarray, int]:
    """Lloyd's k-means on scalar samples, seeded with fixed prior means.

    The iteration runs on the distinct sample values weighted by their
    counts, which gives the same means as running on every sample. A
    cluster that receives no samples keeps its previous mean.

    Args:
        samples: Intensity samples
        initial_means: Prior means, one per cluster
        max_iterations: Iteration cap

    Returns:
        means: Final cluster means
        iterations: Number of iterations run
    """
    means = np.asarray(initial_means, dtype=np.float64).copy()
    values, counts = np.unique(np.asarray(samples).ravel(), return_counts=True)
    if values.size == 0:
        return means, 0
    values = values.astype(np.float64)

    iterations = 0
    for iterations in range(1, max_iterations + 1):
        assignment = assign_clusters(values, means)
        new_means = means.copy()
        for k in range(len(means)):
            members = assignment == k
            total = counts[members].sum()
            if total > 0:
                new_means[k] = np.dot(values[members], counts[members]) / total
        shift = np.max(np.abs(new_means - means))
        means = new_means
        if shift == 0:
            break
    return means, iterations

class TissueClassifier:
    """Nearest-mean tissue classifier with k-means estimated means"""

    def __init__(self, initial_means: Sequence[float], class_map: Sequence[TissueClass]):
        """Initialize the classifier

        Args:
            initial_means: Prior cluster means
            class_map: Tissue class assigned to each cluster
        """
        if len(initial_means) != len(class_map):
            raise ValueError("initial_means and class_map must have the same length")
        self.initial_means = np.asarray(initial_means, dtype=np.float64)
        self.class_map = np.asarray([int(c) for c in class_map], dtype=np.uint8)
        self.means = self.initial_means.copy()

    @classmethod
    def for_workflow(cls, workflow: Workflow) -> 'TissueClassifier':
        means, class_map = PRIOR_MEANS[workflow]
        return cls(means, class_map)

    def fit(self, samples: np.ndarray) -> np.ndarray:
        """Estimate cluster means from samples"""
        self.means, iterations = estimate_means(samples, self.initial_means)
        logger.info(f"K-means converged after {iterations} iterations, "
                    f"means: {np.round(self.means, 3).tolist()}")
        return self.means

    def classify(self, values: np.ndarray) -> np.ndarray:
        """Tissue class of each value using the current means"""
        return self.class_map[assign_clusters(values, self.means)]

    def fit_classify(self, values: np.ndarray) -> np.ndarray:
        self.fit(values)
        return self.classify(values)

def reclassify_subset(labels: np.ndarray, intensities: np.ndarray,
                      classes: Tuple[TissueClass, TissueClass] = (TissueClass.IM_FAT,
                                                                  TissueClass.MUSCLE),
                      initial_means: Sequence[float] = RESPLIT_MEANS) -> int:
    """Re-split pixels of two classes by a dedicated two-class clustering.

    Only pixels currently labeled with one of ``classes`` are sampled and
    relabeled; the label array is modified in place.

    Args:
        labels: Label array, modified in place
        intensities: Intensity array with the same shape
        classes: The two classes to re-split, ordered as initial_means
        initial_means: Prior means of the two classes

    Returns:
        Number of pixels whose label changed
    """
    subset = np.isin(labels, [int(c) for c in classes])
    if not subset.any():
        logger.warning(f"No {'/'.join(c.name for c in classes)} pixels to re-split, skipping")
        return 0

    classifier = TissueClassifier(initial_means, classes)
    samples = intensities[subset]
    new_labels = classifier.fit_classify(samples)
    changed = int(np.count_nonzero(labels[subset] != new_labels))
    labels[subset] = new_labels
    logger.info(f"Re-split {subset.sum()} pixels, {changed} relabeled")
    return changed
