import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import SimpleITK as sitk
from scipy.ndimage import label

from .data_structures import Region
from .parameters import LEG_SIZE_THRESHOLD

logger = logging.getLogger(__name__)

# 8-connectivity in 2D
FULL_CONNECTIVITY = np.ones((3, 3), dtype=int)

def label_components(mask: np.ndarray) -> Tuple[np.ndarray, int]:
    """Label 8-connected components of a binary mask.

    Component ids follow the raster order in which components are first
    encountered.
    """
    labeled, num_components = label(np.asarray(mask) > 0, structure=FULL_CONNECTIVITY)
    return labeled, num_components

def rank_components(labeled: np.ndarray, num_components: int) -> Tuple[np.ndarray, np.ndarray]:
    """Relabel components by decreasing pixel count.

    Id 1 is the largest component. Equal sized components keep their
    original relative order.

    Args:
        labeled: Component id array, 0 is background
        num_components: Number of components in ``labeled``

    Returns:
        ranked: Relabeled component array
        sizes: Pixel count of each ranked component (sizes[0] is id 1)
    """
    if num_components == 0:
        return np.zeros_like(labeled), np.zeros(0, dtype=np.int64)

    counts = np.bincount(labeled.ravel(), minlength=num_components + 1)[1:]
    order = np.argsort(-counts, kind='stable')
    mapping = np.zeros(num_components + 1, dtype=labeled.dtype)
    mapping[order + 1] = np.arange(1, num_components + 1)
    return mapping[labeled], counts[order]

def relabel_by_size(mask: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Label and rank the components of a binary mask in one step."""
    labeled, num_components = label_components(mask)
    ranked, sizes = rank_components(labeled, num_components)
    logger.debug(f"Found {num_components} components, sizes: {sizes[:5].tolist()}")
    return ranked, sizes

def select_largest(mask: np.ndarray) -> np.ndarray:
    """Mask of the largest connected component (empty if there is none)."""
    ranked, _ = relabel_by_size(mask)
    return ranked == 1

def describe_regions(labeled: np.ndarray, reference: sitk.Image) -> List[Region]:
    """Shape attributes of every labeled region, in physical units.

    Args:
        labeled: Region id array, 0 is background
        reference: Image providing spacing and origin

    Returns:
        Regions in ascending label order
    """
    label_image = sitk.GetImageFromArray(np.asarray(labeled, dtype=np.uint32))
    label_image.CopyInformation(reference)

    shape_stats = sitk.LabelShapeStatisticsImageFilter()
    shape_stats.Execute(label_image)

    regions = []
    for region_label in shape_stats.GetLabels():
        regions.append(Region(
            label=int(region_label),
            pixel_count=int(shape_stats.GetNumberOfPixels(region_label)),
            physical_size=shape_stats.GetPhysicalSize(region_label),
            centroid=tuple(shape_stats.GetCentroid(region_label)),
            principal_moments=tuple(shape_stats.GetPrincipalMoments(region_label)),
            equivalent_radius=shape_stats.GetEquivalentSphericalRadius(region_label),
            bounding_box=tuple(shape_stats.GetBoundingBox(region_label)),
        ))
    return regions

def select_region_by_centroid(regions: Sequence[Region],
                              min_size: float = LEG_SIZE_THRESHOLD) -> Optional[Region]:
    """Select the region with the largest physical x-centroid.

    Regions smaller than ``min_size`` cannot be selected. If no region
    reaches the floor, the first region is returned.

    Args:
        regions: Candidate regions
        min_size: Minimum physical size (mm^2)

    Returns:
        Selected region, or None if there are no regions
    """
    if not regions:
        logger.warning("No candidate regions to select from")
        return None

    candidates = [r for r in regions if r.physical_size >= min_size]
    for r in regions:
        logger.debug(f"Region {r.label}: size {r.physical_size:.1f} mm^2, "
                     f"centroid {np.round(r.centroid, 2).tolist()}")
    if not candidates:
        logger.warning(f"No region larger than {min_size} mm^2, using region {regions[0].label}")
        return regions[0]

    best = candidates[0]
    for r in candidates[1:]:
        if r.centroid[0] > best.centroid[0]:
            best = r
    return best

def pad_bounding_box(bounding_box: Sequence[int], padding: int,
                     image_size: Sequence[int]) -> Tuple[List[int], List[int]]:
    """Grow a bounding box by a margin, clamped to the image.

    Args:
        bounding_box: (x, y, size_x, size_y)
        padding: Margin in pixels on every side
        image_size: Image size (size_x, size_y)

    Returns:
        index: Start index of the padded box
        size: Size of the padded box
    """
    dim = len(image_size)
    index = []
    size = []
    for d in range(dim):
        start = max(0, int(bounding_box[d]) - padding)
        stop = min(int(image_size[d]), int(bounding_box[d]) + int(bounding_box[d + dim]) + padding)
        index.append(start)
        size.append(stop - start)
    return index, size
