import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import SimpleITK as sitk

from .data_structures import FatSeparation, Region, TissueClass
from .level_sets import segment_by_level_sets
from .morphology import (close_by_majority_vote, erode_mask, erode_trim, mark_interior)
from .parameters import AnalysisParameters, BOUNDING_BOX_PADDING, LEG_SIZE_THRESHOLD
from .regions import (describe_regions, label_components, pad_bounding_box,
                      relabel_by_size, select_largest, select_region_by_centroid)

logger = logging.getLogger(__name__)

def separate_fat_by_components(labels: np.ndarray, image: sitk.Image,
                               parameters: AnalysisParameters):
    """Largest FAT component is subcutaneous, the rest intermuscular"""
    ranked, sizes = relabel_by_size(labels == TissueClass.FAT)
    labels[ranked == 1] = TissueClass.SUB_FAT
    labels[ranked > 1] = TissueClass.IM_FAT
    logger.info(f"Found {len(sizes)} fat components")

def separate_fat_by_level_sets(labels: np.ndarray, image: sitk.Image,
                               parameters: AnalysisParameters):
    """Separate fat by a geodesic active contour grown from the eroded leg.

    The contour settles on the muscle boundary. FAT and MUSCLE outside it
    become SUB_FAT, FAT inside it becomes IM_FAT.
    """
    roi = erode_mask(labels != TissueClass.AIR)
    inner, _ = segment_by_level_sets(image, parameters, roi=roi)
    outer = ~inner
    labels[outer & np.isin(labels, [TissueClass.FAT, TissueClass.MUSCLE])] = TissueClass.SUB_FAT
    labels[inner & (labels == TissueClass.FAT)] = TissueClass.IM_FAT

FAT_SEPARATION_STRATEGIES = {
    FatSeparation.CONNECTED_COMPONENTS: separate_fat_by_components,
    FatSeparation.GAC: separate_fat_by_level_sets,
}

def separate_fat(labels: np.ndarray, image: sitk.Image, parameters: AnalysisParameters):
    """Split FAT into SUB_FAT and IM_FAT, then clean up subcutaneous fat.

    The strategy is chosen by ``parameters.fat_separation``. Subcutaneous
    fat is closed by majority voting and the skin is trimmed.
    """
    strategy = FAT_SEPARATION_STRATEGIES[FatSeparation(parameters.fat_separation)]
    logger.info(f"Using {FatSeparation(parameters.fat_separation).name} for SAT/IMFAT separation")
    strategy(labels, image, parameters)

    closed = close_by_majority_vote(labels, TissueClass.SUB_FAT)
    trimmed = erode_trim(labels)
    logger.info(f"Subcutaneous fat: {closed} pixels closed, {trimmed} skin pixels removed")

def merge_fat(labels: np.ndarray):
    """Fold SUB_FAT and IM_FAT back into FAT"""
    labels[np.isin(labels, [TissueClass.SUB_FAT, TissueClass.IM_FAT])] = TissueClass.FAT

def identify_bone_marrow(labels: np.ndarray, cortex: Optional[np.ndarray] = None) -> int:
    """Label the interior of cortical bone as BONE_INT

    Args:
        labels: Label map, modified in place
        cortex: Cortical bone mask (default: CORT_BONE pixels of ``labels``).
            Usually the classifier output, before fat cleanup.
    """
    if cortex is None:
        cortex = labels == TissueClass.CORT_BONE
    count = mark_interior(labels, cortex, TissueClass.BONE_INT)
    logger.info(f"Identified {count} bone marrow pixels")
    return count

def remove_fibula(labels: np.ndarray) -> int:
    """Keep only the largest bone component (the tibia).

    Bone pixels (CORT_BONE through BONE_INT) of every smaller component
    become AIR.

    Returns:
        Number of removed pixels
    """
    bone = (labels >= TissueClass.CORT_BONE) & (labels <= TissueClass.BONE_INT)
    ranked, sizes = relabel_by_size(bone)
    if len(sizes) > 1:
        logger.info(f"Removing {len(sizes) - 1} bone components smaller than the tibia")
    removed = ranked > 1
    labels[removed] = TissueClass.AIR
    return int(removed.sum())

def keep_classes(labels: np.ndarray, classes: Sequence[TissueClass]):
    """Set every pixel not in ``classes`` to AIR"""
    labels[~np.isin(labels, [int(c) for c in classes])] = TissueClass.AIR

def isolate_largest_bone(labels: np.ndarray) -> np.ndarray:
    """Coarse 4% bone mask.

    The largest component of TRAB_BONE through H_CORT_BONE, with its
    holes filled, is labeled BONE_4PCT and everything else AIR.

    Returns:
        Boolean bone mask
    """
    bone = (labels >= TissueClass.TRAB_BONE) & (labels <= TissueClass.H_CORT_BONE)
    labels[:] = np.where(select_largest(bone), TissueClass.BONE_4PCT, TissueClass.AIR)
    mark_interior(labels, labels == TissueClass.BONE_4PCT, TissueClass.BONE_4PCT)
    return labels == TissueClass.BONE_4PCT

def median_seed(mask: np.ndarray) -> Optional[Tuple[int, int]]:
    """Seed index (x, y) at the median pixel position of a mask.

    Each coordinate is the median of the pixel coordinates along its axis;
    for an even count the two middle values are averaged and rounded down.
    """
    ys, xs = np.nonzero(mask)
    if xs.size == 0:
        return None

    def _median(coords):
        coords = np.sort(coords)
        middle = coords.size // 2
        if coords.size % 2:
            return int(coords[middle])
        return int((int(coords[middle - 1]) + int(coords[middle])) // 2)

    return _median(xs), _median(ys)

def select_area_fraction(mask: np.ndarray, reference: sitk.Image, fraction: float,
                         tissue: TissueClass) -> np.ndarray:
    """Innermost fraction of a region.

    Pixels are ordered by their signed squared distance to the region
    boundary, deepest first, ties in raster order, and the first
    ``int(n * fraction)`` are labeled ``tissue``.

    Args:
        mask: Region mask
        reference: Image providing spacing
        fraction: Fraction of the region's pixels to keep
        tissue: Label of the selected pixels

    Returns:
        Label array with ``tissue`` on the selected pixels and AIR elsewhere
    """
    selected = np.full(mask.shape, TissueClass.AIR, dtype=np.uint8)
    inside = np.flatnonzero(mask)
    if inside.size == 0:
        return selected

    mask_image = sitk.GetImageFromArray(mask.astype(np.uint8))
    mask_image.CopyInformation(reference)
    distance = sitk.GetArrayFromImage(
        sitk.SignedMaurerDistanceMap(mask_image,
                                     insideIsPositive=False,
                                     squaredDistance=True,
                                     useImageSpacing=True))

    order = np.argsort(distance.ravel()[inside], kind='stable')
    keep = inside[order[:int(inside.size * fraction)]]
    selected.ravel()[keep] = tissue
    return selected

def total_area_mask(cluster_labels: np.ndarray, restrict: Optional[np.ndarray] = None) -> np.ndarray:
    """TOT_AREA on every non-AIR pixel of the classifier output"""
    total = np.where(cluster_labels != TissueClass.AIR,
                     TissueClass.TOT_AREA, TissueClass.AIR).astype(np.uint8)
    if restrict is not None:
        total[~restrict] = TissueClass.AIR
    return total

def overlay_labels(base: np.ndarray, top: np.ndarray) -> np.ndarray:
    """Pixelwise maximum of two label arrays"""
    return np.maximum(base, top)

def mask_outside(labels: np.ndarray, mask: np.ndarray):
    """Set every pixel outside ``mask`` to AIR"""
    labels[~mask] = TissueClass.AIR

def select_one_leg(image: sitk.Image, threshold: float,
                   min_size: float = LEG_SIZE_THRESHOLD,
                   padding: int = BOUNDING_BOX_PADDING) -> Optional[Tuple[Region, np.ndarray, list, list]]:
    """Find the leg to analyze in a CT slice showing both legs.

    Pixels at or above ``threshold`` are grouped into 8-connected
    candidates; the candidate with the largest physical x-centroid among
    those of at least ``min_size`` mm^2 is selected.

    Args:
        image: Density image
        threshold: Leg foreground threshold
        min_size: Minimum candidate size (mm^2)
        padding: Margin added around the bounding box

    Returns:
        region: Selected candidate
        mask: Boolean mask of the selected candidate
        index, size: Padded crop box
        or None if no pixel reaches the threshold
    """
    array = sitk.GetArrayFromImage(image)
    labeled, num_components = label_components(array >= threshold)
    logger.info(f"Found {num_components} leg candidates")

    regions = describe_regions(labeled, image)
    region = select_region_by_centroid(regions, min_size)
    if region is None:
        return None

    index, size = pad_bounding_box(region.bounding_box, padding, image.GetSize())
    logger.info(f"Selected leg candidate {region.label} "
                f"({region.physical_size:.1f} mm^2), crop index {index}, size {size}")
    return region, labeled == region.label, index, size
