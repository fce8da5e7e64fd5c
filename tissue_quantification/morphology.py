import logging

import numpy as np
import SimpleITK as sitk

from .data_structures import TissueClass
from .parameters import (STRUCTURING_RADIUS, VOTING_RADIUS, VOTING_MAJORITY,
                         VOTING_ITERATIONS)

logger = logging.getLogger(__name__)

def _to_image(mask: np.ndarray) -> sitk.Image:
    return sitk.GetImageFromArray(np.asarray(mask, dtype=np.uint8))

def dilate_mask(mask: np.ndarray, radius: int = STRUCTURING_RADIUS) -> np.ndarray:
    """Binary dilation with a ball (disk) structuring element"""
    dilated = sitk.BinaryDilate(_to_image(mask > 0), [radius] * mask.ndim,
                                sitk.sitkBall, 0.0, 1.0)
    return sitk.GetArrayFromImage(dilated) > 0

def erode_mask(mask: np.ndarray, radius: int = STRUCTURING_RADIUS) -> np.ndarray:
    """Binary erosion with a ball (disk) structuring element"""
    eroded = sitk.BinaryErode(_to_image(mask > 0), [radius] * mask.ndim,
                              sitk.sitkBall, 0.0, 1.0)
    return sitk.GetArrayFromImage(eroded) > 0

def fill_holes(mask: np.ndarray) -> np.ndarray:
    """Fill interior holes of a binary mask"""
    filled = sitk.GrayscaleFillhole(_to_image(mask > 0))
    return sitk.GetArrayFromImage(filled) > 0

def dilate_correct(labels: np.ndarray, radius: int = STRUCTURING_RADIUS,
                   source: TissueClass = TissueClass.SUB_FAT,
                   target: TissueClass = TissueClass.IM_FAT) -> int:
    """Partial volume correction by dilation.

    Pixels labeled ``target`` inside the dilated ``source`` mask become
    ``source``. No other class is touched.

    Args:
        labels: Label array, modified in place
        radius: Structuring element radius
        source: Class whose mask is dilated
        target: Class that may be relabeled

    Returns:
        Number of relabeled pixels
    """
    dilated = dilate_mask(labels == source, radius)
    relabel = dilated & (labels == target)
    labels[relabel] = source
    count = int(relabel.sum())
    logger.info(f"Partial volume correction relabeled {count} {target.name} pixels")
    return count

def erode_trim(labels: np.ndarray, radius: int = STRUCTURING_RADIUS) -> int:
    """Remove skin from subcutaneous fat.

    SUB_FAT pixels outside the eroded whole-leg mask revert to AIR.

    Returns:
        Number of trimmed pixels
    """
    leg = erode_mask(labels != TissueClass.AIR, radius)
    trim = (labels == TissueClass.SUB_FAT) & ~leg
    labels[trim] = TissueClass.AIR
    return int(trim.sum())

def close_by_majority_vote(labels: np.ndarray,
                           tissue: TissueClass = TissueClass.SUB_FAT) -> int:
    """Fill gaps and holes in one class by iterative majority voting.

    Pixels switched on by the vote are relabeled ``tissue``.

    Returns:
        Number of relabeled pixels
    """
    mask = labels == tissue
    closed = sitk.VotingBinaryIterativeHoleFilling(_to_image(mask),
                                                   radius=[VOTING_RADIUS] * labels.ndim,
                                                   maximumNumberOfIterations=VOTING_ITERATIONS,
                                                   majorityThreshold=VOTING_MAJORITY,
                                                   foregroundValue=1.0,
                                                   backgroundValue=0.0)
    added = (sitk.GetArrayFromImage(closed) > 0) & ~mask
    labels[added] = tissue
    return int(added.sum())

def mark_interior(labels: np.ndarray, mask: np.ndarray,
                  tissue: TissueClass = TissueClass.BONE_INT) -> int:
    """Relabel the holes enclosed by a mask.

    Pixels outside ``mask`` but inside its hole-filled version become
    ``tissue``.

    Returns:
        Number of relabeled pixels
    """
    interior = fill_holes(mask) & ~(mask > 0)
    labels[interior] = tissue
    return int(interior.sum())
