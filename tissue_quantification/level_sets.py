import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import SimpleITK as sitk

from .exceptions import AlgorithmFailure
from .parameters import AnalysisParameters, FOREGROUND
from .preprocessing import compute_speed_image

logger = logging.getLogger(__name__)

@dataclass
class LevelSetReport:
    """Convergence summary of a level-set evolution"""
    elapsed_iterations: int
    rms_change: float
    area_pixels: int

def initialize_roi_by_fast_marching(speed: sitk.Image, seeds: Sequence[Sequence[int]],
                                    stopping_time: float) -> sitk.Image:
    """Grow an initial region from seed points by fast marching.

    Args:
        speed: Speed image
        seeds: Seed indices (x, y)
        stopping_time: Arrival time at which the front is stopped

    Returns:
        Binary region (0 / 255) of pixels reached before ``stopping_time``
    """
    fast_marching = sitk.FastMarchingImageFilter()
    for seed in seeds:
        # Trial point is the seed index followed by its initial arrival time
        fast_marching.AddTrialPoint([int(s) for s in seed] + [0])
    fast_marching.SetStoppingValue(stopping_time)
    arrival = fast_marching.Execute(speed)

    return sitk.BinaryThreshold(arrival,
                                lowerThreshold=0.0,
                                upperThreshold=stopping_time,
                                insideValue=FOREGROUND,
                                outsideValue=0)

def signed_distance(roi: sitk.Image) -> sitk.Image:
    """Squared signed distance to the region boundary, negative inside"""
    distance = sitk.SignedMaurerDistanceMap(sitk.Cast(roi > 0, sitk.sitkUInt8),
                                            insideIsPositive=False,
                                            squaredDistance=True,
                                            useImageSpacing=True)
    return sitk.Cast(distance, sitk.sitkFloat32)

def evolve_geodesic_active_contour(roi: sitk.Image, speed: sitk.Image,
                                   parameters: AnalysisParameters) -> Tuple[np.ndarray, LevelSetReport]:
    """Refine a region with a geodesic active contour.

    The signed distance of ``roi`` is evolved under propagation, curvature
    and advection forces until the RMS change drops below
    ``maximum_rms_error`` or ``maximum_iterations`` is reached.

    Args:
        roi: Initial binary region
        speed: Speed (edge potential) image
        parameters: Analysis parameters

    Returns:
        mask: Boolean array of the final region (level set <= 0)
        report: Iterations run and final RMS change
    """
    initial = signed_distance(roi)

    gac = sitk.GeodesicActiveContourLevelSetImageFilter()
    gac.SetPropagationScaling(parameters.propagation_scaling)
    gac.SetCurvatureScaling(parameters.curvature_scaling)
    gac.SetAdvectionScaling(parameters.advection_scaling)
    gac.SetMaximumRMSError(parameters.maximum_rms_error)
    gac.SetNumberOfIterations(int(parameters.maximum_iterations))
    level_set = gac.Execute(initial, sitk.Cast(speed, sitk.sitkFloat32))

    mask = sitk.GetArrayFromImage(level_set) <= 0
    report = LevelSetReport(elapsed_iterations=int(gac.GetElapsedIterations()),
                            rms_change=float(gac.GetRMSChange()),
                            area_pixels=int(mask.sum()))
    logger.info(f"# of iterations: {report.elapsed_iterations}, "
                f"RMS change: {report.rms_change:.6f}")
    return mask, report

def segment_by_level_sets(image: sitk.Image, parameters: AnalysisParameters,
                          seeds: Optional[Sequence[Sequence[int]]] = None,
                          roi: Optional[np.ndarray] = None) -> Tuple[np.ndarray, LevelSetReport]:
    """Segment a region by fast marching and geodesic active contours.

    Exactly one initialization must be given: ``seeds`` grows an initial
    region by fast marching, ``roi`` uses the given mask directly.

    Args:
        image: Density image
        parameters: Analysis parameters
        seeds: Seed indices (x, y)
        roi: Initial region mask (rows, cols)

    Returns:
        mask: Boolean array of the segmented region
        report: Level-set convergence summary
    """
    if (seeds is None) == (roi is None):
        raise ValueError("Exactly one of seeds or roi must be given")

    speed = compute_speed_image(image, parameters)

    if seeds is not None:
        initial_roi = initialize_roi_by_fast_marching(speed, seeds,
                                                      parameters.fast_marching_stopping_time)
    else:
        initial_roi = sitk.GetImageFromArray(np.where(roi, FOREGROUND, 0).astype(np.uint8))
        initial_roi.CopyInformation(image)

    if not sitk.GetArrayViewFromImage(initial_roi).any():
        raise AlgorithmFailure("Level-set initialization produced an empty region")

    return evolve_geodesic_active_contour(initial_roi, speed, parameters)
