import logging
from typing import Sequence

import numpy as np
import SimpleITK as sitk

from .data_structures import SmoothingMethod
from .parameters import (AnalysisParameters, DIFFUSION_ITERATIONS, DIFFUSION_TIMESTEP,
                         DIFFUSION_CONDUCTANCE, GAUSSIAN_SIGMA)

logger = logging.getLogger(__name__)

def calibrate_image(image: sitk.Image, slope: float, intercept: float) -> sitk.Image:
    """Convert raw scanner values to density.

    density = slope * raw / 1000 + intercept, rounded half up to the
    nearest integer.

    Args:
        image: Raw image
        slope: Calibration slope
        intercept: Calibration intercept

    Returns:
        Calibrated 16-bit signed image with the input's geometry
    """
    raw = sitk.GetArrayFromImage(image).astype(np.float64)
    density = np.floor(slope * (raw / 1000.0) + intercept + 0.5)
    density = np.clip(density, np.iinfo(np.int16).min, np.iinfo(np.int16).max)

    calibrated = sitk.GetImageFromArray(density.astype(np.int16))
    calibrated.CopyInformation(image)
    return calibrated

def smooth_image(image: sitk.Image, method: SmoothingMethod = SmoothingMethod.MEDIAN,
                 median_radius: int = 2) -> sitk.Image:
    """Smooth an image before clustering.

    Args:
        image: Input image
        method: Smoothing filter to apply
        median_radius: Radius of the median filter in pixels

    Returns:
        Smoothed image
    """
    if method == SmoothingMethod.MEDIAN:
        return sitk.Median(image, [int(median_radius)] * image.GetDimension())

    float_image = sitk.Cast(image, sitk.sitkFloat32)
    if method == SmoothingMethod.DIFFUSION:
        return sitk.CurvatureAnisotropicDiffusion(float_image,
                                                  timeStep=DIFFUSION_TIMESTEP,
                                                  conductanceParameter=DIFFUSION_CONDUCTANCE,
                                                  numberOfIterations=DIFFUSION_ITERATIONS)
    return sitk.SmoothingRecursiveGaussian(float_image, GAUSSIAN_SIGMA)

def compute_speed_image(image: sitk.Image, parameters: AnalysisParameters) -> sitk.Image:
    """Compute the edge potential image driving fast marching and level sets.

    The image is smoothed by curvature anisotropic diffusion, its gradient
    magnitude is computed with a Gaussian derivative and mapped through a
    sigmoid into [0, 1]. Speed is low on strong edges.

    Args:
        image: Density image
        parameters: Analysis parameters (sigma, sigmoid alpha and beta)

    Returns:
        Float speed image with the input's geometry
    """
    smoothed = smooth_image(image, SmoothingMethod.DIFFUSION)
    gradient = sitk.GradientMagnitudeRecursiveGaussian(smoothed,
                                                       sigma=parameters.smoothing_sigma)
    speed = sitk.Sigmoid(gradient,
                         alpha=parameters.sigmoid_alpha,
                         beta=parameters.sigmoid_beta,
                         outputMaximum=1.0,
                         outputMinimum=0.0)
    return sitk.Cast(speed, sitk.sitkFloat32)

def crop_image(image: sitk.Image, index: Sequence[int], size: Sequence[int]) -> sitk.Image:
    """Extract a rectangular region, keeping physical placement."""
    return sitk.RegionOfInterest(image, [int(s) for s in size], [int(i) for i in index])

def paste_labels(labels: np.ndarray, shape, index: Sequence[int]) -> np.ndarray:
    """Place a cropped label array back into a full-size array of AIR.

    Args:
        labels: Cropped label array (rows, cols)
        shape: Shape of the full-size array
        index: (x, y) index of the crop's first pixel

    Returns:
        Full-size label array
    """
    full = np.zeros(shape, dtype=labels.dtype)
    x, y = int(index[0]), int(index[1])
    full[y:y + labels.shape[0], x:x + labels.shape[1]] = labels
    return full
