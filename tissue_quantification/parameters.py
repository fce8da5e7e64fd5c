import os
import logging
from dataclasses import dataclass, fields
from typing import Dict

from .data_structures import FatSeparation
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PARAMETER_FILE = "PQCT_Analysis_Params.txt"

# Fixed algorithm constants
DIFFUSION_ITERATIONS = 20
DIFFUSION_TIMESTEP = 0.0325
DIFFUSION_CONDUCTANCE = 2.0
GAUSSIAN_SIGMA = DIFFUSION_TIMESTEP * DIFFUSION_ITERATIONS
STRUCTURING_RADIUS = 2
VOTING_RADIUS = 5
VOTING_MAJORITY = 5
VOTING_ITERATIONS = 5
LEG_SIZE_THRESHOLD = 500.0  # mm^2
BOUNDING_BOX_PADDING = 2
KMEANS_MAX_ITERATIONS = 200
RESPLIT_MEANS = (-20.0, 50.0)
FOREGROUND = 255

# Parameter file keys, in file order
PARAMETER_KEYS = {
    'AUtoDensitySlope': 'density_slope',
    'AUtoDensityIntercept': 'density_intercept',
    'SmoothingSigma': 'smoothing_sigma',
    'MedianFilterRadius': 'median_radius',
    'LevelSetSigmoidBeta': 'sigmoid_beta',
    'SigmoidBetaAlphaRatio': 'sigmoid_beta_alpha_ratio',
    'FastMarchingStoppingTime': 'fast_marching_stopping_time',
    'LevelSetPropagationScalingFactor': 'propagation_scaling',
    'LevelSetCurvatureScalingFactor': 'curvature_scaling',
    'LevelSetAdvectionScalingFactor': 'advection_scaling',
    'LevelsetMaximumIterations': 'maximum_iterations',
    'LevelsetMaximumRMSError': 'maximum_rms_error',
    'SAT_IMFAT_SeparationAlgorithm': 'fat_separation',
    'CT_LegThreshold': 'leg_threshold',
}

@dataclass
class AnalysisParameters:
    """Tunable parameters of the tissue analysis

    Parameters:
        density_slope, density_intercept: float = 1724.0, -322.0
            Calibration of raw scanner values to density,
            density = slope * raw / 1000 + intercept.

        smoothing_sigma: float = 0.5 (mm)
            Sigma of the Gaussian derivative used for the gradient magnitude
            feeding the level-set speed image.

        median_radius: int = 2 (pixels)
            Radius of the median filter applied before clustering.

        sigmoid_beta, sigmoid_beta_alpha_ratio: float = 55, 4.5
            Sigmoid mapping of gradient magnitude to speed;
            alpha = -beta / ratio.
            - Larger beta: only stronger edges slow the front down

        fast_marching_stopping_time: float = 10.0
            Arrival time at which the fast marching front is cut off to form
            the initial level-set region.

        propagation_scaling, curvature_scaling, advection_scaling:
            float = 0.5, 0.1, 1.5
            Weights of the geodesic active contour forces.
            - Larger propagation: contour inflates further past weak edges
            - Larger curvature: smoother boundary

        maximum_iterations: int = 250
        maximum_rms_error: float = 0.0015
            Stopping criteria of the level-set evolution.

        fat_separation: FatSeparation = CONNECTED_COMPONENTS
            Subcutaneous/intermuscular fat separation strategy.

        leg_threshold: float = -200
            Density above which a CT pixel belongs to a leg candidate.
    """
    density_slope: float = 1724.0
    density_intercept: float = -322.0
    smoothing_sigma: float = 0.5
    median_radius: int = 2
    sigmoid_beta: float = 55.0
    sigmoid_beta_alpha_ratio: float = 4.5
    fast_marching_stopping_time: float = 10.0
    propagation_scaling: float = 0.5
    curvature_scaling: float = 0.1
    advection_scaling: float = 1.5
    maximum_iterations: int = 250
    maximum_rms_error: float = 0.0015
    fat_separation: FatSeparation = FatSeparation.CONNECTED_COMPONENTS
    leg_threshold: float = -200.0

    @property
    def sigmoid_alpha(self) -> float:
        return -self.sigmoid_beta / self.sigmoid_beta_alpha_ratio

    @classmethod
    def from_dict(cls, params_dict: Dict[str, object]) -> 'AnalysisParameters':
        """Create parameters from a dictionary of overrides

        Keys may be either parameter file keys or attribute names.

        Args:
            params_dict: Mapping of parameter name to value

        Returns:
            AnalysisParameters with overrides applied

        Raises:
            ConfigurationError: If a value is not numeric or the fat
                separation strategy is unknown
        """
        base_params = cls()
        attributes = {f.name: f.type for f in fields(cls)}
        for key, value in params_dict.items():
            name = PARAMETER_KEYS.get(key, key)
            if name not in attributes:
                logger.warning(f"Ignoring unknown parameter: {key}")
                continue
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Parameter {key} is not numeric: {value!r}")

            if name == 'fat_separation':
                try:
                    setattr(base_params, name, FatSeparation(int(number)))
                except ValueError:
                    raise ConfigurationError(
                        f"Unknown SAT/IMFAT separation algorithm: {value!r}")
            elif attributes[name] is int:
                setattr(base_params, name, int(number))
            else:
                setattr(base_params, name, number)
        return base_params

    @classmethod
    def from_file(cls, path: str = DEFAULT_PARAMETER_FILE) -> 'AnalysisParameters':
        """Read parameters from a whitespace separated 'key value' file

        A missing file is not an error; compiled defaults are used instead.

        Args:
            path: Path to the parameter file

        Returns:
            AnalysisParameters
        """
        if not os.path.exists(path):
            logger.info(f"Cannot open {path}, will use default parameter values.")
            return cls()

        overrides = {}
        with open(path) as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                tokens = line.split()
                if len(tokens) != 2:
                    raise ConfigurationError(
                        f"Malformed line {line_number} in {path}: {line!r}")
                overrides[tokens[0]] = tokens[1]

        params = cls.from_dict(overrides)
        for key, name in PARAMETER_KEYS.items():
            logger.debug(f"{key}: {getattr(params, name)}")
        return params
