import logging

import pytest

from tissue_quantification.data_structures import FatSeparation
from tissue_quantification.exceptions import ConfigurationError
from tissue_quantification.parameters import AnalysisParameters

def test_defaults():
    params = AnalysisParameters()
    assert params.density_slope == 1724.0
    assert params.density_intercept == -322.0
    assert params.median_radius == 2
    assert params.maximum_iterations == 250
    assert params.fat_separation == FatSeparation.CONNECTED_COMPONENTS
    assert params.leg_threshold == -200.0
    assert params.sigmoid_alpha == pytest.approx(-55.0 / 4.5)

def test_missing_file_uses_defaults(tmp_path):
    params = AnalysisParameters.from_file(str(tmp_path / "missing.txt"))
    assert params == AnalysisParameters()

def test_file_overrides(tmp_path):
    path = tmp_path / "PQCT_Analysis_Params.txt"
    path.write_text("# tuned for CT\n"
                    "LevelsetMaximumIterations 100\n"
                    "\n"
                    "LevelSetSigmoidBeta   40\n"
                    "SAT_IMFAT_SeparationAlgorithm 2\n"
                    "CT_LegThreshold -150\n")

    params = AnalysisParameters.from_file(str(path))

    assert params.maximum_iterations == 100
    assert isinstance(params.maximum_iterations, int)
    assert params.sigmoid_beta == 40.0
    assert params.fat_separation == FatSeparation.GAC
    assert params.leg_threshold == -150.0
    assert params.smoothing_sigma == 0.5

def test_malformed_line_is_rejected(tmp_path):
    path = tmp_path / "params.txt"
    path.write_text("SmoothingSigma\n")
    with pytest.raises(ConfigurationError):
        AnalysisParameters.from_file(str(path))

def test_non_numeric_value_is_rejected():
    with pytest.raises(ConfigurationError):
        AnalysisParameters.from_dict({"SmoothingSigma": "wide"})

def test_unknown_separation_algorithm_is_rejected():
    with pytest.raises(ConfigurationError):
        AnalysisParameters.from_dict({"SAT_IMFAT_SeparationAlgorithm": 3})

def test_unknown_key_is_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        params = AnalysisParameters.from_dict({"NotAParameter": 1, "median_radius": 3})
    assert params.median_radius == 3
    assert "NotAParameter" in caplog.text
