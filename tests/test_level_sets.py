import numpy as np
import pytest
import SimpleITK as sitk

from tissue_quantification.exceptions import AlgorithmFailure
from tissue_quantification.level_sets import (initialize_roi_by_fast_marching,
                                              segment_by_level_sets, signed_distance)
from tissue_quantification.parameters import AnalysisParameters, FOREGROUND

from conftest import distance_from, make_image

@pytest.fixture
def bright_disk():
    array = np.zeros((64, 64), dtype=np.int16)
    array[distance_from(array.shape, (32, 32)) <= 12] = 1000
    return make_image(array)

def test_fast_marching_reaches_pixels_within_stopping_time():
    speed = sitk.GetImageFromArray(np.ones((50, 50), dtype=np.float32))

    roi = sitk.GetArrayFromImage(initialize_roi_by_fast_marching(speed, [(25, 25)], 10.0))

    assert roi[25, 25] == FOREGROUND
    assert roi[25, 30] == FOREGROUND
    assert roi[25, 40] == 0
    assert set(np.unique(roi)) <= {0, FOREGROUND}

def test_signed_distance_is_negative_inside():
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[5:15, 5:15] = FOREGROUND
    distance = sitk.GetArrayFromImage(signed_distance(sitk.GetImageFromArray(mask)))

    assert distance[10, 10] < 0
    assert distance[0, 0] > 0

def test_level_set_segments_disk_around_seed(bright_disk):
    parameters = AnalysisParameters()
    mask, report = segment_by_level_sets(bright_disk, parameters, seeds=[(32, 32)])

    assert mask[32, 32]
    assert 0 < mask.sum() < mask.size
    assert report.elapsed_iterations <= parameters.maximum_iterations
    assert report.area_pixels == mask.sum()

def test_level_set_stops_at_iteration_cap(bright_disk):
    parameters = AnalysisParameters(maximum_iterations=5, maximum_rms_error=0.0)
    _, report = segment_by_level_sets(bright_disk, parameters, seeds=[(32, 32)])
    assert report.elapsed_iterations <= 5

def test_level_set_from_initial_region(bright_disk):
    roi = distance_from((64, 64), (32, 32)) <= 6
    mask, _ = segment_by_level_sets(bright_disk, AnalysisParameters(), roi=roi)
    assert mask[32, 32]

def test_exactly_one_initialization_required(bright_disk):
    with pytest.raises(ValueError):
        segment_by_level_sets(bright_disk, AnalysisParameters())
    with pytest.raises(ValueError):
        segment_by_level_sets(bright_disk, AnalysisParameters(), seeds=[(1, 1)],
                              roi=np.ones((64, 64), dtype=bool))

def test_empty_initial_region_is_an_algorithm_failure(bright_disk):
    with pytest.raises(AlgorithmFailure):
        segment_by_level_sets(bright_disk, AnalysisParameters(),
                              roi=np.zeros((64, 64), dtype=bool))
