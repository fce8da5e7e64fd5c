import numpy as np
import pytest

from tissue_quantification.data_structures import Region
from tissue_quantification.regions import (describe_regions, label_components, pad_bounding_box,
                                           rank_components, relabel_by_size, select_largest,
                                           select_region_by_centroid)

from conftest import make_image

def _two_blobs():
    mask = np.zeros((20, 20), dtype=bool)
    # 10 pixel diagonal-connected blob, encountered first in raster order
    mask[1:6, 1] = True
    for i in range(5):
        mask[6 + i, 2 + i] = True
    # 30 pixel blob
    mask[10:16, 12:17] = True
    return mask

def test_ranked_components_largest_first():
    ranked, sizes = relabel_by_size(_two_blobs())

    assert sizes.tolist() == [30, 10]
    assert np.count_nonzero(ranked == 1) == 30
    assert np.count_nonzero(ranked == 2) == 10

def test_diagonal_neighbors_are_connected():
    mask = np.eye(5, dtype=bool)
    _, num_components = label_components(mask)
    assert num_components == 1

def test_equal_sizes_keep_first_encountered_order():
    mask = np.zeros((10, 10), dtype=bool)
    mask[0:2, 0:2] = True
    mask[5:7, 5:7] = True
    labeled, n = label_components(mask)
    ranked, sizes = rank_components(labeled, n)

    assert sizes.tolist() == [4, 4]
    assert ranked[0, 0] == 1
    assert ranked[5, 5] == 2

def test_ranking_is_monotonic():
    rng = np.random.default_rng(7)
    mask = rng.random((60, 60)) > 0.7
    _, sizes = relabel_by_size(mask)
    assert np.all(sizes[:-1] >= sizes[1:])

def test_select_largest_of_empty_mask_is_empty():
    assert not select_largest(np.zeros((5, 5), dtype=bool)).any()

def test_describe_regions_reports_physical_geometry():
    labeled = np.zeros((10, 10), dtype=int)
    labeled[2:6, 4:8] = 1
    regions = describe_regions(labeled, make_image(np.zeros((10, 10)), spacing=(0.5, 0.5),
                                                    origin=(10.0, 0.0)))

    assert len(regions) == 1
    region = regions[0]
    assert region.pixel_count == 16
    assert region.physical_size == pytest.approx(4.0)
    assert region.centroid[0] == pytest.approx(10.0 + 5.5 * 0.5)
    assert region.centroid[1] == pytest.approx(3.5 * 0.5)
    assert region.bounding_box == (4, 2, 4, 4)
    assert region.equivalent_radius == pytest.approx(np.sqrt(4.0 / np.pi))

def test_small_region_is_never_selected_as_leg():
    labeled = np.zeros((100, 200), dtype=int)
    labeled[:, 0:50] = 1      # 5000 mm^2
    labeled[0:10, 150:155] = 2  # 50 mm^2, further right
    # Negative origin makes every physical x-centroid negative
    reference = make_image(np.zeros((100, 200)), origin=(-1000.0, 0.0))

    regions = describe_regions(labeled, reference)
    selected = select_region_by_centroid(regions, min_size=500.0)

    assert selected.label == 1
    assert selected.physical_size == pytest.approx(5000.0)

def test_rightmost_qualifying_region_is_selected():
    labeled = np.zeros((60, 200), dtype=int)
    labeled[0:30, 0:30] = 1
    labeled[0:30, 100:130] = 2
    regions = describe_regions(labeled, make_image(np.zeros((60, 200))))

    assert select_region_by_centroid(regions, min_size=500.0).label == 2

def test_no_qualifying_region_falls_back_to_first():
    regions = [Region(1, 4, 4.0, (1.0, 1.0), (1.0, 1.0), 1.1, (0, 0, 2, 2)),
               Region(2, 9, 9.0, (5.0, 1.0), (1.0, 1.0), 1.7, (4, 0, 3, 3))]
    assert select_region_by_centroid(regions, min_size=500.0).label == 1
    assert select_region_by_centroid([], min_size=500.0) is None

def test_pad_bounding_box_is_clamped_to_image():
    index, size = pad_bounding_box((1, 5, 10, 4), 2, (12, 20))
    assert index == [0, 3]
    assert size == [12, 8]
