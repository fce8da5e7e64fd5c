import numpy as np
import pytest
import SimpleITK as sitk

def make_image(array, spacing=(1.0, 1.0), origin=(0.0, 0.0)):
    """2D int16 SimpleITK image from a (rows, cols) array"""
    image = sitk.GetImageFromArray(np.asarray(array, dtype=np.int16))
    image.SetSpacing(spacing)
    image.SetOrigin(origin)
    return image

def distance_from(shape, center):
    """Euclidean distance of every pixel to center (x, y)"""
    yy, xx = np.mgrid[0:shape[0], 0:shape[1]]
    return np.sqrt((xx - center[0]) ** 2 + (yy - center[1]) ** 2)

@pytest.fixture
def mid_thigh_phantom():
    """Thigh slice: selected leg on the right, a second leg on the left, a table blob.

    Leg centered at (100, 60): fat ring 30 < r <= 40, muscle, a small
    intermuscular fat blob at (120, 60), femur cortex 5 < r <= 10 and
    marrow r <= 5.
    """
    shape = (120, 160)
    array = np.full(shape, -940, dtype=np.int16)
    d = distance_from(shape, (100, 60))
    array[d <= 40] = -20
    array[d <= 30] = 50
    array[distance_from(shape, (120, 60)) <= 3] = -20
    array[d <= 10] = 1200
    array[d <= 5] = -20
    array[distance_from(shape, (25, 60)) <= 15] = 50
    array[100:104, 150:154] = 50
    return make_image(array)

def _tibia_leg(shape=(100, 100)):
    array = np.full(shape, -400, dtype=np.int16)
    d = distance_from(shape, (50, 50))
    array[d <= 40] = -22
    array[d <= 32] = 72
    tibia = distance_from(shape, (45, 50))
    array[tibia <= 12] = 993
    array[tibia <= 6] = -22
    array[distance_from(shape, (72, 50)) <= 5] = 993
    return array

@pytest.fixture
def tibia_38_phantom():
    """Lower leg with a hollow tibia at (45, 50) and a fibula at (72, 50)"""
    return make_image(_tibia_leg())

@pytest.fixture
def tibia_66_phantom():
    """Lower leg as at 38%, plus an intermuscular fat blob at (50, 75)"""
    array = _tibia_leg()
    array[distance_from(array.shape, (50, 75)) <= 3] = -22
    return make_image(array)

@pytest.fixture
def tibia_4_phantom():
    """Distal tibia: uniform bone disk r <= 14 at (40, 40) inside soft tissue"""
    shape = (80, 80)
    array = np.full(shape, -400, dtype=np.int16)
    d = distance_from(shape, (40, 40))
    array[d <= 35] = -22
    array[d <= 28] = 72
    array[d <= 14] = 500
    return make_image(array)
