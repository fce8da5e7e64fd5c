import numpy as np
import pytest

from tissue_quantification.compartments import total_area_mask
from tissue_quantification.data_structures import SubjectInfo, TissueClass, Workflow
from tissue_quantification.statistics import (StatisticsRecord, class_pixel_counts,
                                              compute_intensity_statistics,
                                              compute_shape_statistics, compute_statistics,
                                              log_header_info)

from conftest import make_image

def test_record_keeps_header_shape_intensity_order():
    record = StatisticsRecord()
    record.add_intensity("2-MUSCLE[Den.M.]", 50.0)
    record.add_shape("2-MUSCLE[Area(mm^2)]", 10.0)
    record.add_header("Subject_ID", "S01")
    record.add_shape("12-TOT_AR[Area(mm^2)]", 12.0)

    names = [entry.name for entry in record.entries]
    assert names == ["Subject_ID", "2-MUSCLE[Area(mm^2)]", "12-TOT_AR[Area(mm^2)]",
                     "2-MUSCLE[Den.M.]"]

def test_table_is_two_fixed_width_lines():
    record = StatisticsRecord()
    record.add_header("Subject_ID", "S01")
    record.add_shape("1-FAT[Area(mm^2)]", 4.0)
    record.add_intensity("1-FAT[Den.M.]", -20.12345)

    header, values, trailing = record.to_table().split("\n")
    assert trailing == ""
    assert len(header) == len(values) == 16 + 26 + 26
    assert header.startswith(" " * 6 + "Subject_ID")
    assert values.endswith("-20.123")
    assert values[16:42].strip() == "4.000"

def test_header_info_columns():
    record = StatisticsRecord()
    log_header_info(record, SubjectInfo(subject_id="S01", patient_number="42"),
                    Workflow.THIRTY_EIGHT_PCT_TIBIA)

    assert [e.name for e in record.header_entries] == [
        "Subject_ID", "Subject_#", "Subject_Name", "Birthdate",
        "Image_Origin", "Scan_Date", "Tibia_Site"]
    assert record["Subject_Name"] == "Anonymous"
    assert record["Tibia_Site"] == "38_PCT"

def test_shape_statistics_per_class():
    labels = np.zeros((20, 20), dtype=np.uint8)
    labels[2:6, 2:6] = TissueClass.FAT
    labels[10:20, 10:20] = TissueClass.MUSCLE
    image = make_image(np.zeros((20, 20)), spacing=(0.5, 0.5))
    record = StatisticsRecord()

    regions = compute_shape_statistics(labels, image, record)

    assert [r.label for r in regions] == [TissueClass.FAT, TissueClass.MUSCLE]
    assert record["1-FAT[Area(mm^2)]"] == pytest.approx(4.0)
    assert record["2-MUSCLE[Area(mm^2)]"] == pytest.approx(25.0)
    assert record["1-FAT[Cent.X]"] == pytest.approx(3.5 * 0.5)
    assert record["2-MUSCLE[Eq.Radius]"] == pytest.approx(np.sqrt(25.0 / np.pi))
    assert record["2-MUSCLE[Princ.Mom.1]"] == pytest.approx(record["2-MUSCLE[Princ.Mom.2]"])
    assert "0-AIR[Area(mm^2)]" not in record

def test_intensity_statistics_per_class():
    array = np.zeros((10, 10))
    array[0:5, :] = 100
    array[5:10, :] = -20
    array[5:10, 0:5] = 30
    labels = np.zeros((10, 10), dtype=np.uint8)
    labels[0:5, :] = TissueClass.CORT_BONE
    labels[5:10, :] = TissueClass.MUSCLE
    record = StatisticsRecord()

    results = compute_intensity_statistics(labels, make_image(array), record)

    assert results[TissueClass.CORT_BONE][0] == pytest.approx(100.0)
    assert results[TissueClass.CORT_BONE][1] == pytest.approx(0.0)
    assert results[TissueClass.MUSCLE][0] == pytest.approx(5.0)
    assert results[TissueClass.MUSCLE][1] > 0
    assert record["4-COR_BO[Den.M.]"] == pytest.approx(100.0)
    assert "2-MUSCLE[Den.SD.]" in record

def test_repeated_passes_append():
    labels = np.zeros((10, 10), dtype=np.uint8)
    labels[2:8, 2:8] = TissueClass.MUSCLE
    labels[4:6, 4:6] = TissueClass.FAT
    image = make_image(np.full((10, 10), 10))
    record = StatisticsRecord()

    compute_statistics(labels, image, record)
    count = len(record.entries)
    compute_statistics(total_area_mask(labels), image, record)

    assert len(record.entries) > count
    assert record["2-MUSCLE[Area(mm^2)]"] == pytest.approx(32.0)
    assert record["12-TOT_AR[Area(mm^2)]"] == pytest.approx(36.0)

def test_total_area_excludes_air():
    labels = np.zeros((6, 6), dtype=np.uint8)
    labels[1:3, 1:3] = TissueClass.FAT
    labels[4, 4] = TissueClass.CORT_BONE

    total = total_area_mask(labels)

    assert np.count_nonzero(total == TissueClass.TOT_AREA) == 5
    assert set(np.unique(total)) == {TissueClass.AIR, TissueClass.TOT_AREA}

def test_pixel_counts_sum_to_image_size():
    rng = np.random.default_rng(11)
    labels = rng.integers(0, len(TissueClass), size=(17, 23)).astype(np.uint8)
    counts = class_pixel_counts(labels)

    assert sum(counts.values()) == labels.size
    assert set(counts) == set(TissueClass)
