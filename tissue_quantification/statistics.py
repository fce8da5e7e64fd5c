import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Union

import numpy as np
import SimpleITK as sitk

from .data_structures import Region, SubjectInfo, TissueClass, Workflow
from .regions import describe_regions

logger = logging.getLogger(__name__)

HEADER_TAG_WIDTH = 16
COLUMN_WIDTH = 26
FLOAT_PRECISION = 3

Value = Union[str, int, float]

@dataclass
class Entry:
    """One column of the statistics row"""
    name: str
    value: Value
    width: int = COLUMN_WIDTH

    def formatted_value(self) -> str:
        if isinstance(self.value, (float, np.floating)):
            return f"{self.value:.{FLOAT_PRECISION}f}"
        return str(self.value)

@dataclass
class StatisticsRecord:
    """Ordered, append-only statistics row of one subject.

    The row is the subject header columns, then every shape column, then
    every intensity column, each group in the order it was added.
    """
    header_entries: List[Entry] = field(default_factory=list)
    shape_entries: List[Entry] = field(default_factory=list)
    intensity_entries: List[Entry] = field(default_factory=list)

    def add_header(self, name: str, value: Value, width: int = HEADER_TAG_WIDTH):
        self.header_entries.append(Entry(name, value, width))

    def add_shape(self, name: str, value: Value):
        self.shape_entries.append(Entry(name, value))

    def add_intensity(self, name: str, value: Value):
        self.intensity_entries.append(Entry(name, value))

    @property
    def entries(self) -> List[Entry]:
        return self.header_entries + self.shape_entries + self.intensity_entries

    def as_dict(self) -> Dict[str, Value]:
        return {entry.name: entry.value for entry in self.entries}

    def __getitem__(self, name: str) -> Value:
        for entry in self.entries:
            if entry.name == name:
                return entry.value
        raise KeyError(name)

    def __contains__(self, name: str) -> bool:
        return any(entry.name == name for entry in self.entries)

    def to_table(self) -> str:
        """Two-line fixed width table: column names, then values"""
        header = "".join(f"{e.name:>{e.width}}" for e in self.entries)
        values = "".join(f"{e.formatted_value():>{e.width}}" for e in self.entries)
        return header + "\n" + values + "\n"

def column_name(label: int, metric: str) -> str:
    """Column name of a per-class metric, e.g. '1-FAT[Area(mm^2)]'"""
    return f"{label}-{TissueClass(label).short_name}[{metric}]"

def log_header_info(record: StatisticsRecord, subject: SubjectInfo, workflow: Workflow):
    """Add subject and scan information columns"""
    record.add_header("Subject_ID", subject.subject_id)
    record.add_header("Subject_#", subject.patient_number)
    record.add_header("Subject_Name", subject.patient_name, width=COLUMN_WIDTH)
    record.add_header("Birthdate", subject.birth_date)
    record.add_header("Image_Origin", subject.slice_origin)
    record.add_header("Scan_Date", subject.scan_date)
    record.add_header("Tibia_Site", workflow.site)

def _label_image(labels: np.ndarray, reference: sitk.Image) -> sitk.Image:
    label_image = sitk.GetImageFromArray(np.asarray(labels, dtype=np.uint8))
    label_image.CopyInformation(reference)
    return label_image

def compute_shape_statistics(labels: np.ndarray, reference: sitk.Image,
                             record: StatisticsRecord) -> List[Region]:
    """Area, centroid, principal moments and equivalent radius per class.

    AIR is background and is not reported.

    Args:
        labels: Label array
        reference: Image providing spacing and origin
        record: Record the columns are appended to

    Returns:
        Regions, one per class present, in ascending label order
    """
    regions = describe_regions(labels, reference)
    logger.info("Tissue type\t\tArea (mm^2)\tCentroid coordinates")
    for region in regions:
        logger.info(f"{region.label} [{TissueClass(region.label).short_name}]\t\t"
                    f"{region.physical_size:.3f}\t\t{np.round(region.centroid, 3).tolist()}")
        record.add_shape(column_name(region.label, "Area(mm^2)"), float(region.physical_size))
        record.add_shape(column_name(region.label, "Cent.X"), float(region.centroid[0]))
        record.add_shape(column_name(region.label, "Cent.Y"), float(region.centroid[1]))
        record.add_shape(column_name(region.label, "Princ.Mom.1"), float(region.principal_moments[0]))
        record.add_shape(column_name(region.label, "Princ.Mom.2"), float(region.principal_moments[1]))
        record.add_shape(column_name(region.label, "Eq.Radius"), float(region.equivalent_radius))
    return regions

def compute_intensity_statistics(labels: np.ndarray, intensity_image: sitk.Image,
                                 record: StatisticsRecord) -> Dict[int, Tuple[float, float]]:
    """Density mean and standard deviation per class.

    Args:
        labels: Label array
        intensity_image: Density image the statistics are measured on
        record: Record the columns are appended to

    Returns:
        Mapping of label to (mean, standard deviation)
    """
    intensity_stats = sitk.LabelIntensityStatisticsImageFilter()
    intensity_stats.Execute(_label_image(labels, intensity_image), intensity_image)

    results = {}
    logger.info("Tissue type\t\tDensity mean\tDensity std.dev.")
    for label in intensity_stats.GetLabels():
        mean = intensity_stats.GetMean(label)
        std = intensity_stats.GetStandardDeviation(label)
        logger.info(f"{label} [{TissueClass(label).short_name}]\t\t{mean:.3f}\t\t{std:.3f}")
        record.add_intensity(column_name(label, "Den.M."), float(mean))
        record.add_intensity(column_name(label, "Den.SD."), float(std))
        results[int(label)] = (mean, std)
    return results

def compute_statistics(labels: np.ndarray, intensity_image: sitk.Image,
                       record: StatisticsRecord) -> List[Region]:
    """Shape and intensity statistics of one label map"""
    regions = compute_shape_statistics(labels, intensity_image, record)
    compute_intensity_statistics(labels, intensity_image, record)
    return regions

def class_pixel_counts(labels: np.ndarray) -> Dict[TissueClass, int]:
    """Pixel count of every tissue class, AIR included"""
    counts = np.bincount(np.asarray(labels, dtype=np.int64).ravel(),
                         minlength=len(TissueClass))
    return {tissue: int(counts[tissue]) for tissue in TissueClass}
