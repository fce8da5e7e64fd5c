from enum import Enum, IntEnum, auto
from dataclasses import dataclass
from typing import Tuple

class TissueClass(IntEnum):
    """Tissue class codes written into the label image"""
    AIR = 0
    FAT = 1
    MUSCLE = 2
    TRAB_BONE = 3
    CORT_BONE = 4
    H_CORT_BONE = 5
    BONE_INT = 6  # bone marrow
    SUB_FAT = 7
    IM_FAT = 8
    BONE_4PCT = 9
    BONE_4PCT_50PCT = 10
    BONE_4PCT_10PCT = 11
    TOT_AREA = 12

    @property
    def short_name(self) -> str:
        """Name used in statistics column headers"""
        return TISSUE_NAMES[self]

TISSUE_NAMES = {
    TissueClass.AIR: "AIR",
    TissueClass.FAT: "FAT",
    TissueClass.MUSCLE: "MUSCLE",
    TissueClass.TRAB_BONE: "TRAB_BO",
    TissueClass.CORT_BONE: "COR_BO",
    TissueClass.H_CORT_BONE: "H_CORT_BONE",
    TissueClass.BONE_INT: "BO_INT",
    TissueClass.SUB_FAT: "SUB_FA",
    TissueClass.IM_FAT: "IM_FA",
    TissueClass.BONE_4PCT: "BO_4%",
    TissueClass.BONE_4PCT_50PCT: "BO_4%50%",
    TissueClass.BONE_4PCT_10PCT: "BO_4%10%",
    TissueClass.TOT_AREA: "TOT_AR",
}

class Workflow(IntEnum):
    """Anatomical site workflows, numbered as on the command line"""
    FOUR_PCT_TIBIA = 0
    THIRTY_EIGHT_PCT_TIBIA = 1
    SIXTY_SIX_PCT_TIBIA = 2
    MID_THIGH = 3
    ANONYMIZE_ONLY = 4

    @property
    def site(self) -> str:
        return ANATOMICAL_SITES[self]

    @property
    def file_suffix(self) -> str:
        return FILE_SUFFIXES.get(self, "")

    @property
    def is_timed(self) -> bool:
        """Whether the workflow reports an Elapsed_Time column"""
        return self in (Workflow.FOUR_PCT_TIBIA,
                        Workflow.THIRTY_EIGHT_PCT_TIBIA,
                        Workflow.SIXTY_SIX_PCT_TIBIA)

    @property
    def is_calibrated(self) -> bool:
        """Whether inputs are raw pQCT values needing density calibration.

        Mid-thigh CT is already in Hounsfield units.
        """
        return self.is_timed

ANATOMICAL_SITES = {
    Workflow.FOUR_PCT_TIBIA: "4_PCT",
    Workflow.THIRTY_EIGHT_PCT_TIBIA: "38_PCT",
    Workflow.SIXTY_SIX_PCT_TIBIA: "66_PCT",
    Workflow.MID_THIGH: "MID_THIGH",
    Workflow.ANONYMIZE_ONLY: "UNUSED",
}

FILE_SUFFIXES = {
    Workflow.FOUR_PCT_TIBIA: "_4pct",
    Workflow.THIRTY_EIGHT_PCT_TIBIA: "_38pct",
    Workflow.SIXTY_SIX_PCT_TIBIA: "_66pct",
    Workflow.MID_THIGH: "_MidThigh",
}

class SmoothingMethod(Enum):
    """Pre-smoothing applied before clustering"""
    GAUSSIAN = auto()
    DIFFUSION = auto()
    MEDIAN = auto()

class FatSeparation(IntEnum):
    """Subcutaneous/intermuscular fat separation strategies"""
    CONNECTED_COMPONENTS = 1
    GAC = 2

@dataclass
class Region:
    """Geometry of one connected component, in physical units"""
    label: int
    pixel_count: int
    physical_size: float
    centroid: Tuple[float, ...]
    principal_moments: Tuple[float, ...]
    equivalent_radius: float
    bounding_box: Tuple[int, ...]  # (x, y, size_x, size_y)

@dataclass
class SubjectInfo:
    """Subject and scan information prepended to the statistics row"""
    subject_id: str = "Unknown"
    patient_number: str = ""
    patient_name: str = "Anonymous"
    birth_date: str = ""
    slice_origin: str = ""
    scan_date: str = ""
