import os
import logging
from typing import Optional

import numpy as np
import SimpleITK as sitk

from .data_structures import SubjectInfo
from .exceptions import ImageIOError
from .parameters import AnalysisParameters
from .preprocessing import calibrate_image

logger = logging.getLogger(__name__)

# DICOM tags read into the statistics header
PATIENT_NUMBER_TAG = "0010|0020"
BIRTH_DATE_TAG = "0010|0030"
SLICE_ORIGIN_TAG = "0020|0032"
SCAN_DATE_TAG = "0008|0022"

# Tags blanked by anonymization
PATIENT_TAGS = ("0010|0010", "0010|0020", "0010|0030", "0010|0040", "0010|1000")

def subject_id_from_path(path: str) -> str:
    """File name without directory and image extensions"""
    name = os.path.basename(path)
    for extension in ('.gz', '.nii', '.nrrd', '.mha', '.mhd', '.dcm'):
        if name.lower().endswith(extension):
            name = name[:-len(extension)]
    return name

def read_image(path: str, calibrate: bool = False,
               parameters: Optional[AnalysisParameters] = None) -> sitk.Image:
    """Read a single-slice image.

    A singleton third dimension is dropped. Raw values are optionally
    converted to density with the calibration slope and intercept.

    Args:
        path: Image file readable by SimpleITK
        calibrate: Apply density calibration
        parameters: Source of the calibration coefficients

    Returns:
        2D 16-bit signed density image

    Raises:
        ImageIOError: If the file cannot be read or is not a single slice
    """
    if not os.path.exists(path):
        raise ImageIOError(f"Image file not found: {path}")
    try:
        image = sitk.ReadImage(path)
    except RuntimeError as e:
        raise ImageIOError(f"Cannot read {path}: {str(e)}")

    if image.GetDimension() == 3 and image.GetSize()[2] == 1:
        image = image[:, :, 0]
    if image.GetDimension() != 2:
        raise ImageIOError(f"{path} is not a single slice image: size {image.GetSize()}")
    if image.GetNumberOfComponentsPerPixel() != 1:
        raise ImageIOError(f"{path} is not a scalar image")

    if calibrate:
        parameters = parameters or AnalysisParameters()
        logger.info(f"Calibrating with slope {parameters.density_slope}, "
                    f"intercept {parameters.density_intercept}")
        return calibrate_image(image, parameters.density_slope, parameters.density_intercept)
    # Out of range values saturate instead of wrapping
    return sitk.Clamp(image, sitk.sitkInt16, np.iinfo(np.int16).min, np.iinfo(np.int16).max)

def read_subject_info(path: str) -> SubjectInfo:
    """Subject information from the file name and DICOM header, if any"""
    reader = sitk.ImageFileReader()
    reader.SetFileName(path)
    try:
        reader.ReadImageInformation()
    except RuntimeError as e:
        raise ImageIOError(f"Cannot read header of {path}: {str(e)}")

    def _tag(key, default=""):
        if reader.HasMetaDataKey(key):
            return reader.GetMetaData(key).strip()
        return default

    origin = reader.GetOrigin()
    return SubjectInfo(
        subject_id=subject_id_from_path(path),
        patient_number=_tag(PATIENT_NUMBER_TAG),
        birth_date=_tag(BIRTH_DATE_TAG),
        slice_origin=_tag(SLICE_ORIGIN_TAG, "\\".join(f"{o:g}" for o in origin)),
        scan_date=_tag(SCAN_DATE_TAG),
    )

def write_results(result, output_dir: str, subject_id: str):
    """Save the label image and the quantification table

    Files are named <subject_id><site suffix>.Labels.nii and
    <subject_id><site suffix>.Quantification.txt.

    Raises:
        ImageIOError: If the result is a failed analysis or writing fails
    """
    if not result.ok:
        raise ImageIOError(f"Refusing to write results of a failed analysis: {result.error}")
    os.makedirs(output_dir, exist_ok=True)
    prefix = os.path.join(output_dir, subject_id + result.workflow.file_suffix)

    try:
        if result.label_image is not None:
            sitk.WriteImage(result.label_image, prefix + ".Labels.nii")
        if result.record is not None:
            with open(prefix + ".Quantification.txt", "w") as f:
                f.write(result.record.to_table())
    except (OSError, RuntimeError) as e:
        raise ImageIOError(f"Cannot write results to {output_dir}: {str(e)}")
    logger.info(f"Results saved to {prefix}.*")

def anonymize_image(path: str, output_dir: str) -> str:
    """Write a copy of an image with patient identifying tags blanked

    Returns:
        Path of the anonymized copy (Anon_<file name>)
    """
    try:
        image = sitk.ReadImage(path)
    except RuntimeError as e:
        raise ImageIOError(f"Cannot read {path}: {str(e)}")

    for key in PATIENT_TAGS:
        if image.HasMetaDataKey(key):
            image.SetMetaData(key, "")

    output_path = os.path.join(output_dir, "Anon_" + os.path.basename(path))
    writer = sitk.ImageFileWriter()
    writer.KeepOriginalImageUIDOn()
    writer.SetFileName(output_path)
    try:
        writer.Execute(image)
    except RuntimeError as e:
        raise ImageIOError(f"Cannot write {output_path}: {str(e)}")
    logger.info(f"Anonymized image saved to {output_path}")
    return output_path
