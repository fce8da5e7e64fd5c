import os
import time
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import SimpleITK as sitk

from .classifier import TissueClassifier, reclassify_subset
from .compartments import (identify_bone_marrow, isolate_largest_bone, keep_classes,
                           mask_outside, median_seed, merge_fat, overlay_labels,
                           remove_fibula, select_area_fraction, select_one_leg,
                           separate_fat, total_area_mask)
from .data_structures import SmoothingMethod, SubjectInfo, TissueClass, Workflow
from .exceptions import AlgorithmFailure, ConfigurationError, ImageIOError
from .image_io import anonymize_image, read_image, read_subject_info, write_results
from .level_sets import segment_by_level_sets
from .morphology import dilate_correct
from .parameters import AnalysisParameters
from .preprocessing import crop_image, paste_labels, smooth_image
from .statistics import (StatisticsRecord, class_pixel_counts, compute_statistics,
                         log_header_info)

logger = logging.getLogger(__name__)

@dataclass
class AnalysisContext:
    """Per-run state shared by the stages of one workflow"""
    workflow: Workflow
    image: sitk.Image
    parameters: AnalysisParameters
    subject: SubjectInfo
    labels: Optional[np.ndarray] = None
    cluster_labels: Optional[np.ndarray] = None
    record: StatisticsRecord = field(default_factory=StatisticsRecord)
    start_time: float = field(default_factory=time.perf_counter)

@dataclass
class AnalysisResult:
    """Outcome of one subject's analysis"""
    workflow: Workflow
    label_image: Optional[sitk.Image] = None
    record: Optional[StatisticsRecord] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

class TissueAnalyzer:
    """
    Runs the segmentation and quantification workflow of one anatomical site.
    """

    def __init__(self, workflow, parameters: Optional[AnalysisParameters] = None):
        """
        Initialize the analyzer

        Args:
            workflow: Workflow or its integer id (0-4)
            parameters: Analysis parameters (default: compiled defaults)

        Raises:
            ConfigurationError: If the workflow id is unknown
        """
        if isinstance(workflow, bool) or not isinstance(workflow, (int, np.integer)):
            raise ConfigurationError(f"Unknown workflow number: {workflow!r}")
        try:
            self.workflow = Workflow(int(workflow))
        except ValueError:
            raise ConfigurationError(f"Unknown workflow number: {workflow!r}")
        self.parameters = parameters or AnalysisParameters()
        self._workflows = {
            Workflow.FOUR_PCT_TIBIA: self._analyze_four_pct,
            Workflow.THIRTY_EIGHT_PCT_TIBIA: self._analyze_thirty_eight_pct,
            Workflow.SIXTY_SIX_PCT_TIBIA: self._analyze_sixty_six_pct,
            Workflow.MID_THIGH: self._analyze_mid_thigh,
            Workflow.ANONYMIZE_ONLY: None,
        }

    def analyze(self, image: sitk.Image, subject: Optional[SubjectInfo] = None) -> AnalysisResult:
        """Segment and quantify one calibrated 2D image

        Algorithm failures are logged and reported in the result rather
        than raised; no label image or record is returned for them.

        Args:
            image: Calibrated density image
            subject: Subject information for the statistics header

        Returns:
            AnalysisResult
        """
        subject = subject or SubjectInfo()
        run = self._workflows[self.workflow]
        if run is None:
            logger.info("Anonymize-only workflow, no segmentation performed")
            return AnalysisResult(self.workflow)
        if image.GetDimension() != 2:
            raise ImageIOError(f"Expected a 2D image, got {image.GetDimension()}D")

        ctx = AnalysisContext(workflow=self.workflow, image=image,
                              parameters=self.parameters, subject=subject)
        logger.info(f"--------Quantification at {self.workflow.site}--------")
        try:
            run(ctx)
            if self.workflow.is_timed:
                self._log_elapsed_time(ctx)
            label_image = self._to_label_image(ctx)
        except (AlgorithmFailure, RuntimeError) as e:
            logger.error(f"Analysis of {subject.subject_id} failed: {str(e)}")
            return AnalysisResult(self.workflow, error=str(e))

        logger.info(f"Analysis of {subject.subject_id} completed successfully")
        return AnalysisResult(self.workflow, label_image, ctx.record)

    def _to_label_image(self, ctx: AnalysisContext) -> sitk.Image:
        expected = ctx.image.GetSize()[::-1]
        if ctx.labels is None or ctx.labels.shape != tuple(expected):
            raise AlgorithmFailure("Label image does not match the input image dimensions")
        label_image = sitk.GetImageFromArray(ctx.labels.astype(np.uint8))
        label_image.CopyInformation(ctx.image)
        return label_image

    def _classify(self, ctx: AnalysisContext, image: sitk.Image):
        """Initial k-means tissue classification on the median filtered image"""
        logger.info("Step 1: Classifying tissues by k-means...")
        smoothed = smooth_image(image, SmoothingMethod.MEDIAN, self.parameters.median_radius)
        classifier = TissueClassifier.for_workflow(ctx.workflow)
        labels = classifier.fit_classify(sitk.GetArrayFromImage(smoothed)).astype(np.uint8)
        counts = class_pixel_counts(labels)
        logger.debug("Cluster sizes: " + ", ".join(
            f"{tissue.short_name}={count}" for tissue, count in counts.items() if count))
        ctx.cluster_labels = labels.copy()
        ctx.labels = labels

    def _total_area(self, ctx: AnalysisContext, image: sitk.Image,
                    restrict: Optional[np.ndarray] = None):
        """Statistics of everything the classifier did not call AIR"""
        total = total_area_mask(ctx.cluster_labels, restrict)
        compute_statistics(total, image, ctx.record)

    def _log_elapsed_time(self, ctx: AnalysisContext):
        elapsed = time.perf_counter() - ctx.start_time
        logger.info(f"Elapsed time: {elapsed:.3f} s")
        ctx.record.add_intensity("Elapsed_Time", float(elapsed))

    def _analyze_four_pct(self, ctx: AnalysisContext):
        self._classify(ctx, ctx.image)

        logger.info("Step 2: Isolating the tibia...")
        bone = isolate_largest_bone(ctx.labels)

        logger.info("Step 3: Refining the bone boundary by level sets...")
        seed = median_seed(bone)
        if seed is None:
            logger.warning("No bone found, skipping level-set refinement")
        else:
            logger.debug(f"Level-set seed: {seed}")
            mask, _ = segment_by_level_sets(ctx.image, self.parameters, seeds=[seed])
            ctx.labels[:] = np.where(mask, TissueClass.BONE_4PCT, TissueClass.AIR)

        logger.info("Step 4: Computing statistics...")
        log_header_info(ctx.record, ctx.subject, ctx.workflow)
        compute_statistics(ctx.labels, ctx.image, ctx.record)

        bone = ctx.labels == TissueClass.BONE_4PCT
        half = select_area_fraction(bone, ctx.image, 0.5, TissueClass.BONE_4PCT_50PCT)
        compute_statistics(half, ctx.image, ctx.record)
        tenth = select_area_fraction(bone, ctx.image, 0.1, TissueClass.BONE_4PCT_10PCT)
        compute_statistics(tenth, ctx.image, ctx.record)

        self._total_area(ctx, ctx.image)

        ctx.labels = overlay_labels(overlay_labels(ctx.labels, half), tenth)

    def _analyze_thirty_eight_pct(self, ctx: AnalysisContext):
        self._classify(ctx, ctx.image)

        logger.info("Step 2: Identifying bone marrow...")
        identify_bone_marrow(ctx.labels, ctx.cluster_labels == TissueClass.CORT_BONE)

        logger.info("Step 3: Removing the fibula...")
        remove_fibula(ctx.labels)
        keep_classes(ctx.labels, [TissueClass.CORT_BONE, TissueClass.BONE_INT])

        logger.info("Step 4: Computing statistics...")
        log_header_info(ctx.record, ctx.subject, ctx.workflow)
        compute_statistics(ctx.labels, ctx.image, ctx.record)
        self._total_area(ctx, ctx.image)

    def _analyze_sixty_six_pct(self, ctx: AnalysisContext):
        self._classify(ctx, ctx.image)

        logger.info("Step 2: Separating subcutaneous and intermuscular fat...")
        separate_fat(ctx.labels, ctx.image, self.parameters)
        merge_fat(ctx.labels)

        logger.info("Step 3: Identifying bone marrow...")
        identify_bone_marrow(ctx.labels, ctx.cluster_labels == TissueClass.CORT_BONE)

        logger.info("Step 4: Removing the fibula...")
        remove_fibula(ctx.labels)

        logger.info("Step 5: Computing statistics...")
        log_header_info(ctx.record, ctx.subject, ctx.workflow)
        compute_statistics(ctx.labels, ctx.image, ctx.record)
        self._total_area(ctx, ctx.image)

    def _analyze_mid_thigh(self, ctx: AnalysisContext):
        full_shape = ctx.image.GetSize()[::-1]

        logger.info("Step 0: Selecting one leg...")
        selection = select_one_leg(ctx.image, self.parameters.leg_threshold)
        if selection is None:
            logger.warning("No leg found, analyzing the whole image")
            index, size = [0, 0], list(ctx.image.GetSize())
            leg_mask = np.ones(full_shape, dtype=bool)
        else:
            _, leg_mask, index, size = selection
        image = crop_image(ctx.image, index, size)
        leg_mask = leg_mask[index[1]:index[1] + size[1], index[0]:index[0] + size[0]]

        self._classify(ctx, image)

        logger.info("Step 2: Separating subcutaneous and intermuscular fat...")
        separate_fat(ctx.labels, image, self.parameters)

        logger.info("Step 3: Identifying bone marrow...")
        identify_bone_marrow(ctx.labels, ctx.cluster_labels == TissueClass.CORT_BONE)

        logger.info("Step 4: Re-splitting muscle and intermuscular fat...")
        reclassify_subset(ctx.labels, sitk.GetArrayFromImage(image))

        logger.info("Step 5: Partial volume correction...")
        dilate_correct(ctx.labels)
        mask_outside(ctx.labels, leg_mask)

        logger.info("Step 6: Computing statistics...")
        log_header_info(ctx.record, ctx.subject, ctx.workflow)
        compute_statistics(ctx.labels, image, ctx.record)
        self._total_area(ctx, image, restrict=leg_mask)

        ctx.labels = paste_labels(ctx.labels, full_shape, index)

def run_analysis(input_path: str, workflow, parameters: Optional[AnalysisParameters] = None,
                 output_dir: Optional[str] = None, calibrate: bool = True) -> AnalysisResult:
    """Read, analyze and write one subject

    Args:
        input_path: Image file
        workflow: Workflow or its integer id
        parameters: Analysis parameters (default: compiled defaults)
        output_dir: Directory for results (default: the input's directory)
        calibrate: Apply density calibration to raw pQCT images; CT
            (mid-thigh) images are never calibrated

    Returns:
        AnalysisResult

    Raises:
        ConfigurationError: If the workflow is unknown
        ImageIOError: If the image cannot be read or results cannot be written
    """
    analyzer = TissueAnalyzer(workflow, parameters)
    if output_dir is None:
        output_dir = os.path.dirname(os.path.abspath(input_path))
    os.makedirs(output_dir, exist_ok=True)

    if analyzer.workflow == Workflow.ANONYMIZE_ONLY:
        anonymize_image(input_path, output_dir)
        return AnalysisResult(analyzer.workflow)

    calibrate = calibrate and analyzer.workflow.is_calibrated
    image = read_image(input_path, calibrate=calibrate, parameters=analyzer.parameters)
    subject = read_subject_info(input_path)
    result = analyzer.analyze(image, subject)
    if result.ok:
        write_results(result, output_dir, subject.subject_id)
    return result
