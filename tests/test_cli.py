import os

import SimpleITK as sitk

import run_analysis as cli

def test_batch_continues_after_a_failed_subject(tibia_38_phantom, tmp_path):
    good = str(tmp_path / "good.nii")
    sitk.WriteImage(tibia_38_phantom, good)
    missing = str(tmp_path / "missing.nii")
    output_dir = tmp_path / "out"

    status = cli.main(["--input", missing, good, "--workflow", "1",
                       "--output-dir", str(output_dir), "--no-calibration",
                       "--parameters", str(tmp_path / "no_params.txt")])

    assert status == 1
    assert os.path.exists(output_dir / "good_38pct.Quantification.txt")
    assert os.path.exists(output_dir / "analysis.log")

def test_single_subject_succeeds(tibia_38_phantom, tmp_path):
    path = str(tmp_path / "subj.nii")
    sitk.WriteImage(tibia_38_phantom, path)

    status = cli.main(["--input", path, "--workflow", "1", "--no-calibration",
                       "--output-dir", str(tmp_path / "out"),
                       "--parameters", str(tmp_path / "no_params.txt")])

    assert status == 0
