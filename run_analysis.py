import os
import sys
import logging
import argparse
from tqdm import tqdm

from tissue_quantification.data_structures import Workflow
from tissue_quantification.exceptions import AnalysisError
from tissue_quantification.parameters import AnalysisParameters, DEFAULT_PARAMETER_FILE
from tissue_quantification.pipeline import run_analysis

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Bone, muscle and fat quantification of CT/pQCT slices')
    parser.add_argument('--input', type=str, nargs='+', required=True,
                      help='Input image file(s), one subject per file')
    parser.add_argument('--workflow', type=int, required=True,
                      choices=[int(w) for w in Workflow],
                      help='0: 4%% tibia, 1: 38%% tibia, 2: 66%% tibia, 3: mid-thigh CT, 4: anonymize only')
    parser.add_argument('--parameters', type=str, default=DEFAULT_PARAMETER_FILE,
                      help='Parameter file (default: ./PQCT_Analysis_Params.txt)')
    parser.add_argument('--output-dir', type=str, default='output',
                      help='Directory for label images and quantification tables')
    parser.add_argument('--no-calibration', action='store_true',
                      help='pQCT images already hold calibrated densities (mid-thigh CT is never calibrated)')
    return parser.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)
    os.makedirs(args.output_dir, exist_ok=True)

    # Set up logging to file
    file_handler = logging.FileHandler(os.path.join(args.output_dir, 'analysis.log'))
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logging.getLogger().addHandler(file_handler)

    failed = []
    try:
        parameters = AnalysisParameters.from_file(args.parameters)
        for path in tqdm(args.input, desc="Subjects"):
            try:
                result = run_analysis(path, args.workflow, parameters,
                                      output_dir=args.output_dir,
                                      calibrate=not args.no_calibration)
            except AnalysisError as e:
                logger.error(f"Error analyzing {path}: {str(e)}")
                failed.append(path)
                continue
            if not result.ok:
                failed.append(path)
    except AnalysisError as e:
        logger.error(f"Error during analysis: {str(e)}")
        return 1
    finally:
        logging.getLogger().removeHandler(file_handler)
        file_handler.close()

    if failed:
        logger.error(f"{len(failed)} of {len(args.input)} subjects failed: {', '.join(failed)}")
        return 1
    logger.info("All subjects analyzed successfully.")
    return 0

if __name__ == '__main__':
    sys.exit(main())
