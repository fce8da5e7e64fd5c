from .data_structures import TissueClass, Workflow, FatSeparation, SubjectInfo
from .parameters import AnalysisParameters
from .pipeline import TissueAnalyzer, AnalysisResult, run_analysis
