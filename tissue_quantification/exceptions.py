class AnalysisError(Exception):
    """Base class for tissue analysis errors"""

class ConfigurationError(AnalysisError):
    """Unknown workflow, malformed parameter file or invalid parameter value"""

class ImageIOError(AnalysisError):
    """Image could not be read or results could not be written"""

class AlgorithmFailure(AnalysisError):
    """A segmentation stage could not produce a valid result"""
