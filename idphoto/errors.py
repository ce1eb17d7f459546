"""
Exception hierarchy for ID Photo Studio
"""


class IDPhotoError(Exception):
    """Base class for all pipeline errors"""
    pass


class InvalidSourceError(IDPhotoError):
    """Source image is undecodable or has zero area"""
    pass


class SegmentationUnavailable(IDPhotoError):
    """Segmentation backend failed, timed out, or is not installed"""
    pass


class ScalingDegenerateError(IDPhotoError):
    """Target physical dimensions are zero or negative"""
    pass


class PackingInfeasible(IDPhotoError):
    """A photo does not fit anywhere on the remaining paper"""
    pass


class ExportIOError(IDPhotoError):
    """Writing an output file failed"""
    pass


class ProcessingSuperseded(IDPhotoError):
    """A newer processing request replaced this one"""
    pass


class FaceDetectionError(IDPhotoError):
    """Face detector backend could not be loaded"""
    pass
