"""DriveQ - Google Drive mirror with deterministic analytics and natural-language queries"""

__version__ = "1.0.0"
