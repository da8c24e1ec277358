"""Quality assessment for astronomical images: database access, statistical grading, FITS statistics, MTF stretching and morphology."""

__version__ = "0.1.1"

__all__ = [
    "db",
    "debug",
    "grading",
    "grading_stats",
    "image_analysis",
    "models",
    "morphology",
    "mtf_stretch",
]