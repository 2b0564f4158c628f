"""Batch image+prompt submission to generative web surfaces."""

from .config import settings
from .exceptions import BrowserError, ImageFromImageError, SubmissionError
from .pipeline import SubmissionPipeline
from .scheduler import SessionScheduler

__all__ = [
    "settings",
    "SessionScheduler",
    "SubmissionPipeline",
    "ImageFromImageError",
    "BrowserError",
    "SubmissionError",
]
