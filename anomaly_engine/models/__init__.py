"""SQLAlchemy models package."""

from .base import Base
from .detection_result import DetectionResultRecord

__all__ = ["Base", "DetectionResultRecord"]
