"""
Database models
"""
from examcore.models.exam_result import ExamResult

__all__ = [
    'ExamResult'
]
