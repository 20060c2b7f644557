"""
Exams Module.

Exam validation and AI-assisted import of exam documents.
"""

from math_club.exams.importer import ExamImporter, ExamImportError
from math_club.exams.validator import ExamValidationError, ExamValidator

__all__ = [
    "ExamImportError",
    "ExamImporter",
    "ExamValidationError",
    "ExamValidator",
]
