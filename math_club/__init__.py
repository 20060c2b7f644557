"""
Math Club Grader - exam scoring and AI essay grading for high-school math practice.

This package scores student submissions for Vietnamese high-school math
exams: objective questions are compared against the answer key, essay
questions are graded one at a time by an AI model, and the aggregated
result is persisted as the session's completion.
"""

__version__ = "1.0.0"
__author__ = "Math Club Team"
