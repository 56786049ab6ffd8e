"""ExamDesk - exams, grading and wallet backend."""

__version__ = "1.0.0"
