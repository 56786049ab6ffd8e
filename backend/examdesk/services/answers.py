"""
Answer collector - in-memory answers for one attempt until it is submitted.

Nothing here is persisted; abandoning the sheet discards the attempt.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import ValidationFailed
from ..models import Exam, Question, SubmittedAnswer


@dataclass
class EssayImage:
    data: bytes
    filename: str
    content_type: Optional[str] = None


@dataclass
class DraftAnswer:
    selected_options: List[int] = field(default_factory=list)
    essay_image: Optional[EssayImage] = None


class AnswerSheet:
    """Accumulates a student's selections and essay images for one exam."""

    def __init__(self, exam: Exam):
        self.exam = exam
        self._drafts: Dict[str, DraftAnswer] = {q.id: DraftAnswer() for q in exam.questions}

    def _question(self, question_id: str) -> Question:
        question = self.exam.question(question_id)
        if question is None:
            raise ValidationFailed(f"Unknown question: {question_id}")
        return question

    def toggle_option(self, question_id: str, index: int) -> List[int]:
        """Select the option if unselected, unselect it otherwise."""
        question = self._question(question_id)
        if question.type != "mcq":
            raise ValidationFailed(f"Question {question_id} is not multiple choice")
        if index < 0 or index >= len(question.options):
            raise ValidationFailed(f"Option {index} out of range for question {question_id}")

        selected = self._drafts[question_id].selected_options
        if index in selected:
            selected.remove(index)
        else:
            selected.append(index)
        return list(selected)

    def select_options(self, question_id: str, indices: Iterable[int]) -> List[int]:
        """Replace the selection for a question."""
        self._question(question_id)
        self._drafts[question_id].selected_options = []
        for index in indices:
            if index not in self._drafts[question_id].selected_options:
                self.toggle_option(question_id, index)
        return list(self._drafts[question_id].selected_options)

    def attach_essay_image(self, question_id: str, data: bytes, filename: str,
                           content_type: Optional[str] = None) -> None:
        question = self._question(question_id)
        if question.type != "essay":
            raise ValidationFailed(f"Question {question_id} does not take an essay image")
        if not data:
            raise ValidationFailed(f"Essay image for question {question_id} is empty")
        self._drafts[question_id].essay_image = EssayImage(data, filename, content_type)

    def draft(self, question_id: str) -> DraftAnswer:
        self._question(question_id)
        return self._drafts[question_id]

    def selections(self) -> Dict[str, List[int]]:
        return {qid: list(d.selected_options) for qid, d in self._drafts.items()}

    def essay_images(self) -> List[Tuple[str, EssayImage]]:
        """Attached essay images in question order."""
        return [
            (q.id, self._drafts[q.id].essay_image)
            for q in self.exam.questions
            if self._drafts[q.id].essay_image is not None
        ]

    @classmethod
    def from_payload(
        cls,
        exam: Exam,
        answers: Iterable[SubmittedAnswer],
        essay_files: Optional[Dict[str, EssayImage]] = None,
    ) -> "AnswerSheet":
        """Build a sheet from a submitted form: selections plus essay files."""
        sheet = cls(exam)
        for answer in answers:
            sheet.select_options(answer.question_id, answer.selected_options)
        for question_id, image in (essay_files or {}).items():
            sheet.attach_essay_image(question_id, image.data, image.filename, image.content_type)
        return sheet
