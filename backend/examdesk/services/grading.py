"""
Grading engine - deterministic scoring of exam answers.

MCQ answers are auto-graded by set equality against the answer key, with no
partial credit. Essay answers are left unscored for the teacher; once every
essay in a submission has a manual score the submission becomes ``graded``.

Nothing in this module touches storage.
"""

from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from ..errors import ValidationFailed
from ..models import Answer, Exam, Question, Submission


class GradingResult(BaseModel):
    answers: List[Answer]
    total_score: float


class ReviewOutcome(BaseModel):
    answers: List[Answer]
    total_score: float
    status: str


def score_mcq(question: Question, selected: Sequence[int]) -> float:
    """Full marks iff the selected set equals the correct set, else 0."""
    if set(selected) == set(question.correct_options):
        return question.score
    return 0.0


def _check_selection(question: Question, selected: Sequence[int]) -> None:
    if question.type == "essay":
        if selected:
            raise ValidationFailed(f"Question {question.id} is an essay and takes no options")
        return
    for index in selected:
        if index < 0 or index >= len(question.options):
            raise ValidationFailed(
                f"Option {index} out of range for question {question.id}"
            )


def grade_answers(
    questions: Sequence[Question],
    selections: Mapping[str, Sequence[int]],
    essay_urls: Optional[Mapping[str, str]] = None,
) -> GradingResult:
    """
    Grade one attempt.

    Args:
        questions: Exam questions in order, with answer keys
        selections: {question_id: selected option indices}; missing means none
        essay_urls: {question_id: uploaded essay image URL}

    Returns:
        Graded answers in question order and the auto-graded total
    """
    essay_urls = essay_urls or {}
    known = {q.id for q in questions}

    unknown = (set(selections) | set(essay_urls)) - known
    if unknown:
        raise ValidationFailed(f"Answers reference unknown questions: {sorted(unknown)}")

    answers = []
    total = 0.0

    for question in questions:
        selected = list(selections.get(question.id, []))
        _check_selection(question, selected)

        if question.type == "mcq":
            awarded = score_mcq(question, selected)
            total += awarded
            answers.append(Answer(
                question_id=question.id,
                type="mcq",
                selected_options=selected,
                score=awarded,
            ))
        else:
            answers.append(Answer(
                question_id=question.id,
                type="essay",
                essay_image_url=essay_urls.get(question.id),
            ))

    return GradingResult(answers=answers, total_score=total)


def apply_essay_scores(
    exam: Exam,
    submission: Submission,
    scores: Mapping[str, float],
) -> ReviewOutcome:
    """
    Apply the teacher's manual essay scores to a submission.

    The total is recomputed from every scored answer (auto mcq points plus
    manual essay points). Status becomes ``graded`` once no essay answer is
    left unscored, which holds immediately for mcq-only submissions.
    """
    by_id: Dict[str, Answer] = {a.question_id: a for a in submission.answers}

    for question_id, value in scores.items():
        answer = by_id.get(question_id)
        if answer is None:
            raise ValidationFailed(f"Submission has no answer for question {question_id}")
        if answer.type != "essay":
            raise ValidationFailed(f"Question {question_id} is auto-graded")

        question = exam.question(question_id)
        if question is None:
            raise ValidationFailed(f"Question {question_id} no longer exists in the exam")
        if value < 0 or value > question.score:
            raise ValidationFailed(
                f"Score for question {question_id} must be between 0 and {question.score}"
            )

    answers = []
    for answer in submission.answers:
        if answer.question_id in scores:
            answer = answer.model_copy(update={"score": float(scores[answer.question_id])})
        answers.append(answer)

    total = sum(a.score for a in answers if a.score is not None)
    pending = any(a.type == "essay" and a.score is None for a in answers)

    return ReviewOutcome(
        answers=answers,
        total_score=total,
        status="pending" if pending else "graded",
    )
