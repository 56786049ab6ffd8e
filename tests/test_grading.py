import pytest

from examdesk.errors import ValidationFailed
from examdesk.models import Exam, Question, Submission
from examdesk.services import apply_essay_scores, grade_answers, score_mcq
from examdesk.utils import utcnow
from fakes import essay, exam_doc, mcq


def _exam(*questions):
    return Exam.model_validate(exam_doc(questions=list(questions)))


def _submission(exam, selections, essay_urls=None):
    result = grade_answers(exam.questions, selections, essay_urls)
    return Submission(
        submission_id="sub_1",
        exam_id=exam.exam_id,
        student_id="student_1",
        answers=result.answers,
        total_score=result.total_score,
        submitted_at=utcnow(),
    )


class TestScoreMcq:
    def test_exact_set_scores_full_marks(self):
        q = Question(**mcq("q1", correct=(0, 2), score=3))
        assert score_mcq(q, [2, 0]) == 3

    def test_subset_scores_nothing(self):
        q = Question(**mcq("q1", correct=(0, 2), score=3))
        assert score_mcq(q, [0]) == 0

    def test_superset_scores_nothing(self):
        q = Question(**mcq("q1", correct=(0, 2), score=3))
        assert score_mcq(q, [0, 1, 2]) == 0

    def test_duplicates_and_order_do_not_matter(self):
        q = Question(**mcq("q1", correct=(0, 2), score=3))
        assert score_mcq(q, [2, 0, 2, 0]) == 3

    def test_empty_selection_scores_nothing(self):
        q = Question(**mcq("q1", correct=(1,)))
        assert score_mcq(q, []) == 0


class TestGradeAnswers:
    def test_total_is_sum_of_mcq_scores(self):
        exam = _exam(mcq("q1", correct=(0,), score=2), mcq("q2", correct=(1,), score=3), essay("e1", 5))
        result = grade_answers(exam.questions, {"q1": [0], "q2": [2]}, {"e1": "/api/files/abc"})

        assert result.total_score == 2
        by_id = {a.question_id: a for a in result.answers}
        assert by_id["q1"].score == 2
        assert by_id["q2"].score == 0
        assert by_id["e1"].score is None
        assert by_id["e1"].essay_image_url == "/api/files/abc"

    def test_answers_follow_question_order(self):
        exam = _exam(mcq("q2"), mcq("q1"))
        result = grade_answers(exam.questions, {"q1": [0], "q2": [0]})
        assert [a.question_id for a in result.answers] == ["q2", "q1"]

    def test_unanswered_questions_are_recorded(self):
        exam = _exam(mcq("q1"), essay("e1"))
        result = grade_answers(exam.questions, {})
        assert result.answers[0].selected_options == []
        assert result.answers[0].score == 0
        assert result.answers[1].essay_image_url is None

    def test_unknown_question_rejected(self):
        exam = _exam(mcq("q1"))
        with pytest.raises(ValidationFailed):
            grade_answers(exam.questions, {"nope": [0]})

    def test_out_of_range_option_rejected(self):
        exam = _exam(mcq("q1"))
        with pytest.raises(ValidationFailed):
            grade_answers(exam.questions, {"q1": [7]})

    def test_essay_with_options_rejected(self):
        exam = _exam(essay("e1"))
        with pytest.raises(ValidationFailed):
            grade_answers(exam.questions, {"e1": [0]})


class TestEssayReview:
    def test_partial_review_stays_pending(self):
        exam = _exam(mcq("q1", score=2), essay("e1", 5), essay("e2", 5))
        submission = _submission(exam, {"q1": [0]})

        outcome = apply_essay_scores(exam, submission, {"e1": 4})

        assert outcome.status == "pending"
        assert outcome.total_score == 6

    def test_full_review_grades_submission(self):
        exam = _exam(mcq("q1", score=2), essay("e1", 5), essay("e2", 5))
        submission = _submission(exam, {"q1": [0]})

        first = apply_essay_scores(exam, submission, {"e1": 4})
        submission = submission.model_copy(update={"answers": first.answers})
        second = apply_essay_scores(exam, submission, {"e2": 3})

        assert second.status == "graded"
        assert second.total_score == 9

    def test_rescoring_replaces_previous_score(self):
        exam = _exam(essay("e1", 5))
        submission = _submission(exam, {})
        first = apply_essay_scores(exam, submission, {"e1": 5})
        submission = submission.model_copy(update={"answers": first.answers})

        assert apply_essay_scores(exam, submission, {"e1": 2}).total_score == 2

    def test_mcq_only_submission_grades_immediately(self):
        exam = _exam(mcq("q1"))
        outcome = apply_essay_scores(exam, _submission(exam, {"q1": [0]}), {})
        assert outcome.status == "graded"
        assert outcome.total_score == 2

    def test_score_above_maximum_rejected(self):
        exam = _exam(essay("e1", 5))
        with pytest.raises(ValidationFailed):
            apply_essay_scores(exam, _submission(exam, {}), {"e1": 6})

    def test_negative_score_rejected(self):
        exam = _exam(essay("e1", 5))
        with pytest.raises(ValidationFailed):
            apply_essay_scores(exam, _submission(exam, {}), {"e1": -1})

    def test_mcq_cannot_be_scored_manually(self):
        exam = _exam(mcq("q1"), essay("e1"))
        with pytest.raises(ValidationFailed):
            apply_essay_scores(exam, _submission(exam, {}), {"q1": 2})

    def test_unknown_answer_rejected(self):
        exam = _exam(essay("e1"))
        with pytest.raises(ValidationFailed):
            apply_essay_scores(exam, _submission(exam, {}), {"e9": 1})
