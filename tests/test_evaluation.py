import pytest

from reading_tutor.errors import EvaluationError
from reading_tutor.evaluation import AnswerEvaluator
from reading_tutor.models import Question

from conftest import PASSAGE, make_evaluation, make_questions


pytestmark = pytest.mark.anyio


@pytest.fixture
def questions():
    return [Question.model_validate(q) for q in make_questions()]


@pytest.fixture
def answers():
    return {
        "q1": "Less than one percent",
        "q2": "To help reefs survive warmer water",
        "q3": "I don't know",
        "q4": "Push out",
    }


async def test_valid_evaluation(gemini, fake_gemini, questions, answers):
    fake_gemini.reply_json(make_evaluation())

    result = await AnswerEvaluator(gemini).evaluate(PASSAGE, questions, answers)

    assert result.score == 3
    assert result.total_questions == 4
    assert len(result.feedback) == result.total_questions
    assert result.score == sum(1 for f in result.feedback if f.is_correct)
    assert len(result.recommendations) == 2
    prompt = fake_gemini.prompt()
    assert PASSAGE in prompt
    assert "To help reefs survive warmer water" in prompt
    assert "Critical Thinking" in prompt
    assert fake_gemini.requests[0]["generationConfig"]["responseSchema"]["required"][0] == "score"


def _score_mismatch(data):
    data["score"] = 4


def _short_feedback(data):
    data["feedback"].pop()


def _one_recommendation(data):
    data["recommendations"].pop()


def _wrong_total(data):
    data["totalQuestions"] = 5


def _score_over_total(data):
    data["score"] = 7


def _reordered_feedback(data):
    data["feedback"].reverse()


def _missing_field(data):
    del data["strengths"]


@pytest.mark.parametrize(
    "mutate",
    [_score_mismatch, _short_feedback, _one_recommendation, _wrong_total, _score_over_total, _reordered_feedback, _missing_field],
)
async def test_shape_violations_are_rejected(gemini, fake_gemini, questions, answers, mutate):
    data = make_evaluation()
    mutate(data)
    fake_gemini.reply_json(data)
    with pytest.raises(EvaluationError):
        await AnswerEvaluator(gemini).evaluate(PASSAGE, questions, answers)


async def test_service_failure_is_evaluation_error(gemini, fake_gemini, questions, answers):
    fake_gemini.fail(500)
    with pytest.raises(EvaluationError):
        await AnswerEvaluator(gemini).evaluate(PASSAGE, questions, answers)


async def test_non_json_reply_is_evaluation_error(gemini, fake_gemini, questions, answers):
    fake_gemini.reply_text("Great answers!")
    with pytest.raises(EvaluationError):
        await AnswerEvaluator(gemini).evaluate(PASSAGE, questions, answers)
