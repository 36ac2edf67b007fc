from __future__ import annotations
import json
from typing import Any, Dict, List

from pydantic import ValidationError

from .errors import EvaluationError
from .gemini_client import GeminiClient, GeminiError, extract_json_object
from .models import EvaluationResult, Question, QuestionType, UserAnswers
from .settings import settings

EVALUATION_FAILED_MESSAGE = "There was an issue evaluating your answers. Please try submitting again."

RECOMMENDATION_COUNT = 2

EVALUATION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "INTEGER", "description": "The number of questions answered correctly."},
        "totalQuestions": {"type": "INTEGER", "description": "The total number of questions."},
        "strengths": {
            "type": "STRING",
            "description": "A brief, encouraging summary (1-2 sentences) of what the student did well.",
        },
        "areasForGrowth": {
            "type": "STRING",
            "description": "A brief, constructive summary (1-2 sentences) of areas for improvement.",
        },
        "feedback": {
            "type": "ARRAY",
            "description": "One feedback object per question, in the same order as the questions.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "questionId": {"type": "STRING"},
                    "questionText": {"type": "STRING"},
                    "userAnswer": {"type": "STRING"},
                    "isCorrect": {"type": "BOOLEAN"},
                    "explanation": {
                        "type": "STRING",
                        "description": "Why the answer is correct or incorrect. For incorrect answers, gently explain the right answer with reasoning from the text.",
                    },
                },
                "required": ["questionId", "questionText", "userAnswer", "isCorrect", "explanation"],
            },
        },
        "recommendations": {
            "type": "ARRAY",
            "description": "Exactly 2 recommended new article topics, slightly above the student's level, targeting the areas for growth.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": {"type": "STRING", "description": "The title of the recommended article."},
                    "reason": {"type": "STRING", "description": "Why it is recommended, e.g. 'To practice inference skills'."},
                },
                "required": ["title", "reason"],
            },
        },
    },
    "required": ["score", "totalQuestions", "strengths", "areasForGrowth", "feedback", "recommendations"],
}


def evaluation_prompt(passage: str, questions: List[Question], answers: UserAnswers, reading_level: str) -> str:
    questions_json = json.dumps([q.model_dump(by_alias=True, mode="json") for q in questions], indent=2)
    answers_json = json.dumps({q.id: answers.get(q.id, "") for q in questions}, indent=2)
    return (
        f"You are an AI assistant evaluating the reading comprehension answers of {reading_level}.\n"
        f"Reading passage:\n---\n{passage}\n---\n"
        f"Questions and correct answers:\n---\n{questions_json}\n---\n"
        f"Student's answers (keyed by question id):\n---\n{answers_json}\n---\n"
        "Instructions:\n"
        "1. Compare each student answer with the correct answer. For the "
        f"'{QuestionType.CRITICAL.value}' question, be flexible: mark it correct if the reasoning is sound "
        "and supported by the text, even if it does not match the model answer.\n"
        "2. Set score to the number of correct answers and totalQuestions to the number of questions.\n"
        "3. Summarize the student's strengths and areas for growth based on the question types they got right or wrong.\n"
        "4. Give one feedback entry per question, in the same order as the questions. Be supportive and educational.\n"
        f"5. Suggest exactly {RECOMMENDATION_COUNT} new article topics to practice the weaker skills.\n"
        "Return the evaluation as a single JSON object matching the provided schema."
    )


def validate_evaluation(result: EvaluationResult, questions: List[Question]) -> EvaluationResult:
    total = len(questions)
    if result.total_questions != total:
        raise EvaluationError(f"totalQuestions is {result.total_questions}, expected {total}")
    if not 0 <= result.score <= total:
        raise EvaluationError(f"score {result.score} is outside 0..{total}")
    if len(result.feedback) != total:
        raise EvaluationError(f"Expected {total} feedback entries, got {len(result.feedback)}")
    if [f.question_id for f in result.feedback] != [q.id for q in questions]:
        raise EvaluationError("Feedback entries do not follow the question order")
    correct = sum(1 for f in result.feedback if f.is_correct)
    if result.score != correct:
        raise EvaluationError(f"score {result.score} disagrees with {correct} correct feedback entries")
    if len(result.recommendations) != RECOMMENDATION_COUNT:
        raise EvaluationError(f"Expected {RECOMMENDATION_COUNT} recommendations, got {len(result.recommendations)}")
    return result


class AnswerEvaluator:
    def __init__(self, client: GeminiClient, *, reading_level: str | None = None) -> None:
        self.client = client
        self.reading_level = reading_level or settings.reading_level

    async def evaluate(self, passage: str, questions: List[Question], answers: UserAnswers) -> EvaluationResult:
        prompt = evaluation_prompt(passage, questions, answers, self.reading_level)
        try:
            raw = await self.client.generate(prompt, response_schema=EVALUATION_SCHEMA)
        except GeminiError as e:
            raise EvaluationError(f"Evaluation request failed: {e}") from e
        try:
            data = extract_json_object(raw)
            result = EvaluationResult.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise EvaluationError(f"Evaluation reply was malformed: {e}") from e
        return validate_evaluation(result, questions)
