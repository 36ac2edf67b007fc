from __future__ import annotations
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from .errors import GenerationError
from .gemini_client import GeminiClient, GeminiError, extract_json_object
from .models import GeneratedQuestions, Question, QuestionType, SessionData
from .settings import settings

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Sorry, we couldn't generate a reading session. Please try again."

QUESTION_IDS = ["q1", "q2", "q3", "q4"]
OPTIONS_PER_QUESTION = 4

QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "id": {"type": "STRING", "description": "A unique identifier for the question: 'q1', 'q2', 'q3' or 'q4'."},
        "type": {
            "type": "STRING",
            "enum": [t.value for t in QuestionType],
            "description": "The type of question.",
        },
        "questionText": {"type": "STRING", "description": "The text of the question."},
        "options": {
            "type": "ARRAY",
            "description": f"Exactly 4 multiple-choice options. Omit for the '{QuestionType.CRITICAL.value}' question type.",
            "items": {"type": "STRING"},
        },
        "correctAnswer": {
            "type": "STRING",
            "description": "The correct answer. For multiple choice, one of the options verbatim. For open-ended questions, a model answer.",
        },
    },
    "required": ["id", "type", "questionText", "correctAnswer"],
}

QUESTIONS_ARRAY_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "description": "Exactly 4 questions based on the passage, one of each type.",
    "items": QUESTION_SCHEMA,
}

TOPIC_SESSION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "passage": {
            "type": "STRING",
            "description": "A 300-400 word informative and engaging article on the given topic.",
        },
        "questions": QUESTIONS_ARRAY_SCHEMA,
    },
    "required": ["passage", "questions"],
}

PASSAGE_QUESTIONS_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {"questions": QUESTIONS_ARRAY_SCHEMA},
    "required": ["questions"],
}


def _question_type_instructions() -> str:
    return (
        f"- '{QuestionType.EXPLICIT.value}': asks about information stated directly in the text.\n"
        f"- '{QuestionType.IMPLICIT.value}': asks the reader to infer meaning that is not directly stated.\n"
        f"- '{QuestionType.CRITICAL.value}': asks for an opinion, evaluation, or real-world application of the text's ideas. "
        "This must be open-ended (no options); give a model answer as correctAnswer.\n"
        f"- '{QuestionType.VOCABULARY.value}': asks for the meaning of a specific word from the passage in its context.\n"
        "For every multiple-choice question provide exactly 4 plausible options with only one correct; "
        "correctAnswer must repeat that option verbatim.\n"
        "The question ids must be 'q1', 'q2', 'q3' and 'q4', in order."
    )


def topic_prompt(topic: str, reading_level: str) -> str:
    return (
        "You are an AI assistant for an educational platform helping a student improve reading comprehension.\n"
        f"Generate a complete reading session on the topic: \"{topic}\".\n"
        f"1. A reading passage of about 300-400 words, informative and well structured, written for {reading_level}.\n"
        "2. Exactly four questions based on the passage, one of each of the following types:\n"
        f"{_question_type_instructions()}\n"
        "Return the session as a single JSON object matching the provided schema."
    )


def passage_prompt(passage: str, reading_level: str) -> str:
    return (
        "You are an AI assistant for an educational platform helping a student improve reading comprehension.\n"
        f"Write comprehension questions for the passage below, pitched for {reading_level}.\n"
        f"Passage (verbatim):\n---\n{passage}\n---\n"
        "Write exactly four questions answerable from the passage, one of each of the following types:\n"
        f"{_question_type_instructions()}\n"
        "Return the questions as a single JSON object matching the provided schema."
    )


def validate_questions(questions: List[Question]) -> List[Question]:
    """Check the one-per-type structure and return the questions with normalized ids."""
    if len(questions) != len(QuestionType):
        raise GenerationError(f"Expected {len(QuestionType)} questions, got {len(questions)}")
    types = [q.type for q in questions]
    if set(types) != set(QuestionType):
        raise GenerationError(f"Each question type must appear exactly once, got {[t.value for t in types]}")

    normalized: List[Question] = []
    for qid, q in zip(QUESTION_IDS, questions):
        if not q.question_text.strip() or not q.correct_answer.strip():
            raise GenerationError(f"Question {qid} is missing its text or answer")
        if q.type is QuestionType.CRITICAL:
            options = None
        else:
            options = [str(o).strip() for o in (q.options or [])]
            if len(options) != OPTIONS_PER_QUESTION or not all(options):
                raise GenerationError(f"Question {qid} must have exactly {OPTIONS_PER_QUESTION} options")
            if q.correct_answer.strip() not in options:
                raise GenerationError(f"Question {qid} correct answer is not one of its options")
        if q.id != qid:
            logger.debug("Renumbering generated question %r as %s", q.id, qid)
        normalized.append(
            q.model_copy(update={
                "id": qid,
                "question_text": q.question_text.strip(),
                "options": options,
                "correct_answer": q.correct_answer.strip(),
            })
        )
    return normalized


class SessionGenerator:
    def __init__(self, client: GeminiClient, *, reading_level: str | None = None) -> None:
        self.client = client
        self.reading_level = reading_level or settings.reading_level

    async def _request(self, prompt: str, schema: Dict[str, Any]) -> Any:
        try:
            raw = await self.client.generate(prompt, response_schema=schema)
        except GeminiError as e:
            raise GenerationError(f"Generation request failed: {e}") from e
        try:
            return extract_json_object(raw)
        except ValueError as e:
            raise GenerationError("Generation reply was not valid JSON") from e

    async def generate_for_topic(self, topic: str) -> SessionData:
        topic = (topic or "").strip()
        if not topic:
            raise GenerationError("A topic is required")
        data = await self._request(topic_prompt(topic, self.reading_level), TOPIC_SESSION_SCHEMA)
        try:
            session = SessionData.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"Generation reply did not match the schema: {e}") from e
        passage = session.passage.strip()
        if not passage:
            raise GenerationError("Generation reply contained an empty passage")
        return SessionData(passage=passage, questions=validate_questions(session.questions))

    async def generate_for_passage(self, passage: str) -> SessionData:
        data = await self._request(passage_prompt(passage, self.reading_level), PASSAGE_QUESTIONS_SCHEMA)
        try:
            generated = GeneratedQuestions.model_validate(data)
        except ValidationError as e:
            raise GenerationError(f"Generation reply did not match the schema: {e}") from e
        return SessionData(passage=passage, questions=validate_questions(generated.questions))
