from __future__ import annotations
import uuid
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # Wire format (Gemini schemas and API responses) is camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionType(str, Enum):
    EXPLICIT = "Explicit Information"
    IMPLICIT = "Implicit Information"
    CRITICAL = "Critical Thinking"
    VOCABULARY = "Vocabulary in Context"


# ----------------------------------------------------------------------------
# Reading materials
# ----------------------------------------------------------------------------

class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["text"] = "text"
    text: str


class PdfContent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["pdf"] = "pdf"
    filename: str
    data: bytes = Field(repr=False, exclude=True)


class DocxContent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["docx"] = "docx"
    filename: str
    data: bytes = Field(repr=False, exclude=True)


class UrlContent(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["url"] = "url"
    url: str


MaterialContent = Annotated[
    Union[TextContent, PdfContent, DocxContent, UrlContent],
    Field(discriminator="type"),
]


class ReadingMaterial(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    content: MaterialContent


# ----------------------------------------------------------------------------
# Sessions and evaluation
# ----------------------------------------------------------------------------

class Question(_CamelModel):
    id: str
    type: QuestionType
    question_text: str
    options: Optional[List[str]] = None
    correct_answer: str


class SessionData(_CamelModel):
    passage: str
    questions: List[Question]


class GeneratedQuestions(_CamelModel):
    """Passage-mode reply: the questions only."""
    questions: List[Question]


UserAnswers = Dict[str, str]


class Feedback(_CamelModel):
    question_id: str
    question_text: str
    user_answer: str
    is_correct: bool
    explanation: str


class Recommendation(_CamelModel):
    title: str
    reason: str


class EvaluationResult(_CamelModel):
    score: int
    total_questions: int
    strengths: str
    areas_for_growth: str
    feedback: List[Feedback]
    recommendations: List[Recommendation]
