"""
Application flow.

A ``TutorFlow`` is one user's walk through the tutor:

    role_selection -> student_dashboard -> loading(extract/generate) -> reading_session
                   -> loading(evaluate) -> results -> student_dashboard | role_selection

    role_selection -> instructor_dashboard (adds materials, stays put)

Any loading step can land in ``error``; the user leaves it with an explicit
restart. Adapters are passed in per call so the flow itself holds no client.
"""

from __future__ import annotations
import logging
import uuid
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import (
    EvaluationError,
    ExtractionError,
    ExtractionFailure,
    FormValidationError,
    GenerationError,
    TransitionError,
)
from .evaluation import EVALUATION_FAILED_MESSAGE, AnswerEvaluator
from .extraction import ContentExtractor, failure_message_for
from .generation import GENERATION_FAILED_MESSAGE, SessionGenerator
from .materials import MaterialRepository, build_material_content
from .models import EvaluationResult, ReadingMaterial, SessionData, UserAnswers
from .settings import settings

logger = logging.getLogger(__name__)


class View(str, Enum):
    ROLE_SELECTION = "role_selection"
    STUDENT_DASHBOARD = "student_dashboard"
    INSTRUCTOR_DASHBOARD = "instructor_dashboard"
    LOADING = "loading"
    READING_SESSION = "reading_session"
    RESULTS = "results"
    ERROR = "error"


class Role(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"


class LoadingStep(str, Enum):
    EXTRACT = "extract"
    GENERATE = "generate"
    EVALUATE = "evaluate"


class TutorFlow:
    def __init__(self, flow_id: Optional[str] = None, *, min_passage_chars: Optional[int] = None) -> None:
        self.flow_id = flow_id or uuid.uuid4().hex
        self.min_passage_chars = settings.min_passage_chars if min_passage_chars is None else min_passage_chars
        self.view = View.ROLE_SELECTION
        self.role: Optional[Role] = None
        self.loading_step: Optional[LoadingStep] = None
        self.material: Optional[ReadingMaterial] = None
        self.topic: Optional[str] = None
        self.session: Optional[SessionData] = None
        self.answers: UserAnswers = {}
        self.question_index = 0
        self.evaluation: Optional[EvaluationResult] = None
        self.error_message = ""
        # Bumped whenever the user navigates away; in-flight work from an older epoch is discarded
        self._epoch = 0

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _require(self, *views: View) -> None:
        if self.view not in views:
            allowed = ", ".join(v.value for v in views)
            raise TransitionError(f"Action not available in view '{self.view.value}' (needs {allowed})")

    def _cancel_check(self) -> Callable[[], bool]:
        epoch = self._epoch
        return lambda: self._epoch != epoch

    def _begin_loading(self, step: LoadingStep) -> Callable[[], bool]:
        self.view = View.LOADING
        self.loading_step = step
        self.error_message = ""
        return self._cancel_check()

    def _fail(self, message: str) -> None:
        self.view = View.ERROR
        self.loading_step = None
        self.session = None
        self.evaluation = None
        self.error_message = message

    def _clear(self) -> None:
        self._epoch += 1
        self.loading_step = None
        self.material = None
        self.topic = None
        self.session = None
        self.answers = {}
        self.question_index = 0
        self.evaluation = None
        self.error_message = ""

    @property
    def questions(self):
        return self.session.questions if self.session else []

    @property
    def all_answered(self) -> bool:
        return bool(self.questions) and all(self.answers.get(q.id, "").strip() for q in self.questions)

    @property
    def can_advance(self) -> bool:
        if self.view is not View.READING_SESSION:
            return False
        if self.question_index >= len(self.questions) - 1:
            return False
        current = self.questions[self.question_index]
        return bool(self.answers.get(current.id, "").strip())

    @property
    def can_retreat(self) -> bool:
        return self.view is View.READING_SESSION and self.question_index > 0

    @property
    def can_submit(self) -> bool:
        return self.view is View.READING_SESSION and self.all_answered

    # ------------------------------------------------------------------
    # navigation
    # ------------------------------------------------------------------

    def select_role(self, role: Role) -> None:
        self._require(View.ROLE_SELECTION)
        self.role = Role(role)
        self.view = View.STUDENT_DASHBOARD if self.role is Role.STUDENT else View.INSTRUCTOR_DASHBOARD

    def restart(self) -> None:
        if self.role is not Role.STUDENT or self.view is View.ROLE_SELECTION:
            raise TransitionError("Restart is only available to students")
        self._clear()
        self.view = View.STUDENT_DASHBOARD

    def switch_role(self) -> None:
        self._clear()
        self.role = None
        self.view = View.ROLE_SELECTION

    # ------------------------------------------------------------------
    # instructor
    # ------------------------------------------------------------------

    def add_material(
        self,
        repository: MaterialRepository,
        title: str,
        mode: str,
        *,
        text: Optional[str] = None,
        url: Optional[str] = None,
        filename: Optional[str] = None,
        data: Optional[bytes] = None,
    ) -> ReadingMaterial:
        self._require(View.INSTRUCTOR_DASHBOARD)
        if not (title or "").strip():
            raise FormValidationError("Please provide a title.")
        content = build_material_content(mode, text=text, url=url, filename=filename, data=data)
        material = repository.add(title, content)
        logger.info("Material %s added (%s): %s", material.id, material.content.type, material.title)
        return material

    # ------------------------------------------------------------------
    # student: session setup
    # ------------------------------------------------------------------

    async def select_material(
        self,
        material: ReadingMaterial,
        extractor: ContentExtractor,
        generator: SessionGenerator,
    ) -> None:
        self._require(View.STUDENT_DASHBOARD)
        self.material = material
        is_cancelled = self._begin_loading(LoadingStep.EXTRACT)
        try:
            passage = await extractor.extract(material.content, is_cancelled)
            if is_cancelled():
                return
            passage = passage.strip()
            if len(passage) < self.min_passage_chars:
                raise ExtractionError(
                    ExtractionFailure.TEXT_TOO_SHORT,
                    f"{len(passage)} characters of text, below the {self.min_passage_chars} minimum",
                )
            self.loading_step = LoadingStep.GENERATE
            session = await generator.generate_for_passage(passage)
        except ExtractionError as e:
            if is_cancelled():
                return
            logger.warning("Extraction failed for material %s (%s): %s", material.id, e.kind.value, e.message)
            self._fail(failure_message_for(material.content))
            return
        except GenerationError as e:
            if is_cancelled():
                return
            logger.exception("Failed to generate a reading session for material %s: %s", material.id, e.message)
            self._fail(GENERATION_FAILED_MESSAGE)
            return
        except Exception:
            if is_cancelled():
                return
            logger.exception("Unexpected failure while preparing material %s", material.id)
            self._fail(GENERATION_FAILED_MESSAGE)
            return
        if is_cancelled():
            return
        self._enter_session(session)

    async def select_topic(self, topic: str, generator: SessionGenerator) -> None:
        self._require(View.STUDENT_DASHBOARD)
        self.topic = topic
        is_cancelled = self._begin_loading(LoadingStep.GENERATE)
        try:
            session = await generator.generate_for_topic(topic)
        except GenerationError as e:
            if is_cancelled():
                return
            logger.exception("Failed to generate a reading session for topic %r: %s", topic, e.message)
            self._fail(GENERATION_FAILED_MESSAGE)
            return
        except Exception:
            if is_cancelled():
                return
            logger.exception("Unexpected failure while generating a session for topic %r", topic)
            self._fail(GENERATION_FAILED_MESSAGE)
            return
        if is_cancelled():
            return
        self._enter_session(session)

    def _enter_session(self, session: SessionData) -> None:
        self.session = session
        self.answers = {}
        self.question_index = 0
        self.loading_step = None
        self.view = View.READING_SESSION

    # ------------------------------------------------------------------
    # student: answering
    # ------------------------------------------------------------------

    def answer(self, question_id: str, value: str) -> None:
        self._require(View.READING_SESSION)
        if question_id not in {q.id for q in self.questions}:
            raise KeyError(question_id)
        if value and value.strip():
            self.answers[question_id] = value
        else:
            # A cleared answer no longer counts toward submission
            self.answers.pop(question_id, None)

    def advance(self) -> None:
        self._require(View.READING_SESSION)
        if self.question_index >= len(self.questions) - 1:
            raise TransitionError("Already at the last question; submit your answers instead")
        if not self.can_advance:
            raise TransitionError("Answer the current question before moving on")
        self.question_index += 1

    def retreat(self) -> None:
        self._require(View.READING_SESSION)
        if self.question_index <= 0:
            raise TransitionError("Already at the first question")
        self.question_index -= 1

    async def submit(self, evaluator: AnswerEvaluator) -> None:
        self._require(View.READING_SESSION)
        if not self.all_answered:
            raise TransitionError("Please answer all questions before submitting.")
        session = self.session
        answers: Dict[str, str] = dict(self.answers)
        is_cancelled = self._begin_loading(LoadingStep.EVALUATE)
        try:
            result = await evaluator.evaluate(session.passage, session.questions, answers)
        except EvaluationError as e:
            if is_cancelled():
                return
            logger.exception("Failed to evaluate answers: %s", e.message)
            self._fail(EVALUATION_FAILED_MESSAGE)
            return
        except Exception:
            if is_cancelled():
                return
            logger.exception("Unexpected failure while evaluating answers")
            self._fail(EVALUATION_FAILED_MESSAGE)
            return
        if is_cancelled():
            return
        self.evaluation = result
        self.loading_step = None
        self.view = View.RESULTS
