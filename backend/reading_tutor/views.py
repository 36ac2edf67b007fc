"""Read-only snapshots of a flow, one shape per view, for the browser to render."""

from __future__ import annotations
from typing import Any, Dict, List

from .materials import ACCEPTED_EXTENSIONS, INPUT_MODES, MAX_UPLOAD_MB, MaterialRepository
from .models import EvaluationResult, Question, QuestionType, ReadingMaterial
from .state_machine import Role, TutorFlow, View

SUGGESTED_TOPICS: List[str] = ["Environment", "Technology", "History", "Science"]

LOADING_MESSAGE = "AI is thinking..."
TRY_AGAIN_LABEL = "Try Again"


def material_card(material: ReadingMaterial) -> Dict[str, Any]:
    return {"id": material.id, "title": material.title, "contentType": material.content.type}


def question_card(question: Question, number: int, answer: str) -> Dict[str, Any]:
    open_ended = question.type is QuestionType.CRITICAL
    return {
        "id": question.id,
        "number": number,
        "type": question.type.value,
        "questionText": question.question_text,
        "input": "textarea" if open_ended else "radio",
        "options": None if open_ended else list(question.options or []),
        "answer": answer,
    }


def passage_paragraphs(passage: str) -> List[str]:
    return [p.strip() for p in passage.split("\n\n") if p.strip()]


def results_payload(result: EvaluationResult) -> Dict[str, Any]:
    headline = (
        "Great job! You're making excellent progress."
        if result.score > 2
        else "Keep practicing, you'll get there!"
    )
    return {
        "scoreLabel": f"{result.score} / {result.total_questions}",
        "headline": headline,
        **result.model_dump(by_alias=True, mode="json"),
    }


def render(flow: TutorFlow, materials: MaterialRepository) -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {
        "flowId": flow.flow_id,
        "view": flow.view.value,
        "role": flow.role.value if flow.role else None,
    }
    view = flow.view
    if view is View.ROLE_SELECTION:
        snapshot["roles"] = [r.value for r in Role]
    elif view is View.STUDENT_DASHBOARD:
        snapshot["materials"] = [material_card(m) for m in materials.list()]
        snapshot["topics"] = list(SUGGESTED_TOPICS)
    elif view is View.INSTRUCTOR_DASHBOARD:
        snapshot["materials"] = [material_card(m) for m in materials.list()]
        snapshot["form"] = {
            "modes": list(INPUT_MODES),
            "acceptedExtensions": list(ACCEPTED_EXTENSIONS),
            "maxUploadMb": MAX_UPLOAD_MB,
        }
    elif view is View.LOADING:
        snapshot["step"] = flow.loading_step.value if flow.loading_step else None
        snapshot["message"] = LOADING_MESSAGE
    elif view is View.READING_SESSION:
        session = flow.session
        snapshot["material"] = material_card(flow.material) if flow.material else None
        snapshot["topic"] = flow.topic
        snapshot["paragraphs"] = passage_paragraphs(session.passage)
        snapshot["questions"] = [
            question_card(q, i + 1, flow.answers.get(q.id, "")) for i, q in enumerate(session.questions)
        ]
        snapshot["questionIndex"] = flow.question_index
        snapshot["answeredCount"] = len(flow.answers)
        snapshot["canAdvance"] = flow.can_advance
        snapshot["canRetreat"] = flow.can_retreat
        snapshot["canSubmit"] = flow.can_submit
    elif view is View.RESULTS:
        snapshot["results"] = results_payload(flow.evaluation)
    elif view is View.ERROR:
        snapshot["message"] = flow.error_message
        snapshot["action"] = TRY_AGAIN_LABEL
    return snapshot
