import json
import os
from typing import Any, Dict, List, Tuple

os.environ["GEMINI_API_KEY"] = "test-key"
os.environ.pop("API_KEY", None)
os.environ.pop("OPENROUTER_API_KEY", None)

import httpx
import pytest
from fastapi.testclient import TestClient

from reading_tutor.gemini_client import GeminiClient, get_gemini_client
from reading_tutor.main import app
from reading_tutor.materials import MaterialRepository


PASSAGE = (
    "Coral reefs cover less than one percent of the ocean floor, yet they shelter about a quarter "
    "of all marine species. Warming seas cause corals to expel the algae that feed them, a process "
    "called bleaching. Scientists are now growing heat-tolerant corals in nurseries and replanting them."
)


def make_questions(ids=("q1", "q2", "q3", "q4")) -> List[Dict[str, Any]]:
    return [
        {
            "id": ids[0],
            "type": "Explicit Information",
            "questionText": "How much of the ocean floor do coral reefs cover?",
            "options": ["Less than one percent", "About ten percent", "A quarter", "Half"],
            "correctAnswer": "Less than one percent",
        },
        {
            "id": ids[1],
            "type": "Implicit Information",
            "questionText": "Why might scientists grow corals in nurseries?",
            "options": [
                "To sell them to aquariums",
                "To help reefs survive warmer water",
                "To study algae in a lab",
                "To replace fishing boats",
            ],
            "correctAnswer": "To help reefs survive warmer water",
        },
        {
            "id": ids[2],
            "type": "Critical Thinking",
            "questionText": "Do you think replanting corals is enough to save reefs? Explain.",
            "options": None,
            "correctAnswer": "Replanting helps, but reducing ocean warming is also needed.",
        },
        {
            "id": ids[3],
            "type": "Vocabulary in Context",
            "questionText": "In the passage, what does 'expel' mean?",
            "options": ["Absorb", "Push out", "Grow", "Protect"],
            "correctAnswer": "Push out",
        },
    ]


def make_session(passage: str = PASSAGE) -> Dict[str, Any]:
    return {"passage": passage, "questions": make_questions()}


def make_evaluation(correct=(True, True, False, True)) -> Dict[str, Any]:
    questions = make_questions()
    return {
        "score": sum(1 for c in correct if c),
        "totalQuestions": 4,
        "strengths": "You found stated facts and word meanings quickly.",
        "areasForGrowth": "Support your opinions with evidence from the text.",
        "feedback": [
            {
                "questionId": q["id"],
                "questionText": q["questionText"],
                "userAnswer": q["correctAnswer"] if ok else "I don't know",
                "isCorrect": ok,
                "explanation": "Explained.",
            }
            for q, ok in zip(questions, correct)
        ],
        "recommendations": [
            {"title": "Why Oceans Are Warming", "reason": "To practice evaluating arguments"},
            {"title": "The Great Barrier Reef Today", "reason": "To practice using evidence"},
        ],
    }


def gemini_body(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeGemini:
    """Stands in for the Gemini REST endpoint; replies are served in queue order."""

    def __init__(self) -> None:
        self.replies: List[Tuple[int, Any]] = []
        self.requests: List[Dict[str, Any]] = []
        self.urls: List[httpx.URL] = []

    def reply_text(self, text: str) -> None:
        self.replies.append((200, gemini_body(text)))

    def reply_json(self, obj: Any) -> None:
        self.reply_text(json.dumps(obj))

    def fail(self, status: int = 503) -> None:
        self.replies.append((status, {"error": {"code": status, "message": "unavailable"}}))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(request.url)
        self.requests.append(json.loads(request.content))
        if not self.replies:
            return httpx.Response(500, json={"error": "no reply queued"})
        status, body = self.replies.pop(0)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def prompt(self, index: int = -1) -> str:
        return self.requests[index]["contents"][0]["parts"][0]["text"]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def gemini(fake_gemini) -> GeminiClient:
    return GeminiClient(api_key="test-key", transport=fake_gemini.transport)


@pytest.fixture
def api(fake_gemini):
    async def _client():
        client = GeminiClient(api_key="test-key", transport=fake_gemini.transport)
        try:
            yield client
        finally:
            await client.aclose()

    app.dependency_overrides[get_gemini_client] = _client
    app.state.materials = MaterialRepository.with_builtin()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
