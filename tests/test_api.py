from io import BytesIO

import docx
import pytest

from reading_tutor.extraction import EXTRACT_FAILED_SENTINEL
from reading_tutor.main import ensure_configured
from reading_tutor.settings import settings

from conftest import make_evaluation, make_questions, make_session


ANSWERS = {
    "q1": "Less than one percent",
    "q2": "To help reefs survive warmer water",
    "q3": "Not really, the oceans need to stop warming too.",
    "q4": "Push out",
}


def new_flow(api, role=None):
    r = api.post("/flows")
    assert r.status_code == 201
    flow_id = r.json()["flowId"]
    if role:
        r = api.post(f"/flows/{flow_id}/role", json={"role": role})
        assert r.status_code == 200
    return flow_id


def test_health_and_info(api):
    assert api.get("/health").json() == {"status": "ok"}
    info = api.get("/info").json()
    assert info["gemini_configured"] is True


def test_materials_list_has_builtin(api):
    materials = api.get("/materials").json()["materials"]
    assert len(materials) == 1
    assert materials[0]["contentType"] == "text"


def test_new_flow_starts_at_role_selection(api):
    r = api.post("/flows")
    assert r.json()["view"] == "role_selection"
    assert api.get(f"/flows/{r.json()['flowId']}").json()["view"] == "role_selection"


def test_unknown_flow_is_404(api):
    assert api.get("/flows/nope").status_code == 404


def test_topic_session_end_to_end(api, fake_gemini):
    flow_id = new_flow(api, "student")
    fake_gemini.reply_json(make_session())

    r = api.post(f"/flows/{flow_id}/topics/select", json={"topic": "Environment"})
    snapshot = r.json()
    assert snapshot["view"] == "reading_session"
    assert len(snapshot["questions"]) == 4

    r = api.post(f"/flows/{flow_id}/submit")
    assert r.status_code == 409

    for qid, value in ANSWERS.items():
        r = api.put(f"/flows/{flow_id}/answers/{qid}", json={"value": value})
        assert r.status_code == 200
    assert r.json()["canSubmit"] is True

    fake_gemini.reply_json(make_evaluation())
    r = api.post(f"/flows/{flow_id}/submit")
    results = r.json()["results"]
    assert r.json()["view"] == "results"
    assert results["scoreLabel"] == "3 / 4"
    assert results["strengths"] and results["areasForGrowth"]
    assert len(results["recommendations"]) == 2

    r = api.post(f"/flows/{flow_id}/restart")
    assert r.json()["view"] == "student_dashboard"


def test_question_navigation(api, fake_gemini):
    flow_id = new_flow(api, "student")
    fake_gemini.reply_json(make_session())
    api.post(f"/flows/{flow_id}/topics/select", json={"topic": "Science"})

    assert api.post(f"/flows/{flow_id}/advance").status_code == 409
    assert api.post(f"/flows/{flow_id}/retreat").status_code == 409
    api.put(f"/flows/{flow_id}/answers/q1", json={"value": "Half"})
    r = api.post(f"/flows/{flow_id}/advance")
    assert r.json()["questionIndex"] == 1
    r = api.post(f"/flows/{flow_id}/retreat")
    assert r.json()["questionIndex"] == 0
    assert api.put(f"/flows/{flow_id}/answers/q7", json={"value": "x"}).status_code == 404


def test_url_material_sentinel_leads_to_error(api, fake_gemini):
    instructor = new_flow(api, "instructor")
    r = api.post(
        f"/flows/{instructor}/materials",
        data={"title": "Web article", "mode": "url", "url": "https://example.com/x"},
    )
    assert r.status_code == 201
    assert r.json()["view"] == "instructor_dashboard"
    material_id = r.json()["material"]["id"]

    student = new_flow(api, "student")
    fake_gemini.reply_text(EXTRACT_FAILED_SENTINEL)
    r = api.post(f"/flows/{student}/materials/{material_id}/select")
    snapshot = r.json()
    assert snapshot["view"] == "error"
    assert snapshot["message"].startswith("Could not extract readable text from the URL")
    assert snapshot["action"] == "Try Again"

    r = api.post(f"/flows/{student}/restart")
    assert r.json()["view"] == "student_dashboard"


def test_short_text_material_leads_to_error(api, fake_gemini):
    instructor = new_flow(api, "instructor")
    r = api.post(
        f"/flows/{instructor}/materials",
        data={"title": "Tiny", "mode": "text", "text": "Thirty characters of text here"},
    )
    material_id = r.json()["material"]["id"]

    student = new_flow(api, "student")
    r = api.post(f"/flows/{student}/materials/{material_id}/select")
    assert r.json()["view"] == "error"
    assert r.json()["message"].startswith("The provided text is too short")
    assert fake_gemini.requests == []


def test_docx_upload_becomes_a_session(api, fake_gemini):
    document = docx.Document()
    document.add_paragraph("Coral reefs cover less than one percent of the ocean floor.")
    document.add_paragraph("Warming seas cause corals to expel the algae that feed them.")
    buffer = BytesIO()
    document.save(buffer)

    instructor = new_flow(api, "instructor")
    r = api.post(
        f"/flows/{instructor}/materials",
        data={"title": "Reefs", "mode": "file"},
        files={"file": ("reefs.docx", buffer.getvalue(), "application/octet-stream")},
    )
    assert r.status_code == 201
    assert r.json()["material"]["contentType"] == "docx"

    student = new_flow(api, "student")
    fake_gemini.reply_json({"questions": make_questions()})
    r = api.post(f"/flows/{student}/materials/{r.json()['material']['id']}/select")
    snapshot = r.json()
    assert snapshot["view"] == "reading_session"
    assert snapshot["paragraphs"][0].startswith("Coral reefs cover")
    assert "Warming seas" in fake_gemini.prompt()


@pytest.mark.parametrize(
    "form, detail",
    [
        ({"title": "", "mode": "text", "text": "Body"}, "Please provide a title."),
        ({"title": "Link", "mode": "url", "url": "not a url"}, "Please enter a valid URL."),
        ({"title": "Empty", "mode": "text", "text": ""}, "Please provide content for the selected input type."),
    ],
)
def test_form_errors_do_not_change_state(api, form, detail):
    instructor = new_flow(api, "instructor")
    r = api.post(f"/flows/{instructor}/materials", data=form)
    assert r.status_code == 400
    assert r.json()["detail"] == detail
    assert api.get(f"/flows/{instructor}").json()["view"] == "instructor_dashboard"
    assert len(api.get("/materials").json()["materials"]) == 1


def test_unsupported_upload_is_rejected(api):
    instructor = new_flow(api, "instructor")
    r = api.post(
        f"/flows/{instructor}/materials",
        data={"title": "Notes", "mode": "file"},
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Unsupported file type")


def test_generation_failure_surfaces_generic_message(api, fake_gemini):
    flow_id = new_flow(api, "student")
    fake_gemini.fail(503)
    r = api.post(f"/flows/{flow_id}/topics/select", json={"topic": "History"})
    assert r.json()["view"] == "error"
    assert r.json()["message"] == "Sorry, we couldn't generate a reading session. Please try again."


def test_switch_role(api):
    flow_id = new_flow(api, "instructor")
    r = api.post(f"/flows/{flow_id}/switch-role")
    assert r.json()["view"] == "role_selection"


def test_unknown_material_is_404(api):
    flow_id = new_flow(api, "student")
    assert api.post(f"/flows/{flow_id}/materials/missing/select").status_code == 404


def test_missing_api_key_aborts_startup(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    with pytest.raises(RuntimeError):
        ensure_configured()
