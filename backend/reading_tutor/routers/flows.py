from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from ..evaluation import AnswerEvaluator
from ..extraction import ContentExtractor
from ..gemini_client import GeminiClient, get_gemini_client
from ..generation import SessionGenerator
from ..materials import MaterialRepository, get_materials
from ..state_machine import Role, TutorFlow
from ..views import material_card, render


router = APIRouter(prefix="/flows", tags=["flows"])


class RoleRequest(BaseModel):
    role: Role


class TopicRequest(BaseModel):
    topic: str = Field(min_length=1, description="Any reading topic, e.g. 'Environment'")


class AnswerRequest(BaseModel):
    value: str = ""


# Process-lifetime store; flows are never evicted and vanish on restart
_flows: Dict[str, TutorFlow] = {}


def _get_flow(flow_id: str) -> TutorFlow:
    flow = _flows.get(flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail="Flow not found")
    return flow


@router.post("", status_code=201)
async def create_flow(materials: MaterialRepository = Depends(get_materials)) -> Dict[str, Any]:
    flow = TutorFlow()
    _flows[flow.flow_id] = flow
    return render(flow, materials)


@router.get("/{flow_id}")
async def get_flow(flow_id: str, materials: MaterialRepository = Depends(get_materials)) -> Dict[str, Any]:
    return render(_get_flow(flow_id), materials)


@router.post("/{flow_id}/role")
async def select_role(flow_id: str, req: RoleRequest, materials: MaterialRepository = Depends(get_materials)):
    flow = _get_flow(flow_id)
    flow.select_role(req.role)
    return render(flow, materials)


@router.post("/{flow_id}/switch-role")
async def switch_role(flow_id: str, materials: MaterialRepository = Depends(get_materials)):
    flow = _get_flow(flow_id)
    flow.switch_role()
    return render(flow, materials)


@router.post("/{flow_id}/restart")
async def restart(flow_id: str, materials: MaterialRepository = Depends(get_materials)):
    flow = _get_flow(flow_id)
    flow.restart()
    return render(flow, materials)


@router.post("/{flow_id}/materials", status_code=201)
async def add_material(
    flow_id: str,
    title: str = Form(""),
    mode: str = Form("text"),
    text: Optional[str] = Form(None),
    url: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    materials: MaterialRepository = Depends(get_materials),
):
    flow = _get_flow(flow_id)
    filename: Optional[str] = None
    data: Optional[bytes] = None
    if mode == "file" and file is not None:
        filename = file.filename
        data = await file.read()
    material = flow.add_material(materials, title, mode, text=text, url=url, filename=filename, data=data)
    return {"material": material_card(material), **render(flow, materials)}


@router.post("/{flow_id}/materials/{material_id}/select")
async def select_material(
    flow_id: str,
    material_id: str,
    client: GeminiClient = Depends(get_gemini_client),
    materials: MaterialRepository = Depends(get_materials),
):
    flow = _get_flow(flow_id)
    material = materials.get(material_id)
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    await flow.select_material(material, ContentExtractor(client), SessionGenerator(client))
    return render(flow, materials)


@router.post("/{flow_id}/topics/select")
async def select_topic(
    flow_id: str,
    req: TopicRequest,
    client: GeminiClient = Depends(get_gemini_client),
    materials: MaterialRepository = Depends(get_materials),
):
    flow = _get_flow(flow_id)
    await flow.select_topic(req.topic.strip(), SessionGenerator(client))
    return render(flow, materials)


@router.put("/{flow_id}/answers/{question_id}")
async def answer(
    flow_id: str,
    question_id: str,
    req: AnswerRequest,
    materials: MaterialRepository = Depends(get_materials),
):
    flow = _get_flow(flow_id)
    try:
        flow.answer(question_id, req.value)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown question_id for this session")
    return render(flow, materials)


@router.post("/{flow_id}/advance")
async def advance(flow_id: str, materials: MaterialRepository = Depends(get_materials)):
    flow = _get_flow(flow_id)
    flow.advance()
    return render(flow, materials)


@router.post("/{flow_id}/retreat")
async def retreat(flow_id: str, materials: MaterialRepository = Depends(get_materials)):
    flow = _get_flow(flow_id)
    flow.retreat()
    return render(flow, materials)


@router.post("/{flow_id}/submit")
async def submit(
    flow_id: str,
    client: GeminiClient = Depends(get_gemini_client),
    materials: MaterialRepository = Depends(get_materials),
):
    flow = _get_flow(flow_id)
    await flow.submit(AnswerEvaluator(client))
    return render(flow, materials)
