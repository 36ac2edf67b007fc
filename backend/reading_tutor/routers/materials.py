from fastapi import APIRouter, Depends

from ..materials import MaterialRepository, get_materials
from ..views import material_card

router = APIRouter(prefix="/materials", tags=["materials"])


@router.get("")
def list_materials(materials: MaterialRepository = Depends(get_materials)):
	return {"materials": [material_card(m) for m in materials.list()]}
