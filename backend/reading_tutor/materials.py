from __future__ import annotations
from typing import List, Optional

from fastapi import Request
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from .errors import FormValidationError
from .models import DocxContent, MaterialContent, PdfContent, ReadingMaterial, TextContent, UrlContent


INPUT_MODES = ("text", "file", "url")
ACCEPTED_EXTENSIONS = (".pdf", ".docx")
MAX_UPLOAD_MB = 10  # advisory only, shown by the form

_url_adapter = TypeAdapter(AnyHttpUrl)


BUILTIN_MATERIAL = ReadingMaterial(
    id="builtin-honeybees",
    title="The Hidden Language of Honeybees",
    content=TextContent(
        text=(
            "When a honeybee discovers a field full of flowers, she does not keep the news to herself. "
            "Back at the hive, she performs a remarkable dance on the honeycomb that tells her sisters "
            "exactly where to find the food. Scientists call this the waggle dance, and it is one of the "
            "most sophisticated forms of communication in the animal kingdom.\n\n"
            "The dance follows a figure-eight pattern. In the middle section, the bee shakes her body from "
            "side to side while moving in a straight line. The angle of that line, compared with straight "
            "up on the vertical comb, matches the angle between the sun and the food source. If the bee "
            "waggles straight upward, the flowers lie directly toward the sun. The length of the waggle run "
            "signals distance: the longer she waggles, the farther the other bees must fly.\n\n"
            "The Austrian scientist Karl von Frisch spent decades decoding this behavior, and in 1973 he "
            "shared the Nobel Prize for his work. At first, many researchers doubted that insects could "
            "pass on such precise information. Later experiments, which tracked bees with tiny radar "
            "transmitters, confirmed that recruits really do use the dance to locate distant flowers.\n\n"
            "The dance is not perfect. Bees that follow it often search around the general area before "
            "finding the exact spot, relying on scent and memory to finish the job. Still, the system is "
            "efficient enough to let a colony focus its workers on the richest patches of nectar, even when "
            "flowers bloom and fade quickly.\n\n"
            "Today, honeybee populations face serious threats from pesticides, disease, and the loss of "
            "wildflower meadows. Understanding how bees share information helps farmers and conservation "
            "groups plant gardens and crops in ways that support them. The next time you see a bee resting "
            "on a flower, remember that she may soon be dancing a map for thousands of her sisters."
        )
    ),
)


class MaterialRepository:
    """In-memory list of reading materials shared by every flow. Materials are never removed."""

    def __init__(self, materials: Optional[List[ReadingMaterial]] = None) -> None:
        self._materials: List[ReadingMaterial] = list(materials or [])

    @classmethod
    def with_builtin(cls) -> "MaterialRepository":
        return cls([BUILTIN_MATERIAL])

    def list(self) -> List[ReadingMaterial]:
        return list(self._materials)

    def get(self, material_id: str) -> Optional[ReadingMaterial]:
        for material in self._materials:
            if material.id == material_id:
                return material
        return None

    def add(self, title: str, content: MaterialContent) -> ReadingMaterial:
        title = (title or "").strip()
        if not title:
            raise FormValidationError("Please provide a title.")
        material = ReadingMaterial(title=title, content=content)
        self._materials.append(material)
        return material

    def __len__(self) -> int:
        return len(self._materials)


def build_material_content(
    mode: str,
    *,
    text: Optional[str] = None,
    url: Optional[str] = None,
    filename: Optional[str] = None,
    data: Optional[bytes] = None,
) -> MaterialContent:
    """Turn the add-material form fields into exactly one content variant.

    Only the field belonging to ``mode`` is read, so switching tabs in the form
    never leaks stale input from another mode into the material.
    """
    if mode == "text":
        if not text or not text.strip():
            raise FormValidationError("Please provide content for the selected input type.")
        return TextContent(text=text)
    if mode == "file":
        if not filename or not data:
            raise FormValidationError("Please provide content for the selected input type.")
        lowered = filename.lower()
        if lowered.endswith(".pdf"):
            return PdfContent(filename=filename, data=data)
        if lowered.endswith(".docx"):
            return DocxContent(filename=filename, data=data)
        raise FormValidationError("Unsupported file type. Please upload a PDF or DOCX file.")
    if mode == "url":
        if not url or not url.strip():
            raise FormValidationError("Please provide content for the selected input type.")
        try:
            _url_adapter.validate_python(url.strip())
        except ValidationError as e:
            raise FormValidationError("Please enter a valid URL.") from e
        return UrlContent(url=url.strip())
    raise FormValidationError(f"Unknown input type {mode!r}; expected one of {', '.join(INPUT_MODES)}.")


def get_materials(request: Request) -> MaterialRepository:
    return request.app.state.materials
