import asyncio
import json
from typing import Any, Callable, Optional, Tuple

from pydantic import Field, ValidationInfo, field_validator

from .errors import AIUnavailable
from .generator import GenerativeClient
from .log import get_logger
from .parsing import parse_model
from .products import ProductDefinition
from .render import render
from .spec import (
    DesignSpecification,
    EditDelta,
    OverlayOpacity,
    SpecPatch,
    TextPosition,
    TextSize,
)


logger = get_logger("refine")

Renderer = Callable[..., bytes]

_SYNONYMS = {
    "centre": "center",
    "middle": "center",
    "bigger": "larger",
    "brighter": "lighter",
}


class EditAnalysis(SpecPatch):
    """Collaborator answer for an edit request: spec overrides plus layout overrides."""

    text_position: Optional[TextPosition] = Field(default=None, alias="textPosition")
    text_size: Optional[TextSize] = Field(default=None, alias="textSize")
    overlay_opacity: Optional[OverlayOpacity] = Field(default=None, alias="overlayOpacity")

    @field_validator("text_position", "text_size", "overlay_opacity", mode="before")
    @classmethod
    def normalize_choice(cls, v: Any, info: ValidationInfo) -> Optional[str]:
        if v is None:
            return None
        v = _SYNONYMS.get(str(v).strip().lower(), str(v).strip().lower())
        allowed = {
            "text_position": ("top", "center", "bottom"),
            "text_size": ("larger", "smaller"),
            "overlay_opacity": ("darker", "lighter"),
        }[info.field_name]
        # "same", "null" and anything unrecognised keep the default.
        return v if v in allowed else None

    def spec_patch(self) -> SpecPatch:
        return SpecPatch(**self.changes())

    def delta(self) -> EditDelta:
        return EditDelta(
            text_position=self.text_position,
            text_size=self.text_size,
            overlay_opacity=self.overlay_opacity,
        )


def classify_instruction(instruction: str) -> Tuple[SpecPatch, EditDelta]:
    """
    Keyword interpretation of an edit request, used when the collaborator is
    unavailable. Text that matches nothing yields an empty patch and delta.
    """
    text = instruction.lower()
    patch: dict = {}
    delta: dict = {}

    if "darker" in text:
        patch["color_palette"] = "Forest Green Dominant"
        delta["overlay_opacity"] = "darker"
    elif "brighter" in text or "lighter" in text:
        patch["color_palette"] = "Lemon Yellow Dominant"
        delta["overlay_opacity"] = "lighter"

    if "center" in text or "centre" in text:
        delta["text_position"] = "center"
    elif "top" in text:
        delta["text_position"] = "top"
    elif "bottom" in text:
        delta["text_position"] = "bottom"

    if "bigger" in text or "larger" in text:
        delta["text_size"] = "larger"
    elif "smaller" in text:
        delta["text_size"] = "smaller"

    if "remove date" in text or "no date" in text:
        patch["include_date"] = False
    elif "add date" in text or "include date" in text:
        patch["include_date"] = True

    return SpecPatch(**patch), EditDelta(**delta)


class RefineController:
    """
    Applies a free-text edit to one rendered asset by re-rendering it from
    its original upload with adjusted spec and layout.
    """

    def __init__(self, client: Optional[GenerativeClient], renderer: Renderer = render) -> None:
        self.client = client
        self.renderer = renderer

    async def refine(
        self,
        rendered: bytes,
        instruction: str,
        product: ProductDefinition,
        spec: DesignSpecification,
        original_source: Optional[bytes] = None,
    ) -> bytes:
        patch, delta = await self.interpret(rendered, instruction, product, spec)
        merged = spec.merged(patch)

        # Re-rendering a branded output would stack a second overlay and title.
        source = original_source if original_source is not None else rendered
        return await asyncio.to_thread(self.renderer, source, product, merged, delta)

    async def interpret(
        self,
        rendered: bytes,
        instruction: str,
        product: ProductDefinition,
        spec: DesignSpecification,
    ) -> Tuple[SpecPatch, EditDelta]:
        try:
            if self.client is None:
                raise AIUnavailable("No generative client configured")
            raw = await self.client.generate(
                self._build_prompt(instruction, product, spec),
                image=rendered,
                schema=EditAnalysis,
            )
            analysis = parse_model(raw, EditAnalysis)
        except AIUnavailable as exc:
            logger.warning(f"AI edit analysis failed, using keyword parsing: {exc}")
            return classify_instruction(instruction)
        return analysis.spec_patch(), analysis.delta()

    @staticmethod
    def _build_prompt(instruction: str, product: ProductDefinition, spec: DesignSpecification) -> str:
        return (
            "You are the Recipe Labs Creative Director analyzing a branded media asset for refinement.\n\n"
            f"CURRENT IMAGE: a Recipe Labs branded {product.name} with these design specifications:\n"
            f"{json.dumps(spec.to_wire(), indent=2)}\n\n"
            f'USER EDIT REQUEST: "{instruction}"\n\n'
            "Return JSON with any of these keys, using null to keep the current value:\n"
            "eventTitle, colorPalette, vibe, fontFamily, fontWeight (Light/Regular/Bold/Black), "
            "letterSpacing (Tight/Normal/Wide/Ultra-Wide), includeDate (true/false), "
            "textPosition (top/center/bottom), textSize (smaller/larger/same), "
            "overlayOpacity (lighter/darker/same), additionalNotes.\n\n"
            "Interpret the request:\n"
            '- "darker" = darker colors, higher overlay opacity\n'
            '- "brighter/lighter" = lighter colors, lower overlay opacity\n'
            '- "move logo/text to [position]" = adjust textPosition\n'
            '- "bigger/smaller text" = adjust textSize\n'
            '- "change font" = suggest new fontFamily\n'
            '- "remove date" = includeDate false, "add date" = includeDate true\n'
            '- "more vibrant" = brighter colorPalette, "more subtle" = darker, lower opacity\n'
        )
