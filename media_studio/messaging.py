import json
import time
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .errors import AIUnavailable
from .generator import GenerativeClient
from .log import get_logger
from .parsing import parse_model
from .products import ProductDefinition
from .spec import DesignSpecification, SpecPatch


logger = get_logger("messaging")

BRAND_NAME = "Recipe Labs"
BRAND_IDENTITY = (
    "Modern, tech-forward, creative, professional. Fresh Lemonade Palette "
    "(Lemon Yellow #F5D547, Forest Green #4A7C4E)."
)
FALLBACK_REPLY = "DIRECTOR: Interference detected. Confirming Recipe Labs brand protocols."
DEFAULT_CONFIRMATION = "DIRECTOR: Spec synced."


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class NegotiationResult:
    spec: DesignSpecification
    reply: str


class NegotiationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    updated_spec: SpecPatch = Field(default_factory=SpecPatch, alias="updatedSpec")
    assistant_response: str = Field(default="", alias="assistantResponse")


class Suggestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    spec: SpecPatch = Field(default_factory=SpecPatch)


class SuggestionsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suggestions: List[Suggestion] = Field(default_factory=list)


FALLBACK_SUGGESTIONS = (
    Suggestion(
        title="MODERN_TECH",
        spec=SpecPatch(event_title="Recipe Labs", color_palette="Lemon & Forest Gradient", vibe="Modern Tech"),
    ),
    Suggestion(
        title="CREATIVE_BOLD",
        spec=SpecPatch(event_title="Recipe Labs AI", color_palette="Vibrant Lemon", vibe="Creative Bold"),
    ),
)


class SpecNegotiator:
    """
    Turns one chat instruction into an updated design spec plus a reply.

    Pure with respect to the store: the caller commits the result. Any
    collaborator failure yields the current spec and a fixed apology so the
    conversation never breaks.
    """

    def __init__(self, client: Optional[GenerativeClient], history_window: int = 6) -> None:
        self.client = client
        self.history_window = history_window

    async def negotiate(
        self,
        text: str,
        history: Sequence[ChatMessage],
        current: DesignSpecification,
    ) -> NegotiationResult:
        try:
            if self.client is None:
                raise AIUnavailable("No generative client configured")
            raw = await self.client.generate(
                text,
                system=self._build_system_prompt(current),
                history=list(history)[-self.history_window:] if self.history_window else [],
                schema=NegotiationPayload,
            )
            payload = parse_model(raw, NegotiationPayload)
        except Exception as exc:
            logger.warning(f"RL_CHAT_FAULT: {exc}")
            return NegotiationResult(spec=current, reply=FALLBACK_REPLY)

        return NegotiationResult(
            spec=current.merged(payload.updated_spec, allow_clear=True),
            reply=payload.assistant_response.strip() or DEFAULT_CONFIRMATION,
        )

    @staticmethod
    def _build_system_prompt(current: DesignSpecification) -> str:
        return (
            f"ACT AS THE {BRAND_NAME.upper()} CREATIVE DIRECTOR.\n"
            "MANAGE THE MASTER DESIGN SPEC.\n"
            f"CURRENT SPEC: {json.dumps(current.to_wire())}\n\n"
            "RESPOND AS A HIGH-LEVEL CREATIVE DIRECTOR. CONCISE. PROFESSIONAL.\n"
            f'STRICT RULE: PRIMARY BRAND TEXT IS "{BRAND_NAME}" or "RL". '
            "Keep the brand name as the dominant title text.\n"
            "Return JSON with:\n"
            '- "updatedSpec": the full design spec after applying the request '
            "(eventTitle, colorPalette, vibe, fontFamily, fontWeight, letterSpacing, "
            "date, includeDate, additionalNotes, location); send \"\" for a field the user wants removed\n"
            '- "assistantResponse": one short confirmation sentence\n'
        )


class SuggestionGenerator:
    """Proposes up to three spec presets for a product."""

    max_suggestions = 3

    def __init__(self, client: Optional[GenerativeClient]) -> None:
        self.client = client

    async def suggest(self, product: ProductDefinition, current: DesignSpecification) -> List[Suggestion]:
        try:
            if self.client is None:
                raise AIUnavailable("No generative client configured")
            raw = await self.client.generate(self._build_prompt(product, current), schema=SuggestionsPayload)
            suggestions = parse_model(raw, SuggestionsPayload).suggestions
            if not suggestions:
                raise AIUnavailable("Collaborator returned no suggestions")
        except Exception as exc:
            logger.warning(f"RL_SUGGESTION_FAULT: {exc}")
            return list(FALLBACK_SUGGESTIONS)

        return suggestions[: self.max_suggestions]

    @staticmethod
    def _build_prompt(product: ProductDefinition, current: DesignSpecification) -> str:
        return (
            f"ACT AS THE {BRAND_NAME.upper()} CREATIVE DIRECTOR.\n"
            f'GENERATE 3 CONCISE DESIGN "PROTOCOLS" FOR: "{product.name}".\n'
            f"FORMAT: {product.aspect_ratio}\n"
            f"PRODUCT BRIEF: {product.base_prompt}\n"
            f"CURRENT SPEC: {json.dumps(current.to_wire())}\n\n"
            f"BRAND IDENTITY: {BRAND_IDENTITY}\n"
            f'PRIMARY TEXT RULE: ALWAYS USE "{BRAND_NAME}" or "RL" branding.\n\n'
            'Return JSON of the shape {"suggestions": [{"title": "...", "spec": {"eventTitle": "...", '
            '"colorPalette": "...", "vibe": "...", "fontFamily": "...", "fontWeight": "...", '
            '"letterSpacing": "..."}}]}. KEEP DESCRIPTIONS CONCISE.'
        )


class DesignBriefer:
    """
    Asks the collaborator how to lay branding over one source image.

    The notes are advisory. An unavailable collaborator yields an empty
    brief; a safety refusal propagates and fails the render.
    """

    def __init__(self, client: Optional[GenerativeClient]) -> None:
        self.client = client

    async def analyze(
        self,
        source: bytes,
        product: ProductDefinition,
        spec: DesignSpecification,
        reference: Optional[bytes] = None,
        note: Optional[str] = None,
    ) -> str:
        if self.client is None:
            return ""
        prompt = self._build_prompt(product, spec, has_reference=reference is not None)
        if note:
            prompt += f"\nAdditional context for this image: {note}"
        try:
            brief = await self.client.generate(prompt, image=source)
        except AIUnavailable as exc:
            logger.warning(f"AI analysis failed, using default design: {exc}")
            return ""

        if reference is not None:
            try:
                brief += "\n" + await self.client.generate(
                    "Describe the layout and palette of this reference asset so new assets can match it.",
                    image=reference,
                )
            except AIUnavailable as exc:
                logger.warning(f"Reference analysis failed, keeping the source brief: {exc}")
        return brief.strip()

    @staticmethod
    def _build_prompt(product: ProductDefinition, spec: DesignSpecification, has_reference: bool) -> str:
        date_line = f"Include date: {spec.date or 'TBD'}" if spec.include_date else "No date"
        prompt = (
            f"Analyze this image and provide design instructions for creating a {BRAND_NAME} "
            f"branded {product.name}.\n\n"
            "Design Requirements:\n"
            f'- Primary text: "{BRAND_NAME}" or "RL"\n'
            "- Brand colors: Lemon Yellow (#F5D547), Forest Green (#4A7C4E)\n"
            f"- Font: {spec.font_family}\n"
            f"- {date_line}\n"
            f"- Style: {spec.vibe or 'Modern Tech Creative'}\n"
            f"- Aspect Ratio: {product.aspect_ratio}\n"
            f"- Brief: {product.base_prompt}\n\n"
            "Provide a concise description of how to overlay the branding on this image "
            "without obscuring the main subject. Focus on text placement, color usage and layout."
        )
        if has_reference:
            prompt += " Match the style of the reference asset that follows."
        return prompt
