from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Any, Dict, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


TextPosition = Literal["top", "center", "bottom"]
TextSize = Literal["larger", "smaller"]
OverlayOpacity = Literal["darker", "lighter"]

# Fields a negotiated spec may reset to None; the rest always carry a value.
CLEARABLE_FIELDS = ("event_title", "color_palette", "vibe", "date", "additional_notes", "location")


def default_date(today: Optional[date] = None) -> str:
    """Today's date in badge form, e.g. 'OCT 19, 2026'."""
    today = today or date.today()
    return f"{today:%b} {today.day}, {today.year}".upper()


class SpecPatch(BaseModel):
    """
    Strict ingress schema for a design-spec fragment coming back from the
    generative collaborator. Every field is optional and blank strings are
    read as null: omitted or null fields keep the current value on a plain
    merge, and `cleared()` reports the ones that were sent explicitly.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_title: Optional[str] = Field(default=None, alias="eventTitle")
    color_palette: Optional[str] = Field(default=None, alias="colorPalette")
    vibe: Optional[str] = None
    font_family: Optional[str] = Field(default=None, alias="fontFamily")
    font_weight: Optional[str] = Field(default=None, alias="fontWeight")
    letter_spacing: Optional[str] = Field(default=None, alias="letterSpacing")
    date: Optional[str] = None
    include_date: Optional[bool] = Field(default=None, alias="includeDate")
    additional_notes: Optional[str] = Field(default=None, alias="additionalNotes")
    location: Optional[str] = None

    @field_validator(
        "event_title",
        "color_palette",
        "vibe",
        "font_family",
        "font_weight",
        "letter_spacing",
        "date",
        "additional_notes",
        "location",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(include=set(SpecPatch.model_fields), exclude_none=True)

    def cleared(self) -> Set[str]:
        """Optional fields the sender named explicitly but left blank or null."""
        return {
            name
            for name in CLEARABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        }


@dataclass(frozen=True)
class DesignSpecification:
    event_title: Optional[str] = None
    color_palette: Optional[str] = None
    vibe: Optional[str] = None
    font_family: str = "Orbitron"
    font_weight: str = "Bold"
    letter_spacing: str = "Normal"
    date: Optional[str] = field(default_factory=default_date)
    include_date: bool = False
    additional_notes: Optional[str] = None
    location: Optional[str] = None

    def merged(self, patch: SpecPatch, allow_clear: bool = False) -> "DesignSpecification":
        """
        Copy with every non-null patch field applied. With `allow_clear`,
        optional fields the patch sends as blank or null are reset to None.
        """
        changes = patch.changes()
        if allow_clear:
            changes.update(dict.fromkeys(patch.cleared()))
        return replace(self, **changes)

    def to_wire(self) -> Dict[str, Any]:
        """camelCase view used in prompts, same shape the collaborator answers with."""
        return SpecPatch(**asdict(self)).model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class EditDelta:
    """Transient layout overrides for a single re-render."""

    text_position: Optional[TextPosition] = None
    text_size: Optional[TextSize] = None
    overlay_opacity: Optional[OverlayOpacity] = None


class DesignSpecStore:
    """
    Owns the single live DesignSpecification. Writes replace the value
    wholesale (last writer wins).
    """

    def __init__(self, initial: Optional[DesignSpecification] = None) -> None:
        self._current = initial or DesignSpecification()

    @property
    def current(self) -> DesignSpecification:
        return self._current

    def replace(self, spec: DesignSpecification) -> DesignSpecification:
        self._current = spec
        return spec

    def apply(self, patch: SpecPatch) -> DesignSpecification:
        return self.replace(self._current.merged(patch))

    def update(self, **changes: Any) -> DesignSpecification:
        return self.replace(replace(self._current, **changes))
