import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


AspectKey = Literal["1:1", "3:4", "4:3", "9:16", "16:9"]


@dataclass(frozen=True)
class ProductDefinition:
    id: str
    name: str
    aspect_ratio: AspectKey
    base_prompt: str
    icon: str = ""
    description: str = ""


MEDIA_PRODUCTS: Tuple[ProductDefinition, ...] = (
    ProductDefinition(
        id="flyer",
        name="Marketing Flyer",
        icon="📄",
        aspect_ratio="3:4",
        description="Professional marketing flyer.",
        base_prompt=(
            "SYNTHESIZE a professional Recipe Labs flyer that FRAMES the source subject. "
            '"Recipe Labs" in modern typography should complement the subject. '
            "Clean, modern design with brand colors."
        ),
    ),
    ProductDefinition(
        id="story",
        name="IG Story",
        icon="📱",
        aspect_ratio="9:16",
        description="Instagram Story format.",
        base_prompt=(
            "TRANSFORM into a high-impact Recipe Labs STORY. Composition: Vertical 9:16. "
            'FRAME the subject. Highlight the subject clearly. "Recipe Labs" branding should be '
            'header-style or sidebar-style. NO DATE. Include "RecipeLabs.ai" at the footer.'
        ),
    ),
    ProductDefinition(
        id="reel",
        name="Reel Cover",
        icon="🎬",
        aspect_ratio="9:16",
        description="Reel or TikTok frame.",
        base_prompt=(
            'DESIGN a Recipe Labs REEL COVER. Highlight the subject center-stage. "Recipe Labs" '
            "as a bold backdrop or header. Ensure clear visibility of the source image. NO DATE. "
            'Integrate "RecipeLabs.ai" cleanly.'
        ),
    ),
    ProductDefinition(
        id="post",
        name="Feed Post",
        icon="🖼️",
        aspect_ratio="1:1",
        description="Standard 1:1 post.",
        base_prompt=(
            "SYNTHESIZE a square Recipe Labs post. Highlight the source subject. Balanced "
            'composition where "Recipe Labs" branding complements the subject.'
        ),
    ),
    ProductDefinition(
        id="banner",
        name="Web Banner",
        icon="🖥️",
        aspect_ratio="16:9",
        description="Website banner format.",
        base_prompt=(
            "CREATE a Recipe Labs web banner. Wide format 16:9. Subject should be prominent. "
            '"Recipe Labs" branding integrated cleanly. Modern, professional design.'
        ),
    ),
    ProductDefinition(
        id="promo",
        name="Promo Card",
        icon="🎯",
        aspect_ratio="3:4",
        description="Promotional card.",
        base_prompt=(
            'TRANSFORM into a Recipe Labs promo card. Highlight the source subject. "Recipe Labs" '
            "branding as a secondary bold element. Modern, energetic design."
        ),
    ),
)


def get_product(
    product_id: Optional[str],
    catalog: Sequence[ProductDefinition] = MEDIA_PRODUCTS,
) -> ProductDefinition:
    """
    Resolve a product by id. Unknown or missing ids fall back to the first
    catalog entry so an asset always has a format to render into.
    """
    for product in catalog:
        if product.id == product_id:
            return product
    return catalog[0]


class CatalogEntry(BaseModel):
    """One product as written in a catalog file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: Optional[str] = None
    aspect_ratio: AspectKey = Field(alias="aspectRatio")
    base_prompt: Optional[str] = Field(default=None, alias="basePrompt")
    icon: Optional[str] = None
    description: Optional[str] = None

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id must not be blank")
        return v

    def to_product(self) -> ProductDefinition:
        return ProductDefinition(
            id=self.id,
            name=self.name or self.id,
            aspect_ratio=self.aspect_ratio,
            base_prompt=self.base_prompt or "",
            icon=self.icon or "",
            description=self.description or "",
        )


def load_catalog(path: Path) -> Tuple[ProductDefinition, ...]:
    """
    Load an ordered product catalog from a JSON list of objects using the
    keys id, name, aspectRatio, basePrompt, icon and description.

    Raises ValueError for an empty list, a malformed entry or a repeated id.
    """
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list) or not data:
        raise ValueError(f"{path} must contain a non-empty JSON list of products")

    products: List[ProductDefinition] = []
    seen = set()
    for index, raw in enumerate(data):
        try:
            entry = CatalogEntry.model_validate(raw)
        except ValidationError as exc:
            raise ValueError(f"{path}: invalid product at index {index}: {exc}") from exc
        if entry.id in seen:
            raise ValueError(f"{path}: duplicate product id {entry.id!r}")
        seen.add(entry.id)
        products.append(entry.to_product())
    return tuple(products)
