import io
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps

from .errors import DecodeError, SurfaceError
from .products import ProductDefinition
from .spec import DesignSpecification, EditDelta


RGB = Tuple[int, int, int]
ColorStop = Tuple[float, str]

CANVAS_SIZES: Dict[str, Tuple[int, int]] = {
    "1:1": (1080, 1080),
    "9:16": (1080, 1920),
    "16:9": (1920, 1080),
    "3:4": (1080, 1440),
    "4:3": (1440, 1080),
}
DEFAULT_CANVAS = (1080, 1080)

OVERLAY_TIERS: Dict[Optional[str], float] = {"darker": 0.7, "lighter": 0.25, None: 0.45}
TEXT_ANCHORS: Dict[Optional[str], float] = {"top": 0.25, "center": 0.45, "bottom": 0.65, None: 0.45}
TEXT_SCALES: Dict[Optional[str], float] = {"larger": 1.25, "smaller": 0.75, None: 1.0}

# Tracking as a fraction of the font size.
LETTER_SPACING: Dict[str, float] = {
    "tight": -0.02,
    "normal": 0.0,
    "wide": 0.08,
    "ultra-wide": 0.2,
    "ultra wide": 0.2,
}

GRID_PITCH = 50
FONT_EXTENSIONS = {".ttf", ".otf", ".ttc"}
PROJECT_FONTS_DIR = Path(__file__).parent.parent / "fonts"


@dataclass(frozen=True)
class BrandKit:
    """Fixed brand furniture. Nothing in here is negotiable through the design spec."""

    name: str = "Recipe Labs"
    wordmark: str = "RECIPE LABS"
    tagline: str = "AI CREATIVE SUITE"
    url: str = "madebyrecipe.com"
    file_prefix: str = "RecipeLabs"
    lemon: str = "#F5D547"
    lemon_light: str = "#F7E07A"
    lemon_dark: str = "#D4B83A"
    forest: str = "#4A7C4E"
    sage: str = "#6B8E6B"
    bg_dark: str = "#0f1410"
    text_muted: str = "#a8b4a4"
    display_font: str = "Orbitron"
    body_font: str = "Montserrat"
    tech_font: str = "Rajdhani"

    def spectrum(self) -> List[ColorStop]:
        return [
            (0.0, self.lemon),
            (0.25, self.lemon_dark),
            (0.5, self.forest),
            (0.75, self.sage),
            (1.0, self.bg_dark),
        ]


DEFAULT_BRAND = BrandKit()


def canvas_size(aspect_ratio: str) -> Tuple[int, int]:
    return CANVAS_SIZES.get(aspect_ratio, DEFAULT_CANVAS)


def render(
    source: bytes,
    product: ProductDefinition,
    spec: DesignSpecification,
    edit: Optional[EditDelta] = None,
    *,
    brand: BrandKit = DEFAULT_BRAND,
    font_dir: Optional[Path] = None,
) -> bytes:
    """
    Composite a branded asset for `product` from raw source image bytes.

    The output is a PNG at the fixed size for the product's aspect ratio.
    Identical inputs always produce identical bytes. Raises DecodeError when
    the source cannot be decoded and SurfaceError when no canvas can be
    allocated; nothing partial is ever returned.
    """
    edit = edit or EditDelta()
    fonts = str(font_dir) if font_dir else None

    source_img = decode_image(source)
    width, height = canvas_size(product.aspect_ratio)
    canvas = _new_canvas((width, height), _parse_color(brand.bg_dark))

    cover_fit(canvas, source_img)
    _draw_grid(canvas, _parse_color(brand.lemon), opacity=0.02)
    overlay_gradients(canvas, OVERLAY_TIERS.get(edit.overlay_opacity, OVERLAY_TIERS[None]), brand)
    draw_brand_furniture(canvas, brand, fonts)
    draw_title_block(canvas, spec, edit, brand, fonts)
    draw_footer(canvas, brand, fonts)

    buf = io.BytesIO()
    canvas.save(buf, format="PNG")
    return buf.getvalue()


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Failed to load source image: {exc}") from exc
    return img.convert("RGBA")


def cover_fit(canvas: Image.Image, img: Image.Image) -> None:
    """
    Scale the source to cover the whole canvas, keeping its aspect ratio, and
    crop the overflow around the centre.
    """
    fitted = ImageOps.fit(img, canvas.size, method=Image.LANCZOS, centering=(0.5, 0.5))
    canvas.paste(fitted, (0, 0), fitted)


def overlay_gradients(canvas: Image.Image, opacity: float, brand: BrandKit) -> None:
    """Darken the top and bottom bands so the text stays readable."""
    w, h = canvas.size
    draw = ImageDraw.Draw(canvas, "RGBA")
    shade = _parse_color(brand.bg_dark)
    band = int(h * 0.4)

    top_alpha = min(1.0, opacity * 0.9)
    for i in range(band):
        alpha = int(255 * top_alpha * (1 - i / band))
        draw.line([(0, i), (w, i)], fill=shade + (alpha,))

    bottom_alpha = min(1.0, opacity * 1.1)
    for i in range(band):
        alpha = int(255 * bottom_alpha * (i / band))
        y = h - band + i
        draw.line([(0, y), (w, y)], fill=shade + (alpha,))


def draw_brand_furniture(canvas: Image.Image, brand: BrandKit, font_dir: Optional[str] = None) -> None:
    w, h = canvas.size
    padding = w * 0.055
    logo_size = int(w * 0.08)

    _draw_logo(canvas, brand, int(padding), int(padding), logo_size, font_dir)

    draw = ImageDraw.Draw(canvas, "RGBA")
    text_x = padding + logo_size + 15
    wordmark_font = _load_font(brand.display_font, "Bold", int(w * 0.022), font_dir)
    draw.text(
        (text_x, padding + logo_size * 0.35),
        brand.wordmark,
        font=wordmark_font,
        fill=_parse_color(brand.lemon),
        anchor="lm",
    )
    tagline_font = _load_font(brand.tech_font, "SemiBold", int(w * 0.014), font_dir)
    draw.text(
        (text_x, padding + logo_size * 0.65),
        brand.tagline,
        font=tagline_font,
        fill=_parse_color(brand.text_muted),
        anchor="lm",
    )

    stops = brand.spectrum()
    canvas.paste(_linear_gradient((w, 3), stops), (0, 0))
    canvas.paste(_linear_gradient((w, 4), stops), (0, h - 4))


def draw_title_block(
    canvas: Image.Image,
    spec: DesignSpecification,
    edit: EditDelta,
    brand: BrandKit,
    font_dir: Optional[str] = None,
) -> None:
    """
    Title with drop shadow, then the optional vibe caption and date pill,
    all centred horizontally around the anchor picked by the edit delta.
    """
    w, h = canvas.size
    draw = ImageDraw.Draw(canvas, "RGBA")

    text_y = h * TEXT_ANCHORS.get(edit.text_position, TEXT_ANCHORS[None])
    font_size = w * 0.085 * TEXT_SCALES.get(edit.text_size, 1.0)
    tracking_ratio = LETTER_SPACING.get((spec.letter_spacing or "").strip().lower(), 0.0)

    title = spec.event_title or brand.name
    font, size = _fit_font(
        draw,
        title,
        spec.font_family or brand.display_font,
        spec.font_weight or "Bold",
        int(font_size),
        max_width=w * 0.9,
        tracking_ratio=tracking_ratio,
        font_dir=font_dir,
    )
    tracking = size * tracking_ratio

    _draw_tracked(draw, (w / 2 + 4, text_y + 4), title, font, (0, 0, 0, 128), tracking)
    _draw_tracked(draw, (w / 2, text_y), title, font, _parse_color(brand.lemon), tracking)

    if spec.vibe:
        vibe_font = _load_font(brand.body_font, "SemiBold", max(1, int(font_size * 0.25)), font_dir)
        draw.text(
            (w / 2, text_y + font_size * 0.7),
            spec.vibe.upper(),
            font=vibe_font,
            fill=_parse_color(brand.lemon_light),
            anchor="mm",
        )

    if spec.include_date and spec.date:
        date_text = str(spec.date).upper()
        date_size = font_size * 0.2
        date_font = _load_font(brand.tech_font, "Bold", max(1, int(date_size)), font_dir)
        date_w = draw.textlength(date_text, font=date_font)

        badge_y = text_y + font_size * 1.1
        x0 = int(w / 2 - date_w / 2 - 20)
        y0 = int(badge_y - date_size * 0.6)
        x1 = int(x0 + date_w + 40)
        y1 = int(y0 + date_size * 1.8)
        lemon = _parse_color(brand.lemon)
        draw.rounded_rectangle(
            [x0, y0, x1, y1],
            radius=min(25, (y1 - y0) // 2),
            fill=lemon + (38,),
            outline=lemon,
            width=1,
        )
        draw.text((w / 2, badge_y + date_size * 0.3), date_text, font=date_font, fill=lemon, anchor="mm")


def draw_footer(canvas: Image.Image, brand: BrandKit, font_dir: Optional[str] = None) -> None:
    w, h = canvas.size
    draw = ImageDraw.Draw(canvas, "RGBA")
    padding = w * 0.055

    url_size = w * 0.028
    url_font = _load_font(brand.body_font, "Bold", int(url_size), font_dir)
    url_w = draw.textlength(brand.url, font=url_font)

    badge_y = h - padding - 30
    x0 = int(w / 2 - url_w / 2 - 25)
    y0 = int(badge_y - url_size * 0.7)
    draw.rounded_rectangle(
        [x0, y0, int(x0 + url_w + 50), int(y0 + url_size * 1.8)],
        radius=8,
        fill=_parse_color(brand.bg_dark) + (204,),
    )
    draw.text(
        (w / 2, badge_y + url_size * 0.2),
        brand.url,
        font=url_font,
        fill=_parse_color(brand.lemon),
        anchor="mm",
    )


def _new_canvas(size: Tuple[int, int], color: RGB) -> Image.Image:
    try:
        return Image.new("RGB", size, color=color)
    except (MemoryError, ValueError) as exc:
        raise SurfaceError(f"Could not acquire a {size[0]}x{size[1]} drawing surface: {exc}") from exc


def _draw_grid(canvas: Image.Image, color: RGB, opacity: float) -> None:
    w, h = canvas.size
    draw = ImageDraw.Draw(canvas, "RGBA")
    fill = color + (int(255 * opacity),)
    for x in range(0, w + 1, GRID_PITCH):
        draw.line([(x, 0), (x, h)], fill=fill, width=1)
    for y in range(0, h + 1, GRID_PITCH):
        draw.line([(0, y), (w, y)], fill=fill, width=1)


def _draw_logo(
    canvas: Image.Image,
    brand: BrandKit,
    x: int,
    y: int,
    size: int,
    font_dir: Optional[str],
) -> None:
    tile = _linear_gradient(
        (size, size),
        [(0.0, brand.lemon), (0.5, brand.lemon_dark), (1.0, brand.forest)],
        vertical=True,
    )
    mask = Image.new("L", (size, size), 0)
    ImageDraw.Draw(mask).rounded_rectangle([0, 0, size - 1, size - 1], radius=int(size * 0.16), fill=255)
    canvas.paste(tile, (x, y), mask)

    draw = ImageDraw.Draw(canvas, "RGBA")
    glyph_font = _load_font(brand.display_font, "Black", max(1, int(size * 0.62)), font_dir)
    draw.text((x + size / 2, y + size / 2), "R", font=glyph_font, fill=(255, 255, 255), anchor="mm")


def _linear_gradient(size: Tuple[int, int], stops: Sequence[ColorStop], vertical: bool = False) -> Image.Image:
    w, h = size
    length = h if vertical else w
    strip = Image.new("RGB", (1, length) if vertical else (length, 1))
    strip.putdata(_interpolate(stops, length))
    return strip.resize((w, h), Image.NEAREST)


def _interpolate(stops: Sequence[ColorStop], length: int) -> List[RGB]:
    parsed = [(offset, _parse_color(color)) for offset, color in stops]
    colors: List[RGB] = []
    for i in range(length):
        t = i / (length - 1) if length > 1 else 0.0
        for (o0, c0), (o1, c1) in zip(parsed, parsed[1:]):
            if t <= o1:
                f = (t - o0) / (o1 - o0) if o1 > o0 else 0.0
                colors.append(tuple(round(a + (b - a) * f) for a, b in zip(c0, c1)))
                break
        else:
            colors.append(parsed[-1][1])
    return colors


def _fit_font(
    draw: ImageDraw.ImageDraw,
    text: str,
    family: str,
    weight: str,
    size: int,
    max_width: float,
    tracking_ratio: float,
    font_dir: Optional[str],
) -> Tuple[ImageFont.FreeTypeFont, int]:
    """Shrink the title until it fits the canvas width."""
    size = max(1, size)
    font = _load_font(family, weight, size, font_dir)
    while size > 12 and _tracked_width(draw, text, font, size * tracking_ratio) > max_width:
        size = int(size * 0.9)
        font = _load_font(family, weight, size, font_dir)
    return font, size


def _tracked_width(draw: ImageDraw.ImageDraw, text: str, font, tracking: float) -> float:
    if not tracking:
        return draw.textlength(text, font=font)
    return sum(draw.textlength(ch, font=font) for ch in text) + tracking * (len(text) - 1)


def _draw_tracked(
    draw: ImageDraw.ImageDraw,
    center: Tuple[float, float],
    text: str,
    font,
    fill,
    tracking: float,
) -> None:
    cx, cy = center
    if not tracking:
        draw.text((cx, cy), text, font=font, fill=fill, anchor="mm")
        return

    x = cx - _tracked_width(draw, text, font, tracking) / 2
    for ch in text:
        draw.text((x, cy), ch, font=font, fill=fill, anchor="lm")
        x += draw.textlength(ch, font=font) + tracking


def _parse_color(color_str: str) -> RGB:
    """
    Parse hex color strings like '#F5D547' or 'F5D547' into an RGB tuple.
    Falls back to the brand lemon if parsing fails.
    """
    s = color_str.strip().lstrip("#")
    if len(s) == 6:
        try:
            return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
        except ValueError:
            pass
    return (245, 213, 71)


def _is_heavy(weight: str) -> bool:
    w = weight.strip().lower().replace(" ", "").replace("-", "")
    if w.isdigit():
        return int(w) >= 600
    return w in {"semibold", "bold", "extrabold", "black", "heavy"}


def _find_font_file(directory: Path, family: str, weight: str) -> Optional[Path]:
    if not directory.is_dir():
        return None

    files = {
        p.stem.lower().replace(" ", "").replace("_", "-"): p
        for p in sorted(directory.iterdir())
        if p.suffix.lower() in FONT_EXTENSIONS
    }
    compact = family.lower().replace(" ", "")
    w = weight.lower().replace(" ", "")
    for stem in (f"{compact}-{w}", f"{compact}{w}", compact, f"{compact}-regular"):
        if stem in files:
            return files[stem]
    # Variable fonts, e.g. Orbitron-VariableFont_wght.ttf
    for stem, path in files.items():
        if stem.startswith(compact):
            return path
    return None


@lru_cache(maxsize=256)
def _load_font(family: str, weight: str, size: int, font_dir: Optional[str] = None) -> ImageFont.FreeTypeFont:
    """
    Load a TrueType font for a family/weight, looking in the configured font
    directory, then the project fonts/ folder, then common system fonts, and
    finally Pillow's bundled scalable font.
    """
    dirs = [Path(font_dir)] if font_dir else []
    dirs.append(PROJECT_FONTS_DIR)
    for directory in dirs:
        path = _find_font_file(directory, family, weight)
        if path is not None:
            try:
                return ImageFont.truetype(str(path), size=size)
            except OSError:
                continue

    if _is_heavy(weight):
        system_fonts = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
            "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
            "C:/Windows/Fonts/arialbd.ttf",
        ]
    else:
        system_fonts = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
            "/System/Library/Fonts/Supplemental/Arial.ttf",
            "C:/Windows/Fonts/arial.ttf",
        ]
    for font_file in system_fonts:
        try:
            return ImageFont.truetype(font_file, size=size)
        except OSError:
            continue

    return ImageFont.load_default(size=size)
