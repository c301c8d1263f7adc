import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from .errors import StudioBusyError

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


class AssetStatus(str, Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


def new_asset_id() -> str:
    return uuid.uuid4().hex[:6].upper()


@dataclass(eq=False)
class Asset:
    """
    One uploaded image and its rendering state.

    `source_image` is write-once; every render, retry and refine reads it and
    none of them may replace it.
    """

    source_image: bytes
    target_product_id: str
    target_product_name: Optional[str] = None
    id: str = ""
    status: AssetStatus = AssetStatus.IDLE
    result_image: Optional[bytes] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    is_remixing: bool = False
    remix_template: Optional[bytes] = None
    note: Optional[str] = None
    design_notes: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_asset_id()

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "source_image" and "source_image" in self.__dict__:
            raise AttributeError(f"Asset {self.id} source image is write-once")
        super().__setattr__(name, value)

    def mark_processing(self) -> None:
        if self.status is AssetStatus.PROCESSING:
            raise StudioBusyError(f"Asset {self.id} is already rendering")
        self.status = AssetStatus.PROCESSING
        self.error = None
        self.error_code = None

    def mark_completed(self, result: bytes) -> None:
        self.result_image = result
        self.status = AssetStatus.COMPLETED
        self.error = None
        self.error_code = None

    def mark_failed(self, message: str, code: Optional[str] = None) -> None:
        # The previous result stays visible; a failed render never half-writes it.
        self.status = AssetStatus.ERROR
        self.error = message
        self.error_code = code

    def export_filename(self, prefix: str) -> str:
        return f"{prefix}_{self.target_product_id.upper()}_{self.id}.png"


def load_images(folder: Path) -> List[bytes]:
    """Read every image file directly under `folder`, sorted by name."""
    if not folder.is_dir():
        raise FileNotFoundError(f"Image folder not found: {folder}")

    return [
        path.read_bytes()
        for path in sorted(folder.iterdir())
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS
    ]


def export_asset(asset: Asset, output_dir: Path, prefix: str) -> Optional[Path]:
    """Write a rendered asset to disk. Assets without a result are skipped."""
    if asset.result_image is None:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / asset.export_filename(prefix)
    path.write_bytes(asset.result_image)
    return path
