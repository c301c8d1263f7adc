import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from .assets import Asset, AssetStatus, new_asset_id
from .config import Settings
from .errors import AssetNotFound, InvalidAssetState, StudioBusyError, StudioError
from .generator import GenerativeClient
from .log import get_logger
from .messaging import (
    ChatMessage,
    DesignBriefer,
    SpecNegotiator,
    Suggestion,
    SuggestionGenerator,
)
from .products import MEDIA_PRODUCTS, ProductDefinition, get_product
from .refine import RefineController
from .render import DEFAULT_BRAND, BrandKit, render
from .spec import DesignSpecification, DesignSpecStore


logger = get_logger("core")

LOG_LIMIT = 50

REFINE_PROMPT = (
    "AGENT: {product} ({asset_id}) is on the workbench. I'm ready for your edit instructions.\n\n"
    "Examples:\n"
    '• "Make it darker" - darker colors and overlay\n'
    '• "Move text to top" - reposition branding\n'
    '• "Bigger text" - increase font size\n'
    '• "Remove date" - hide date display\n'
    '• "More vibrant colors" - brighter palette\n'
    '• "Change font to Montserrat" - update typography\n\n'
    "What would you like to change?"
)


@dataclass(frozen=True)
class Negotiating:
    pass


@dataclass(frozen=True)
class Refining:
    asset_id: str


ConversationMode = Union[Negotiating, Refining]


class BatchManager:
    """
    Owns the uploaded assets and drives synthesis:
    - add uploads (consuming the remix template lock)
    - render every idle/failed asset one at a time
    - remove, remix and refine single assets

    Bulk synthesis and single-asset edits are mutually exclusive; starting
    one while the other runs raises StudioBusyError.
    """

    def __init__(
        self,
        catalog: Sequence[ProductDefinition] = MEDIA_PRODUCTS,
        renderer: Callable[..., bytes] = render,
        refiner: Optional[RefineController] = None,
        briefer: Optional[DesignBriefer] = None,
    ) -> None:
        self.catalog = tuple(catalog)
        self.renderer = renderer
        self.refiner = refiner or RefineController(client=None, renderer=renderer)
        self.briefer = briefer
        self.mode: ConversationMode = Negotiating()
        self.remix_template: Optional[bytes] = None
        self.log: List[str] = []
        self._items: Dict[str, Asset] = {}
        self._activity: Optional[str] = None

    @property
    def items(self) -> List[Asset]:
        return list(self._items.values())

    @property
    def busy(self) -> bool:
        return self._activity is not None

    def find(self, asset_id: str) -> Optional[Asset]:
        return self._items.get(asset_id)

    def get(self, asset_id: str) -> Asset:
        try:
            return self._items[asset_id]
        except KeyError:
            raise AssetNotFound(f"No asset with id {asset_id}") from None

    def product_for(self, asset: Asset) -> ProductDefinition:
        return get_product(asset.target_product_id, self.catalog)

    def add_items(
        self,
        images: Sequence[bytes],
        product: ProductDefinition,
        note: Optional[str] = None,
    ) -> List[Asset]:
        template = self.remix_template
        new_items = []
        for image in images:
            asset = Asset(
                source_image=image,
                target_product_id=product.id,
                target_product_name=product.name,
                is_remixing=template is not None,
                remix_template=template,
                note=note,
            )
            # Ids are short; never let a collision shadow an existing asset.
            while asset.id in self._items:
                asset.id = new_asset_id()
            self._items[asset.id] = asset
            new_items.append(asset)

        self.remix_template = None
        self.record(f"VAULT: ADDED_{len(new_items)}_PAYLOADS")
        return new_items

    async def synthesize_all(self, store: DesignSpecStore) -> List[Asset]:
        """
        Render every IDLE or ERROR asset strictly one after another. A failed
        asset is recorded and the batch moves on.
        """
        pending = [a for a in self._items.values() if a.status in (AssetStatus.IDLE, AssetStatus.ERROR)]
        if not pending:
            return []

        with self._exclusive("synthesis"):
            self.record("VAULT: INITIALIZING_BATCH")
            for asset in pending:
                if asset.id not in self._items:
                    continue
                await self._render_asset(asset, store.current)
            self.record("VAULT: BATCH_READY")
        return pending

    async def _render_asset(self, asset: Asset, spec: DesignSpecification) -> None:
        product = self.product_for(asset)
        asset.mark_processing()
        asset.target_product_id = product.id
        self.record(f"KERNEL: RENDERING_{asset.id}_{product.aspect_ratio}")

        try:
            if self.briefer is not None:
                asset.design_notes = await self.briefer.analyze(
                    asset.source_image,
                    product,
                    spec,
                    reference=asset.remix_template if asset.is_remixing else None,
                    note=asset.note,
                )
            result = await asyncio.to_thread(self.renderer, asset.source_image, product, spec)
        except StudioError as exc:
            self._fail(asset, str(exc), exc.code)
            return
        except Exception as exc:
            logger.exception(f"Unexpected failure rendering {asset.id}")
            self._fail(asset, str(exc) or type(exc).__name__, None)
            return

        if asset.id not in self._items:
            self.record(f"KERNEL: DROPPED_{asset.id}")
            return
        asset.mark_completed(result)
        asset.is_remixing = False
        self.record(f"KERNEL: VERIFIED_{asset.id}")

    def remove(self, asset_id: str) -> None:
        self.get(asset_id)
        del self._items[asset_id]
        if self.mode == Refining(asset_id):
            self.mode = Negotiating()
        self.record(f"VAULT: PURGED_{asset_id}")

    def remix(self, asset_id: str) -> bytes:
        asset = self.get(asset_id)
        if asset.status is not AssetStatus.COMPLETED or asset.result_image is None:
            raise InvalidAssetState(f"Asset {asset_id} has no completed render to remix")
        self.remix_template = asset.result_image
        self.record(f"VAULT: TEMPLATE_LOCK_{asset_id}")
        return asset.result_image

    def refine(self, asset_id: str) -> Refining:
        self.get(asset_id)
        self.mode = Refining(asset_id)
        self.record(f"AGENT: REFINE_MODE_ACTIVE_{asset_id}")
        return self.mode

    def exit_refine(self) -> None:
        self.mode = Negotiating()

    async def apply_edit(self, asset_id: str, instruction: str, spec: DesignSpecification) -> Asset:
        """
        Run one edit instruction against a rendered asset. On success the new
        render replaces the result and the refine session ends; on failure
        the asset is marked ERROR, keeps its previous result and the error
        is re-raised.
        """
        asset = self.get(asset_id)
        if asset.result_image is None:
            raise InvalidAssetState(f"Asset {asset_id} has not been rendered yet")

        with self._exclusive("refine"):
            product = self.product_for(asset)
            rendered = asset.result_image
            asset.mark_processing()
            self.record(f"AGENT: PROCESSING_EDIT_REQUEST_{asset_id}...")
            try:
                result = await self.refiner.refine(
                    rendered,
                    instruction,
                    product,
                    spec,
                    original_source=asset.source_image,
                )
            except Exception as exc:
                code = exc.code if isinstance(exc, StudioError) else None
                self._fail(asset, str(exc) or type(exc).__name__, code, prefix="AGENT: EDIT_FAULT")
                raise

            if asset_id not in self._items:
                self.record(f"AGENT: DROPPED_{asset_id}")
                return asset
            asset.mark_completed(result)
            self.record(f"AGENT: EDIT_APPLIED_{asset_id}")
            if self.mode == Refining(asset_id):
                self.mode = Negotiating()
        return asset

    def clear(self) -> None:
        self._items.clear()
        self.log.clear()
        self.mode = Negotiating()
        self.record("VAULT: SYSTEM_FLUSH")

    def stats(self) -> Dict[str, int]:
        statuses = [a.status for a in self._items.values()]
        return {
            "total": len(statuses),
            "completed": statuses.count(AssetStatus.COMPLETED),
            "processing": statuses.count(AssetStatus.PROCESSING),
            "idle": statuses.count(AssetStatus.IDLE),
            "error": statuses.count(AssetStatus.ERROR),
        }

    @contextmanager
    def _exclusive(self, activity: str) -> Iterator[None]:
        if self._activity is not None:
            raise StudioBusyError(f"Cannot start {activity} while {self._activity} is running")
        self._activity = activity
        try:
            yield
        finally:
            self._activity = None

    def _fail(self, asset: Asset, message: str, code: Optional[str], prefix: str = "KERNEL: FAULT") -> None:
        asset.mark_failed(message, code)
        self.record(f"{prefix}_{asset.id}: {message}", error=True)

    def record(self, message: str, error: bool = False) -> None:
        """Prepend to the progress log (newest first, capped) and mirror to the logger."""
        self.log.insert(0, message)
        del self.log[LOG_LIMIT:]
        if error:
            logger.error(message)
        else:
            logger.info(message)


class MediaStudio:
    """
    Conversation front for the media engine. Chat input either negotiates
    the shared design spec or, while an asset is on the workbench, edits that
    asset.
    """

    def __init__(
        self,
        batch: BatchManager,
        store: Optional[DesignSpecStore] = None,
        negotiator: Optional[SpecNegotiator] = None,
        suggester: Optional[SuggestionGenerator] = None,
        brand: BrandKit = DEFAULT_BRAND,
    ) -> None:
        self.batch = batch
        self.store = store or DesignSpecStore()
        self.negotiator = negotiator or SpecNegotiator(client=None)
        self.suggester = suggester or SuggestionGenerator(client=None)
        self.brand = brand
        self.history: List[ChatMessage] = []
        self.selected_product: ProductDefinition = batch.catalog[0]
        self.suggestions: List[Suggestion] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: Sequence[ProductDefinition] = MEDIA_PRODUCTS,
        brand: BrandKit = DEFAULT_BRAND,
    ) -> "MediaStudio":
        client = GenerativeClient.from_settings(settings)
        renderer = partial(render, brand=brand, font_dir=settings.font_dir)
        batch = BatchManager(
            catalog=catalog,
            renderer=renderer,
            refiner=RefineController(client, renderer=renderer),
            briefer=DesignBriefer(client),
        )
        return cls(
            batch=batch,
            negotiator=SpecNegotiator(client, history_window=settings.history_window),
            suggester=SuggestionGenerator(client),
            brand=brand,
        )

    @property
    def spec(self) -> DesignSpecification:
        return self.store.current

    async def send_chat(self, text: str) -> Optional[ChatMessage]:
        if not text.strip():
            return None

        prior = list(self.history)
        self.history.append(ChatMessage(role="user", content=text))

        mode = self.batch.mode
        if isinstance(mode, Refining):
            target = self.batch.find(mode.asset_id)
            if target is not None and target.result_image is not None:
                return await self._refine_chat(target, text)
            logger.info(f"Refine target {mode.asset_id} has no render yet; negotiating instead")

        self.batch.record("DIRECTOR: CONSULTING_TERMINAL...")
        result = await self.negotiator.negotiate(text, prior, self.store.current)
        # Reply and spec land together.
        self.store.replace(result.spec)
        reply = self._say(result.reply)
        self.batch.record("DIRECTOR: SPEC_SYNCED")
        return reply

    async def _refine_chat(self, target: Asset, text: str) -> ChatMessage:
        try:
            await self.batch.apply_edit(target.id, text, self.store.current)
        except StudioBusyError as exc:
            return self._say(f"AGENT: Studio busy: {exc}. Try again once the batch finishes.")
        except Exception as exc:
            return self._say(
                f"AGENT: Error during refinement: {exc}. Please try a different edit instruction."
            )
        return self._say(
            f'AGENT: Refinement complete. Applied "{text}" to {target.id}. '
            "Check Studio Archive for updated asset."
        )

    def enter_refine(self, asset_id: str) -> ChatMessage:
        self.batch.refine(asset_id)
        asset = self.batch.get(asset_id)
        return self._say(
            REFINE_PROMPT.format(product=asset.target_product_name or "asset", asset_id=asset_id)
        )

    def select_product(self, product: ProductDefinition) -> None:
        self.selected_product = product

    def add_images(self, images: Sequence[bytes], product: Optional[ProductDefinition] = None) -> List[Asset]:
        return self.batch.add_items(images, product or self.selected_product)

    async def synthesize(self) -> List[Asset]:
        """Render pending assets. While an edit is running nothing starts and the studio replies instead."""
        try:
            return await self.batch.synthesize_all(self.store)
        except StudioBusyError as exc:
            self._say(f"AGENT: Studio busy: {exc}. Try again once the edit finishes.")
            return []

    async def load_suggestions(self, product: Optional[ProductDefinition] = None) -> List[Suggestion]:
        product = product or self.selected_product
        self.batch.record(f"DIRECTOR: ANALYZING_{product.id.upper()}_PROTOCOLS")
        self.suggestions = await self.suggester.suggest(product, self.store.current)
        return self.suggestions

    def apply_suggestion(self, suggestion: Suggestion) -> ChatMessage:
        self.store.apply(suggestion.spec)
        self.batch.record(f"BRAND_PROTOCOL: {suggestion.title}")
        return self._say(
            f'DIRECTOR: Protocol "{suggestion.title}" locked. '
            f"Applied specialized {self.selected_product.name} blueprint."
        )

    def update_spec(self, **changes) -> DesignSpecification:
        return self.store.update(**changes)

    def export_filename(self, asset: Asset) -> str:
        return asset.export_filename(self.brand.file_prefix)

    def _say(self, content: str) -> ChatMessage:
        message = ChatMessage(role="assistant", content=content)
        self.history.append(message)
        return message
