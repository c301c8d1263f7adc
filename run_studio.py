import argparse
import asyncio
from pathlib import Path
from typing import List

from media_studio.assets import AssetStatus, export_asset, load_images
from media_studio.config import load_settings
from media_studio.core import MediaStudio
from media_studio.log import configure_logging, get_logger
from media_studio.products import MEDIA_PRODUCTS, get_product, load_catalog


logger = get_logger("cli")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synthesize branded marketing assets from a folder of images."
    )
    parser.add_argument(
        "--images",
        type=Path,
        required=True,
        help="Folder containing the source images.",
    )
    parser.add_argument(
        "--product",
        default=MEDIA_PRODUCTS[0].id,
        help="Output format id (flyer, story, reel, post, banner, promo).",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Optional JSON product catalog replacing the built-in one.",
    )
    parser.add_argument(
        "--chat",
        action="append",
        default=[],
        help="Design instruction sent to the creative director before rendering. Repeatable.",
    )
    parser.add_argument("--title", default=None, help="Title text for the assets.")
    parser.add_argument("--date", default=None, help="Date shown in the date badge.")
    parser.add_argument(
        "--refine",
        default=None,
        help="Edit instruction applied to every completed asset after rendering.",
    )
    parser.add_argument(
        "--output-root",
        type=Path,
        default=Path("outputs"),
        help="Folder where rendered assets are written.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> List[Path]:
    settings = load_settings()
    configure_logging(settings.log_level)

    catalog = load_catalog(args.catalog) if args.catalog else MEDIA_PRODUCTS
    studio = MediaStudio.from_settings(settings, catalog=catalog)
    product = get_product(args.product, catalog)
    studio.select_product(product)

    if args.title or args.date:
        changes = {}
        if args.title:
            changes["event_title"] = args.title
        if args.date:
            changes["date"] = args.date
            changes["include_date"] = True
        studio.update_spec(**changes)

    for instruction in args.chat:
        reply = await studio.send_chat(instruction)
        if reply:
            logger.info(reply.content)

    images = load_images(args.images)
    if not images:
        logger.warning(f"No images found in {args.images}")
        return []
    studio.add_images(images, product)
    await studio.synthesize()

    if args.refine:
        for asset in studio.batch.items:
            if asset.status is not AssetStatus.COMPLETED:
                continue
            studio.enter_refine(asset.id)
            reply = await studio.send_chat(args.refine)
            if reply:
                logger.info(reply.content)

    written = []
    for asset in studio.batch.items:
        if asset.status is AssetStatus.ERROR:
            logger.error(f"{asset.id} failed: {asset.error}")
        path = export_asset(asset, args.output_root, studio.brand.file_prefix)
        if path is not None:
            written.append(path)
            logger.info(f"Saved {path}")
    return written


def main() -> None:
    args = parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
