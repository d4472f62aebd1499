import argparse
import asyncio
import logging
import sys
from pathlib import Path

from bonscan.config import settings
from bonscan.common.exceptions import AppError
from bonscan.categories.dependencies import get_categorization_engine
from bonscan.db.main import get_session_factory, init_models
from bonscan.processing.dependencies import get_receipt_pipeline
from bonscan.receipts.exceptions import QualityCheckFailure

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    stream=sys.stderr,
)

# Set log level for application modules to INFO
logging.getLogger('bonscan').setLevel(logging.INFO)

# Keep external libraries at WARNING to reduce noise
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

logger = logging.getLogger("bonscan.cli")


async def process_receipt(args: argparse.Namespace) -> int:
    image = Path(args.image).read_bytes()

    await init_models()
    async with get_session_factory()() as session:
        pipeline = get_receipt_pipeline(session=session)
        try:
            receipt = await pipeline.process(image, user_id=args.user_id)
        except QualityCheckFailure as e:
            logger.error(e.message, extra={"checks": [check.value for check in e.checks]})
            return 2

    print(receipt.model_dump_json(indent=2))
    return 0


async def record_correction(args: argparse.Namespace) -> int:
    await init_models()
    async with get_session_factory()() as session:
        engine = get_categorization_engine(session=session)
        saved = await engine.record_correction(args.product_name, args.category, user_id=args.user_id)

    print("saved" if saved else "not saved")
    return 0 if saved else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bonscan", description="Bulgarian receipt extraction & categorization")
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process a receipt image and print JSON")
    process.add_argument("image", help="Path to a JPEG/PNG/WEBP receipt image")
    process.add_argument("--user-id", default=None)
    process.set_defaults(handler=process_receipt)

    correct = subparsers.add_parser("correct", help="Store a user category correction")
    correct.add_argument("product_name")
    correct.add_argument("category", help="Category slug, legacy id or display name")
    correct.add_argument("--user-id", default=None)
    correct.set_defaults(handler=record_correction)

    return parser


def main() -> int:
    args = build_parser().parse_args()
    logger.info(f"bonscan {args.command} (env={settings.ENV})")
    try:
        return asyncio.run(args.handler(args))
    except AppError as e:
        logger.error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
