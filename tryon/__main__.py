"""
Run one virtual try-on from the command line.

    python -m tryon --kind image --user-id u1 --product-id p1 \
        --user-image https://.../me.jpg --subject https://.../dress.jpg --balance 100

Uses the stub provider unless PIAPI_API_KEY is configured.
"""

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

from tryon.config import get_settings
from tryon.integrations.provider_stub import get_provider
from tryon.models import TryOnRequest
from tryon.payments.ledger import BalanceLedger
from tryon.services.orchestrator import Orchestrator
from tryon.storage.factory import get_storage
from tryon.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


async def main_async(args) -> dict:
    settings = get_settings()
    store = get_storage()
    if args.balance is not None:
        await store.write_balance(args.user_id, args.balance)

    provider = get_provider(settings)
    orchestrator = Orchestrator(BalanceLedger(store), provider, store=store, settings=settings)
    request = TryOnRequest.create(
        args.kind,
        user_id=args.user_id,
        product_id=args.product_id,
        user_image_ref=args.user_image,
        subject_media_ref=args.subject,
        product_name=args.product_name,
        settings=settings,
    )

    def on_event(event, payload):
        logger.info(f"[CLI] event={event} task={payload.get('task_id')}")

    try:
        return await orchestrator.start(request, on_event=on_event)
    finally:
        orchestrator.cancel_all()
        close = getattr(provider, 'close', None)
        if close is not None:
            await close()


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Run one paid virtual try-on")
    parser.add_argument("--kind", choices=["image", "video"], default="image")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--product-id", required=True)
    parser.add_argument("--product-name", default="")
    parser.add_argument("--user-image", required=True, help="URL of the user's profile photo")
    parser.add_argument("--subject", required=True, help="URL of the product image or video")
    parser.add_argument("--balance", type=int, default=None, help="Seed the user's balance before starting")
    args = parser.parse_args()

    settings = get_settings(validate=True)
    setup_logging(settings.log_level)

    try:
        outcome = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        sys.exit(130)

    print(json.dumps(outcome, ensure_ascii=False, indent=2))
    sys.exit(0 if outcome.get("success") else 1)


if __name__ == "__main__":
    main()
