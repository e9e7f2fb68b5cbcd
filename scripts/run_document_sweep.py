#!/usr/bin/env python3
"""
Generate the legal documents of every approved loan that does not have them yet.

Prints the batch report as JSON. Exits with status 1 when any loan failed.

Usage:
    python scripts/run_document_sweep.py [--limit N]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.api.deps import build_document_generation_service  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.core.settings import get_settings  # noqa: E402
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.services.storage.service import get_storage_adapter  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of loans to process (defaults to DOCUMENT_SWEEP_BATCH_SIZE)",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = get_settings()
    if args.limit is not None:
        config = config.model_copy(update={"document_sweep_batch_size": args.limit})
    configure_logging(config.log_level)

    storage = get_storage_adapter(config)
    try:
        async with AsyncSessionLocal() as session:
            service = build_document_generation_service(session, storage, config)
            report = await service.run_sweep()
    finally:
        await engine.dispose()

    print(report.model_dump_json(indent=2))
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
