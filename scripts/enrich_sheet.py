#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from sheetfill.application import EnrichmentController, EnrichmentService
from sheetfill.core.schema import ProcessorTier
from sheetfill.core.settings import load_settings
from sheetfill.core.sheetio import load_sheet, save_sheet
from sheetfill.domain import Point, RunOutcome
from sheetfill.infrastructure import EnrichmentAPIClient, ParallelClient


async def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    sheet = load_sheet(Path(args.input))
    selection = sheet.select(Point(args.start_row, args.start_col), Point(args.end_row, args.end_col))

    if args.server:
        gateway = EnrichmentAPIClient(args.server, timeout=settings.http_timeout)
    else:
        client = ParallelClient(settings.require_api_key(), api_base=settings.api_base, timeout=settings.http_timeout)
        gateway = EnrichmentService(client)

    controller = EnrichmentController(gateway, sheet, timeout=settings.run_timeout)
    try:
        summary = await controller.enrich(selection, args.processor)
    finally:
        await gateway.aclose()

    output = save_sheet(sheet, Path(args.output or args.input))
    elapsed = f"{summary.elapsed:.1f}s" if summary.elapsed is not None else "n/a"
    print(
        f"{summary.outcome.value}: {summary.success_count} cells filled, "
        f"{summary.error_count} jobs failed, {summary.abandoned} abandoned in {elapsed} -> {output}"
    )
    return 0 if summary.outcome is RunOutcome.COMPLETED else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Fill empty cells of a CSV/XLSX sheet with web research")
    parser.add_argument("input", help="Sheet to enrich (.csv or .xlsx); first row holds headers")
    parser.add_argument("--output", help="Where to write the enriched sheet (defaults to the input)")
    parser.add_argument("--start-row", type=int, default=1, help="First grid row, 0 is the header row")
    parser.add_argument("--end-row", type=int, required=True, help="Last grid row (inclusive)")
    parser.add_argument("--start-col", type=int, required=True, help="First target column index")
    parser.add_argument("--end-col", type=int, help="Last target column index (defaults to --start-col)")
    parser.add_argument(
        "--processor",
        choices=[tier.value for tier in ProcessorTier],
        default=ProcessorTier.LITE.value,
        help="Research tier: " + "; ".join(f"{tier.value} = {tier.description}" for tier in ProcessorTier),
    )
    parser.add_argument("--server", help="Base URL of a running sheetfill API instead of calling Parallel directly")
    args = parser.parse_args()
    if args.end_col is None:
        args.end_col = args.start_col

    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
