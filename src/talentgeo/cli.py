from __future__ import annotations

import argparse
import csv
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from talentgeo.models import QueryFailure
from talentgeo.service import GeoSearchService, build_service_from_path

CONFIG_ENV = "TALENTGEO_CONFIG"


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def read_csv_zips(path: str | Path, column: str) -> list[str]:
    with Path(path).open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None or column not in reader.fieldnames:
            raise ValueError(f"column {column!r} not found in {path}")
        return [row[column] for row in reader if row.get(column)]


def _resolve(service: GeoSearchService, zips: list[str], console: Console) -> None:
    results = service.resolver.resolve_many(zips)
    service.cache.flush()

    table = Table(title="Zip coordinates")
    for name in ("Zip", "Place", "State", "Lat", "Lng"):
        table.add_column(name)
    for zip_code, coordinate in results.items():
        entry = service.cache.entry(zip_code)
        if coordinate is None:
            table.add_row(zip_code, "unresolved", "-", "-", "-")
            continue
        table.add_row(
            zip_code,
            (entry.place if entry else None) or "-",
            (entry.region if entry else None) or "-",
            f"{coordinate.latitude:.4f}",
            f"{coordinate.longitude:.4f}",
        )
    console.print(table)


def _prefetch(service: GeoSearchService, csv_path: str, column: str, console: Console) -> None:
    zips = read_csv_zips(csv_path, column)
    results = service.resolver.resolve_many(zips)
    service.cache.flush()
    found = sum(1 for c in results.values() if c is not None)
    console.print(f"{len(results)} unique zips, {found} with coordinates, cache size {len(service.cache)}")


def _search(service: GeoSearchService, args: argparse.Namespace, console: Console) -> int:
    target = args.target or service.config.default_target
    outcome = service.planner.find_within_radius(
        args.zip,
        args.radius,
        target,
        strategy=args.strategy,
        allow_fallback=True if args.fallback else None,
    )
    if isinstance(outcome, QueryFailure):
        console.print(f"[red]Search unavailable[/red]: {outcome.reason.value} {outcome.detail}")
        return 1

    if not outcome.matches:
        console.print("No results")
        return 0

    table = Table(
        title=f"{len(outcome)} within {outcome.query.radius_miles:g} mi of {outcome.query.center_zip} "
        f"({outcome.strategy}, center from {outcome.center_source.value})"
    )
    table.add_column("Record")
    table.add_column("Miles", justify="right")
    for match in outcome.matches:
        table.add_row(match.record_id, f"{match.distance_miles:.1f}")
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="talentgeo")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--config", default=os.getenv(CONFIG_ENV), help=f"YAML config (or ${CONFIG_ENV})")

    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="resolve zip codes and save them to the cache")
    resolve.add_argument("zips", nargs="+")

    prefetch = sub.add_parser("prefetch", help="cache coordinates for every zip in a CSV export")
    prefetch.add_argument("--csv", required=True)
    prefetch.add_argument("--column", default="ZipCode")

    attach = sub.add_parser("attach", help="fill record points from cached zip coordinates")
    attach.add_argument("--target")

    search = sub.add_parser("search")
    search.add_argument("--zip", required=True)
    search.add_argument("--radius", type=float, required=True)
    search.add_argument("--target")
    search.add_argument("--strategy", choices=["native", "bounding_box", "exhaustive"])
    search.add_argument("--fallback", action="store_true", help="try the next strategy if one fails")

    web = sub.add_parser("web")
    web.add_argument("--host", default="0.0.0.0")
    web.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "web":
        import uvicorn

        if args.config:
            os.environ[CONFIG_ENV] = args.config
        uvicorn.run("talentgeo.api:app", host=args.host, port=args.port, reload=False)
        return 0

    console = Console()
    with build_service_from_path(args.config) as service:
        if args.command == "resolve":
            _resolve(service, args.zips, console)
            return 0

        if args.command == "prefetch":
            _prefetch(service, args.csv, args.column, console)
            return 0

        if args.command == "attach":
            count = service.store.attach_coordinates(args.target or service.config.default_target, service.resolver)
            console.print(f"attached coordinates to {count} records")
            return 0

        if args.command == "search":
            return _search(service, args, console)

    raise RuntimeError(f"unsupported command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
