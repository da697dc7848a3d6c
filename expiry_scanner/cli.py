"""CLI entry point for the expiry scanner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from dotenv import load_dotenv

from .config import load_config
from .errors import ConfigError, InputError, UpstreamError


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="expiry-scanner",
        description="Resolve product codes into product name, category and expiry date",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # resolve
    resolve_parser = sub.add_parser("resolve", help="Resolve a single code")
    resolve_parser.add_argument("code", type=str, help="Barcode, QR payload or batch code")
    resolve_parser.add_argument("--json", action="store_true", help="Print JSON")

    # serve
    serve_parser = sub.add_parser("serve", help="Run the HTTP resolution endpoint")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    # scan
    scan_parser = sub.add_parser(
        "scan", help="Interactively resolve codes and save them to the inventory"
    )
    scan_parser.add_argument(
        "--endpoint", type=str, default=None,
        help="Resolution endpoint URL (default: resolve in-process)",
    )

    # import-catalog
    import_parser = sub.add_parser(
        "import-catalog", help="Load catalog entries from a CSV file"
    )
    import_parser.add_argument("csv", type=str, help="CSV with code,name,category,shelf_life_days")
    import_parser.add_argument(
        "--db", type=str, default=None, help="Catalog database path (overrides config)"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    match args.command:
        case "resolve":
            asyncio.run(_cmd_resolve(config, args))
        case "serve":
            _cmd_serve(config, args)
        case "scan":
            asyncio.run(_cmd_scan(config, args))
        case "import-catalog":
            _cmd_import_catalog(config, args)


async def _cmd_resolve(config, args) -> None:
    from .resolver import build_resolver

    try:
        resolver = build_resolver(config)
        resolution = await resolver.resolve(args.code)
    except (InputError, ConfigError, UpstreamError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    result = resolution.result
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return

    if result.manual_entry_required:
        print(f"Could not identify {args.code!r}; manual entry required.")
        return
    print(f"{result.product_name}  [{result.category}]")
    print(f"  expires:    {result.expiry_date.isoformat()}")
    print(f"  confidence: {result.confidence_score:.0%} (via {resolution.source})")


def _cmd_serve(config, args) -> None:
    try:
        import uvicorn
    except ImportError:
        raise ImportError("uvicorn is required: pip install uvicorn") from None

    from .server import create_app

    try:
        app = create_app(config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


async def _cmd_scan(config, args) -> None:
    from .client import HttpResolverClient, LocalResolverClient
    from .coordinator import ScanCoordinator, ScanStatus
    from .db import InventoryDB
    from .resolver import build_resolver

    endpoint = args.endpoint or config.client.endpoint_url
    try:
        if endpoint:
            client = HttpResolverClient(
                endpoint,
                api_key=config.client.api_key,
                timeout=config.client.timeout,
            )
        else:
            client = LocalResolverClient(build_resolver(config))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    gateway = InventoryDB(config.inventory.db_path)
    coordinator = ScanCoordinator(
        client, gateway, user_id=config.inventory.user_id or None
    )
    session = coordinator.open_session()

    print("Enter a product code (empty line or 'q' to quit).")
    try:
        while True:
            code = _ask("code> ")
            if not code or code == "q":
                break

            print("Analyzing product details...")
            outcome = await coordinator.submit_manual_code(session, code)

            match outcome.status:
                case ScanStatus.IGNORED:
                    print("Already analyzed; scan another code.")
                case ScanStatus.FAILED:
                    print(f"Analysis failed ({outcome.error.value}): {outcome.message}")
                case ScanStatus.ACCEPTED:
                    r = outcome.result
                    print(f"Found: {r.product_name} [{r.category}], "
                          f"expires {r.expiry_date.isoformat()} "
                          f"(confidence {r.confidence_score:.0%})")
                    saved = False
                    if _ask("Save to inventory? [y/N] ").lower() == "y":
                        saved = await _save_with_retry(lambda: coordinator.save(session))
                    if not saved:
                        coordinator.cancel(session)
                case ScanStatus.ESCALATED:
                    print("Product not found. Please enter the details.")
                    name = _ask("product name> ")
                    category = _ask("category [General]> ") or "General"
                    default = outcome.result.expiry_date
                    raw_expiry = _ask(f"expiry date [{default.isoformat()}]> ")
                    try:
                        expiry = date.fromisoformat(raw_expiry) if raw_expiry else default
                    except ValueError:
                        print(f"Invalid date: {raw_expiry!r}")
                        coordinator.cancel(session)
                        continue
                    saved = await _save_with_retry(
                        lambda: coordinator.save_manual(
                            session, outcome.code, name, category, expiry
                        )
                    )
                    if not saved:
                        coordinator.cancel(session)
    finally:
        gateway.close()


async def _save_with_retry(save) -> bool:
    from .coordinator import ScanErrorKind

    while True:
        outcome = await save()
        if outcome.saved:
            print(f"Saved to inventory (id {outcome.item.id}).")
            return True
        print(f"Save failed: {outcome.message}")
        if outcome.error is not ScanErrorKind.PERSISTENCE:
            return False
        if _ask("Retry? [y/N] ").lower() != "y":
            return False


def _ask(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError:
        return ""


def _cmd_import_catalog(config, args) -> None:
    from .db import CatalogDB, read_catalog_csv

    db_path = args.db or config.catalog.db_path
    if not db_path:
        print(
            "Error: no catalog database configured ([catalog] db_path or --db)",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        entries = read_catalog_csv(args.csv)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    catalog = CatalogDB(db_path)
    try:
        count = catalog.upsert_entries(entries)
    finally:
        catalog.close()
    print(f"Imported {count} catalog entries into {db_path}")
