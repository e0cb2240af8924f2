"""CLI for G-Matrix."""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from gmatrix.adapters.openai_vision import OpenAIVisionClient
from gmatrix.core.aggregate import VoteWeighting
from gmatrix.core.config import Settings, load_settings
from gmatrix.core.errors import GMatrixError, PermissionDenied, user_message
from gmatrix.core.identity import normalize_product_id
from gmatrix.core.models import GeoPoint, Product, Rating, StoreReport
from gmatrix.core.pipeline import VotePipeline
from gmatrix.store.duckdb_store import DuckDBDocumentStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gmatrix")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--db", help="DuckDB database file (overrides settings)")
    parser.add_argument("--verbose", "-v", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    identify_cmd = subparsers.add_parser("identify", help="Read a product name from a photo")
    identify_cmd.add_argument("image")
    identify_cmd.add_argument("--mime-type", help="Defaults to a guess from the file extension")

    create_cmd = subparsers.add_parser("create", help="Create a product unless it already exists")
    create_cmd.add_argument("name")
    create_cmd.add_argument("--image-url", default="")
    create_cmd.add_argument("--user-id")

    exists_cmd = subparsers.add_parser("exists", help="Check whether a product name is taken")
    exists_cmd.add_argument("name")

    vote_cmd = subparsers.add_parser("vote", help="Vote on a product, creating it if needed")
    vote_cmd.add_argument("name")
    vote_cmd.add_argument("--user-id", required=True)
    vote_cmd.add_argument("--safety", type=float, required=True)
    vote_cmd.add_argument("--taste", type=float, required=True)
    vote_cmd.add_argument("--price", type=int)
    vote_cmd.add_argument("--registered", action="store_true")
    vote_cmd.add_argument("--image-url", default="")
    vote_cmd.add_argument("--store")
    vote_cmd.add_argument("--lat", type=float)
    vote_cmd.add_argument("--lng", type=float)

    show_cmd = subparsers.add_parser("show", help="Show a product and its matrix placement")
    show_cmd.add_argument("name")

    near_cmd = subparsers.add_parser("near", help="Products seen at stores near a location")
    near_cmd.add_argument("--lat", type=float, required=True)
    near_cmd.add_argument("--lng", type=float, required=True)
    near_cmd.add_argument("--radius-km", type=float)

    profile_cmd = subparsers.add_parser("profile", help="Show a scout profile")
    profile_cmd.add_argument("user_id")

    grant_cmd = subparsers.add_parser("grant-admin", help="Give a user the admin role")
    grant_cmd.add_argument("user_id")

    delete_vote_cmd = subparsers.add_parser("delete-vote", help="Admin: delete one vote")
    delete_vote_cmd.add_argument("product_id")
    delete_vote_cmd.add_argument("user_id")
    delete_vote_cmd.add_argument("--as", dest="admin_id", required=True)

    delete_product_cmd = subparsers.add_parser("delete-product", help="Admin: delete a product and its votes")
    delete_product_cmd.add_argument("product_id")
    delete_product_cmd.add_argument("--as", dest="admin_id", required=True)

    recalc_cmd = subparsers.add_parser("recalculate", help="Admin: rebuild a product's averages")
    recalc_cmd.add_argument("product_id")
    recalc_cmd.add_argument("--as", dest="admin_id", required=True)
    recalc_cmd.add_argument("--weighted", action="store_true")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.config)
    if args.db:
        settings.database_path = args.db

    store = DuckDBDocumentStore(settings.database_path, max_attempts=settings.transaction_max_attempts)
    try:
        return _run_command(args, settings, store)
    except GMatrixError as exc:
        logger.debug("command_failed command=%s", args.command, exc_info=True)
        print(user_message(exc, debug=settings.debug), file=sys.stderr)
        return 2 if isinstance(exc, PermissionDenied) else 1
    finally:
        store.close()


def _run_command(args: argparse.Namespace, settings: Settings, store: DuckDBDocumentStore) -> int:
    if args.command == "identify":
        if not settings.vision_api_key:
            print("identify needs OPENAI_API_KEY or vision_api_key in the config file", file=sys.stderr)
            return 1
        pipeline = VotePipeline(store, settings, vision_client=OpenAIVisionClient.from_settings(settings))
        try:
            photo = Path(args.image).read_bytes()
            mime_type = args.mime_type or mimetypes.guess_type(args.image)[0] or ""
            identified = pipeline.identify(photo, mime_type)
        finally:
            pipeline.gateway.close()
        _emit(
            {
                "product_name": identified.product_name,
                "unnamed": identified.is_unnamed,
                "mime_type": identified.mime_type,
                "product_id": None if identified.is_unnamed else normalize_product_id(identified.product_name),
            }
        )
        return 0

    pipeline = VotePipeline(store, settings)

    if args.command == "create":
        product, created = pipeline.catalog.create_if_absent(
            args.name, image_url=args.image_url, created_by=args.user_id
        )
        _emit({"created": created, "product": _product_view(pipeline, product)})
        return 0

    if args.command == "exists":
        resolution = pipeline.resolver.exists(args.name)
        similar = pipeline.resolver.similar(args.name)
        _emit({"resolution": dataclass_to_dict(resolution), "similar": dataclass_to_dict(similar)})
        return 0

    if args.command == "vote":
        store_report = None
        if args.store:
            geo_point = GeoPoint(args.lat, args.lng) if args.lat is not None and args.lng is not None else None
            store_report = StoreReport(name=args.store, geo_point=geo_point, price=args.price)
        result = pipeline.submit(
            args.name,
            args.user_id,
            Rating(safety=args.safety, taste=args.taste, price=args.price),
            is_registered=args.registered,
            image_url=args.image_url,
            store_report=store_report,
        )
        _emit(
            {
                "product_id": result.product.id,
                "created": result.created,
                "outcome": dataclass_to_dict(result.outcome),
            }
        )
        return 0

    if args.command == "show":
        product = pipeline.catalog.get_by_name(args.name)
        _emit(
            {
                "product": _product_view(pipeline, product),
                "votes": dataclass_to_dict(pipeline.aggregator.list_votes(product.id)),
            }
        )
        return 0

    if args.command == "near":
        hits = pipeline.catalog.near(GeoPoint(args.lat, args.lng), radius_km=args.radius_km)
        _emit([{"distance_km": round(distance, 3), **_product_view(pipeline, p)} for p, distance in hits])
        return 0

    if args.command == "profile":
        _emit(dataclass_to_dict(pipeline.ledger.get_profile(args.user_id)))
        return 0

    if args.command == "grant-admin":
        pipeline.admin.grant(args.user_id)
        _emit({"user_id": args.user_id, "admin": True})
        return 0

    if args.command == "delete-vote":
        session = pipeline.admin.session(args.admin_id)
        averages = pipeline.aggregator.delete_vote(session, args.product_id, args.user_id)
        _emit(dataclass_to_dict(averages))
        return 0

    if args.command == "delete-product":
        session = pipeline.admin.session(args.admin_id)
        deleted = pipeline.aggregator.delete_product(session, args.product_id)
        _emit({"product_id": args.product_id, "votes_deleted": deleted})
        return 0

    if args.command == "recalculate":
        session = pipeline.admin.session(args.admin_id)
        weighting = VoteWeighting.from_settings(settings) if args.weighted else None
        averages = pipeline.aggregator.recalculate(session, args.product_id, weighting=weighting)
        _emit(dataclass_to_dict(averages))
        return 0

    return 1


def _product_view(pipeline: VotePipeline, product: Product) -> dict[str, Any]:
    view = dataclass_to_dict(product)
    view["quadrant"] = pipeline.catalog.quadrant(product).value
    view["safety_label"] = pipeline.catalog.label(product.avg_safety).value
    view["taste_label"] = pipeline.catalog.label(product.avg_taste).value
    return view


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def dataclass_to_dict(obj: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return len(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        data = asdict(obj)
        return {key: dataclass_to_dict(value) for key, value in data.items()}
    if isinstance(obj, (list, tuple)):
        return [dataclass_to_dict(value) for value in obj]
    if isinstance(obj, dict):
        return {key: dataclass_to_dict(value) for key, value in obj.items()}
    return obj


if __name__ == "__main__":
    raise SystemExit(main())
