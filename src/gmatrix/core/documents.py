"""Document paths and conversion between models and stored documents."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from gmatrix.core.errors import ValidationError
from gmatrix.core.models import GeoPoint, Product, StoreEntry, UserProfile, Vote

PRODUCTS = "products"
VOTES = "votes"
USERS = "users"
ROLES_ADMIN = "roles_admin"


def document_id(value: str, kind: str = "id") -> str:
    """
    Check that value can stand as one path segment.

    Raises:
        ValidationError: value is empty or contains "/"
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{kind} must not be empty")
    if "/" in value:
        raise ValidationError(f"{kind} must not contain '/', got {value!r}")
    return value


def product_path(product_id: str) -> str:
    return f"{PRODUCTS}/{document_id(product_id, 'product_id')}"


def votes_collection(product_id: str) -> str:
    return f"{product_path(product_id)}/{VOTES}"


def vote_path(product_id: str, user_id: str) -> str:
    return f"{votes_collection(product_id)}/{document_id(user_id, 'user_id')}"


def user_path(user_id: str) -> str:
    return f"{USERS}/{document_id(user_id, 'user_id')}"


def admin_role_path(user_id: str) -> str:
    return f"{ROLES_ADMIN}/{document_id(user_id, 'user_id')}"


def parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.isoparse(str(value))
    except (ValueError, TypeError):
        return None


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _geo_to_doc(point: GeoPoint | None) -> dict[str, float] | None:
    if point is None:
        return None
    return {"lat": point.lat, "lng": point.lng}


def _geo_from_doc(data: Any) -> GeoPoint | None:
    if not isinstance(data, dict) or "lat" not in data or "lng" not in data:
        return None
    return GeoPoint(lat=float(data["lat"]), lng=float(data["lng"]))


def store_to_doc(entry: StoreEntry) -> dict[str, Any]:
    doc: dict[str, Any] = {"name": entry.name, "lastSeenAt": format_datetime(entry.last_seen_at)}
    if entry.geo_point is not None:
        doc["geoPoint"] = _geo_to_doc(entry.geo_point)
    if entry.price is not None:
        doc["price"] = entry.price
    return doc


def store_from_doc(data: dict[str, Any]) -> StoreEntry:
    price = data.get("price")
    return StoreEntry(
        name=str(data.get("name", "")),
        last_seen_at=parse_datetime(data.get("lastSeenAt")) or datetime.min.replace(tzinfo=timezone.utc),
        geo_point=_geo_from_doc(data.get("geoPoint")),
        price=int(price) if price is not None else None,
    )


def product_to_doc(product: Product) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "name": product.name,
        "imageUrl": product.image_url,
        "avgSafety": product.avg_safety,
        "avgTaste": product.avg_taste,
        "voteCount": product.vote_count,
        "registeredVoteCount": product.registered_vote_count,
        "priceVoteCount": product.price_vote_count,
        "stores": [store_to_doc(s) for s in product.stores],
    }
    if product.avg_price is not None:
        doc["avgPrice"] = product.avg_price
    if product.back_image_url:
        doc["backImageUrl"] = product.back_image_url
    if product.ingredients is not None:
        doc["ingredients"] = list(product.ingredients)
    if product.created_at is not None:
        doc["createdAt"] = format_datetime(product.created_at)
    if product.created_by:
        doc["createdBy"] = product.created_by
    return doc


def product_from_doc(product_id: str, data: dict[str, Any]) -> Product:
    avg_price = data.get("avgPrice")
    ingredients = data.get("ingredients")
    return Product(
        id=product_id,
        name=str(data.get("name", "")),
        image_url=data.get("imageUrl") or "",
        back_image_url=data.get("backImageUrl"),
        avg_safety=float(data.get("avgSafety") or 0.0),
        avg_taste=float(data.get("avgTaste") or 0.0),
        avg_price=float(avg_price) if avg_price is not None else None,
        vote_count=int(data.get("voteCount") or 0),
        registered_vote_count=int(data.get("registeredVoteCount") or 0),
        price_vote_count=int(data.get("priceVoteCount") or 0),
        ingredients=list(ingredients) if ingredients is not None else None,
        stores=[store_from_doc(s) for s in data.get("stores") or []],
        created_at=parse_datetime(data.get("createdAt")),
        created_by=data.get("createdBy"),
    )


def vote_to_doc(vote: Vote) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "userId": vote.user_id,
        "safety": vote.safety,
        "taste": vote.taste,
        "isRegistered": vote.is_registered,
        "votedAt": format_datetime(vote.voted_at),
        "createdAt": format_datetime(vote.created_at),
        "updatedAt": format_datetime(vote.updated_at),
    }
    if vote.price is not None:
        doc["price"] = vote.price
    if vote.store_name:
        doc["storeName"] = vote.store_name
    return doc


def vote_from_doc(product_id: str, user_id: str, data: dict[str, Any]) -> Vote:
    price = data.get("price")
    return Vote(
        product_id=product_id,
        user_id=data.get("userId") or user_id,
        safety=float(data.get("safety", 0.0)),
        taste=float(data.get("taste", 0.0)),
        price=int(price) if price is not None else None,
        store_name=data.get("storeName"),
        is_registered=bool(data.get("isRegistered", False)),
        voted_at=parse_datetime(data.get("votedAt")),
        created_at=parse_datetime(data.get("createdAt")),
        updated_at=parse_datetime(data.get("updatedAt")),
    )


def profile_to_doc(profile: UserProfile) -> dict[str, Any]:
    return {
        "points": profile.points,
        "badges": list(profile.badges),
        "totalVotes": profile.total_votes,
        "newProductVotes": profile.new_product_votes,
        "storesTagged": list(profile.stores_tagged),
        "gpsVotes": profile.gps_votes,
        "currentStreak": profile.current_streak,
        "longestStreak": profile.longest_streak,
        "lastVoteDate": format_datetime(profile.last_vote_date),
        "votesToday": profile.votes_today,
    }


def profile_from_doc(user_id: str, data: dict[str, Any] | None) -> UserProfile:
    """Build a profile; a missing document is a user who has not voted yet."""
    if not data:
        return UserProfile(user_id=user_id)
    return UserProfile(
        user_id=user_id,
        points=int(data.get("points") or 0),
        badges=list(data.get("badges") or []),
        total_votes=int(data.get("totalVotes") or 0),
        new_product_votes=int(data.get("newProductVotes") or 0),
        stores_tagged=list(data.get("storesTagged") or []),
        gps_votes=int(data.get("gpsVotes") or 0),
        current_streak=int(data.get("currentStreak") or 0),
        longest_streak=int(data.get("longestStreak") or 0),
        last_vote_date=parse_datetime(data.get("lastVoteDate")),
        votes_today=int(data.get("votesToday") or 0),
    )
