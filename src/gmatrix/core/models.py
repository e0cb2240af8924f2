"""Core data models: products, votes, store sightings and scout profiles."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


UNNAMED_PRODUCT = "Unnamed Product"


class Quadrant(str, Enum):
    """Region of the safety x taste matrix a product falls into."""

    SAFE_TASTY = "safe_tasty"
    SAFE_BLAND = "safe_bland"
    RISKY_TASTY = "risky_tasty"
    RISKY_BLAND = "risky_bland"


class RatingLabel(str, Enum):
    """Display label for a 0-100 rating."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass
class StoreEntry:
    """
    A store where the product was seen.

    Entries are keyed by name, case-insensitively; re-reporting a store
    refreshes it instead of adding a second entry.
    """

    name: str
    last_seen_at: datetime
    geo_point: Optional[GeoPoint] = None
    price: Optional[int] = None
    """Price rating 1-5 reported at this store."""

    @property
    def key(self) -> str:
        return self.name.strip().lower()


@dataclass
class Product:
    """
    Community aggregate for one product.

    avg_safety/avg_taste are the arithmetic mean over exactly vote_count votes.
    avg_price is the mean over price_vote_count price-bearing votes only.
    """

    id: str
    """Normalized identifier derived from the display name."""

    name: str
    """Display name as originally submitted."""

    image_url: str = ""
    back_image_url: Optional[str] = None
    avg_safety: float = 0.0
    avg_taste: float = 0.0
    avg_price: Optional[float] = None
    vote_count: int = 0
    registered_vote_count: int = 0
    price_vote_count: int = 0
    ingredients: Optional[list[str]] = None
    stores: list[StoreEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class Rating:
    """A single user's position on the matrix, plus an optional price rating."""

    safety: float
    taste: float
    price: Optional[int] = None


@dataclass(frozen=True)
class StoreReport:
    """Store sighting attached to a vote."""

    name: str
    geo_point: Optional[GeoPoint] = None
    price: Optional[int] = None


@dataclass
class Vote:
    """One user's vote on one product. Identity is (product_id, user_id)."""

    product_id: str
    user_id: str
    safety: float
    taste: float
    price: Optional[int] = None
    store_name: Optional[str] = None
    is_registered: bool = False
    voted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Averages:
    avg_safety: float
    avg_taste: float
    avg_price: Optional[float]
    vote_count: int
    registered_vote_count: int
    price_vote_count: int


@dataclass
class UserProfile:
    """Gamification state for a registered user."""

    user_id: str
    points: int = 0
    badges: list[str] = field(default_factory=list)
    total_votes: int = 0
    new_product_votes: int = 0
    stores_tagged: list[str] = field(default_factory=list)
    gps_votes: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_vote_date: Optional[datetime] = None
    votes_today: int = 0
    """Votes cast on the calendar day of last_vote_date."""


@dataclass(frozen=True)
class VoteContext:
    """What a recorded vote contributed, as seen by the gamification ledger."""

    is_new_product: bool = False
    has_gps: bool = False
    has_store_tag: bool = False
    has_price: bool = False
    store_name: Optional[str] = None


@dataclass
class ProfileDelta:
    """Changes applied to a profile by a single vote."""

    user_id: str
    points_awarded: int = 0
    new_badges: list[str] = field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0
    total_points: int = 0


@dataclass
class VoteOutcome:
    averages: Averages
    vote: Vote
    is_revision: bool = False
    profile_delta: Optional[ProfileDelta] = None


@dataclass(frozen=True)
class Resolution:
    exists: bool
    product_id: Optional[str] = None


@dataclass(frozen=True)
class IdentifiedProduct:
    """Result of the image analysis gateway. product_name may be UNNAMED_PRODUCT."""

    product_name: str
    source_image: bytes
    mime_type: str

    @property
    def is_unnamed(self) -> bool:
        return self.product_name == UNNAMED_PRODUCT


@dataclass(frozen=True)
class AdminSession:
    """
    Explicit admin context for one request.

    An admin who switched to "view as user" keeps is_real_admin but loses
    admin capability until they switch back.
    """

    user_id: str
    is_real_admin: bool = False
    viewing_as_user_id: Optional[str] = None
    view_as_user: bool = False

    @property
    def can_administer(self) -> bool:
        return self.is_real_admin and not self.view_as_user

    @property
    def effective_user_id(self) -> str:
        return self.viewing_as_user_id or self.user_id
