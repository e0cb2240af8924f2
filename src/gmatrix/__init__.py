"""G-Matrix: community safety x taste ratings for packaged food."""

__version__ = "0.1.0"

# Core exports
from gmatrix.core.models import (
    UNNAMED_PRODUCT,
    AdminSession,
    Averages,
    GeoPoint,
    IdentifiedProduct,
    Product,
    Quadrant,
    Rating,
    RatingLabel,
    Resolution,
    StoreEntry,
    StoreReport,
    UserProfile,
    Vote,
    VoteOutcome,
)
from gmatrix.core.interfaces import DocumentStore, Transaction, VisionClient
from gmatrix.core.errors import (
    ConcurrencyConflict,
    ExternalServiceFailure,
    GMatrixError,
    NotFound,
    PermissionDenied,
    ValidationError,
    error_channel,
    user_message,
)
from gmatrix.core.config import Settings, load_settings
from gmatrix.core.identity import ProductResolver, normalize_product_id
from gmatrix.core.catalog import ProductCatalog
from gmatrix.core.aggregate import VoteAggregator, VoteWeighting
from gmatrix.core.gamification import GamificationLedger
from gmatrix.core.admin import AdminAuthority
from gmatrix.core.gateway import ImageAnalysisGateway
from gmatrix.core.pipeline import SubmissionResult, VotePipeline
from gmatrix.store import DuckDBDocumentStore, MemoryDocumentStore

__all__ = [
    "UNNAMED_PRODUCT",
    "AdminSession",
    "Averages",
    "GeoPoint",
    "IdentifiedProduct",
    "Product",
    "Quadrant",
    "Rating",
    "RatingLabel",
    "Resolution",
    "StoreEntry",
    "StoreReport",
    "UserProfile",
    "Vote",
    "VoteOutcome",
    "DocumentStore",
    "Transaction",
    "VisionClient",
    "ConcurrencyConflict",
    "ExternalServiceFailure",
    "GMatrixError",
    "NotFound",
    "PermissionDenied",
    "ValidationError",
    "error_channel",
    "user_message",
    "Settings",
    "load_settings",
    "ProductResolver",
    "normalize_product_id",
    "ProductCatalog",
    "VoteAggregator",
    "VoteWeighting",
    "GamificationLedger",
    "AdminAuthority",
    "ImageAnalysisGateway",
    "SubmissionResult",
    "VotePipeline",
    "DuckDBDocumentStore",
    "MemoryDocumentStore",
]
