from .factory import known_categories, resolve
from .pipeline import run_intake
from .types import CanonicalRequest, CategoryRule, EntityType, IntakeResult, RequestStatus

__all__ = [
    "CanonicalRequest",
    "CategoryRule",
    "EntityType",
    "IntakeResult",
    "RequestStatus",
    "known_categories",
    "resolve",
    "run_intake",
]
