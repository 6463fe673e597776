from .engine import RelationshipEngine
from .exceptions import (
    ConstraintViolation,
    InvalidRelationshipState,
    RelationshipConflict,
    RelationshipError,
    RelationshipForbidden,
    RelationshipNotFound,
    RelationshipRuleViolation,
    RelationshipStoreError,
    SelfRelationshipError,
)
from .store import EdgeStore
from .views import AggregateViews

__all__ = [
    "AggregateViews",
    "EdgeStore",
    "RelationshipEngine",
    "RelationshipError",
    "RelationshipRuleViolation",
    "RelationshipNotFound",
    "RelationshipConflict",
    "InvalidRelationshipState",
    "SelfRelationshipError",
    "RelationshipForbidden",
    "RelationshipStoreError",
    "ConstraintViolation",
]
