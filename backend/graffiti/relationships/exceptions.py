"""Error taxonomy for relationship operations."""

from __future__ import annotations


class RelationshipError(Exception):
    """Base class for relationship engine errors."""

    reason: str = "unknown"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        super().__init__(message or self.reason)
        if reason:
            self.reason = reason


class RelationshipRuleViolation(RelationshipError):
    """A business rule rejected the operation. Callers answer with a 4xx."""


class RelationshipNotFound(RelationshipRuleViolation):
    reason = "not_found"


class RelationshipConflict(RelationshipRuleViolation):
    reason = "conflict"


class InvalidRelationshipState(RelationshipRuleViolation):
    reason = "invalid_state"


class SelfRelationshipError(InvalidRelationshipState):
    reason = "self_relationship"


class RelationshipForbidden(RelationshipRuleViolation):
    reason = "forbidden"


class RelationshipStoreError(RelationshipError):
    """The database failed underneath the engine (connection loss, bad SQL, ...)."""

    reason = "internal"


class ConstraintViolation(RelationshipStoreError):
    reason = "constraint_violation"
