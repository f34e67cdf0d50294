"""
Referential Integrity Errors.

``IntegrityViolation`` is the only error callers need to special-case
(409 conflict / rejected command). Everything else is infrastructure.
"""

from typing import Any

from src.integrity.models import ReferenceSummary
from src.integrity.reference_graph import EntityType, ReferenceEdge

VIOLATION_ERROR_CODE = "REFERENTIAL_INTEGRITY_VIOLATION"


class IntegrityError(Exception):
    """Base class for referential integrity errors."""

    pass


class IntegrityViolation(IntegrityError):
    """Raised when an entity is still referenced and cannot be deleted or modified."""

    def __init__(
        self,
        entity_type: EntityType,
        entity_id: str,
        summary: ReferenceSummary,
        message: str,
    ):
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.summary = summary
        self.message = message

    @property
    def total_references(self) -> int:
        return self.summary.total_references

    def to_dict(self) -> dict[str, Any]:
        """Structured conflict payload."""
        return {
            "error": self.message,
            "error_code": VIOLATION_ERROR_CODE,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "referencing_entities": {
                "total_references": self.total_references,
                "entity_types": [
                    {"entity_type": t.value, "count": c}
                    for t, c in self.summary.referencing_types()
                ],
            },
        }


class CountingFailure(IntegrityError):
    """Raised when counting references along an edge fails in the store."""

    def __init__(self, edge: ReferenceEdge, target_id: str):
        super().__init__(
            f"Failed to count {edge.from_type.value} references to "
            f"{edge.to_type.value} '{target_id}'"
        )
        self.edge = edge
        self.target_id = target_id


class ConfigurationError(IntegrityError):
    """Raised for invalid referential integrity configuration."""

    pass


class EntityNotFoundError(IntegrityError):
    """Raised by repositories when the entity to update/delete does not exist."""

    def __init__(self, entity_type: EntityType, entity_id: str):
        super().__init__(f"{entity_type.value} with ID {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
