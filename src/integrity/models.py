"""
Referential Integrity Result Model.

Per-edge reference counts, the per-entity summary built from them and
the verdict rendered by the validator.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from src.integrity.reference_graph import EntityType, ReferenceEdge

if TYPE_CHECKING:
    from src.integrity.errors import IntegrityViolation


@dataclass(frozen=True)
class ReferenceCount:
    """Number of documents holding ``edge`` references to one id."""

    edge: ReferenceEdge
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"Reference count must be non-negative, got {self.count}")


@dataclass
class ReferenceSummary:
    """Reference counts gathered for one entity during one validation call."""

    entity_type: EntityType
    entity_id: str
    counts: list[ReferenceCount] = field(default_factory=list)

    @property
    def by_type(self) -> dict[EntityType, int]:
        """Counts per referencing entity type, in edge declaration order."""
        totals: dict[EntityType, int] = {}
        for ref in self.counts:
            totals[ref.edge.from_type] = totals.get(ref.edge.from_type, 0) + ref.count
        return totals

    @property
    def total_references(self) -> int:
        return sum(ref.count for ref in self.counts)

    @property
    def has_references(self) -> bool:
        return self.total_references > 0

    def referencing_types(self) -> list[tuple[EntityType, int]]:
        """Referencing types with a non-zero count."""
        return [(t, c) for t, c in self.by_type.items() if c > 0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "total_references": self.total_references,
            "has_references": self.has_references,
            "counts": {t.value: c for t, c in self.by_type.items()},
            "edges": [
                {
                    "edge": ref.edge.key,
                    "field": ref.edge.foreign_key_field,
                    "collection": ref.edge.collection,
                    "count": ref.count,
                }
                for ref in self.counts
            ],
        }


def render_violation_message(summary: ReferenceSummary) -> str:
    """Human-readable explanation of why ``summary.entity_type`` cannot be touched."""
    clauses = [
        f"{count} {entity_type.value} reference(s)"
        for entity_type, count in summary.referencing_types()
    ]
    return f"Cannot delete/modify {summary.entity_type.value}. Found {' and '.join(clauses)}."


@dataclass
class ValidationVerdict:
    """Outcome of one referential integrity validation call."""

    is_valid: bool
    summary: ReferenceSummary
    error_message: str | None = None
    validation_duration: timedelta = field(default_factory=timedelta)

    @classmethod
    def from_summary(
        cls,
        summary: ReferenceSummary,
        duration: timedelta | None = None,
    ) -> "ValidationVerdict":
        """Valid when nothing references the entity, invalid otherwise."""
        duration = duration or timedelta()
        if summary.has_references:
            return cls(
                is_valid=False,
                summary=summary,
                error_message=render_violation_message(summary),
                validation_duration=duration,
            )
        return cls(is_valid=True, summary=summary, validation_duration=duration)

    def to_error(self) -> "IntegrityViolation":
        """Build the error that propagates this (failing) verdict to callers."""
        from src.integrity.errors import IntegrityViolation

        if self.is_valid:
            raise ValueError("A valid verdict cannot be converted to an integrity violation")
        return IntegrityViolation(
            entity_type=self.summary.entity_type,
            entity_id=self.summary.entity_id,
            summary=self.summary,
            message=self.error_message or render_violation_message(self.summary),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "error_message": self.error_message,
            "summary": self.summary.to_dict(),
            "validation_duration_ms": round(self.validation_duration.total_seconds() * 1000, 2),
        }
