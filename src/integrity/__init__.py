"""
Referential Integrity Engine.

Guards updates and deletions of workflow-definition entities against
dangling references:
- Reference graph of foreign-key edges between entity types
- Per-edge reference counting against the document store
- Parallel or sequential validation driven by a policy
- Integrity gate in front of repository writes
"""

from src.integrity.counter import DocumentCounter, ReferenceCounter
from src.integrity.errors import (
    ConfigurationError,
    CountingFailure,
    EntityNotFoundError,
    IntegrityError,
    IntegrityViolation,
)
from src.integrity.gate import EntityRepository, IntegrityGate
from src.integrity.models import (
    ReferenceCount,
    ReferenceSummary,
    ValidationVerdict,
    render_violation_message,
)
from src.integrity.policy import ValidationPolicy, load_policy
from src.integrity.reference_graph import (
    DEFAULT_EDGES,
    Cardinality,
    EntityType,
    ReferenceEdge,
    ReferenceGraph,
    get_reference_graph,
)
from src.integrity.validator import ReferentialIntegrityValidator, get_integrity_validator

__all__ = [
    # Graph
    "EntityType",
    "Cardinality",
    "ReferenceEdge",
    "ReferenceGraph",
    "DEFAULT_EDGES",
    "get_reference_graph",
    # Counting
    "DocumentCounter",
    "ReferenceCounter",
    # Results
    "ReferenceCount",
    "ReferenceSummary",
    "ValidationVerdict",
    "render_violation_message",
    # Policy
    "ValidationPolicy",
    "load_policy",
    # Validation
    "ReferentialIntegrityValidator",
    "get_integrity_validator",
    "IntegrityGate",
    "EntityRepository",
    # Errors
    "IntegrityError",
    "IntegrityViolation",
    "CountingFailure",
    "ConfigurationError",
    "EntityNotFoundError",
]
