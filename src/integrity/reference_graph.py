"""
Reference Graph.

Declares which workflow entity types depend on which, through which
foreign-key field, and in which backing collection. Adding or removing
a dependency is a one-line change to ``DEFAULT_EDGES``.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class EntityType(str, Enum):
    """Managed workflow entity types."""

    PROTOCOL = "Protocol"
    SOURCE = "Source"
    DESTINATION = "Destination"
    PROCESSOR = "Processor"
    IMPORTER = "Importer"
    EXPORTER = "Exporter"
    STEP = "Step"
    FLOW = "Flow"
    ORCHESTRATED_FLOW = "OrchestratedFlow"

    @property
    def collection(self) -> str:
        """Name of the collection holding documents of this type."""
        return _COLLECTIONS[self]

    @classmethod
    def parse(cls, value: str) -> "EntityType":
        """Resolve an entity type from its name or collection name (case-insensitive)."""
        needle = value.strip().lower()
        for entity_type in cls:
            if needle in (entity_type.value.lower(), entity_type.collection):
                return entity_type
        raise ValueError(f"Unknown entity type: {value!r}")


_COLLECTIONS: dict[EntityType, str] = {
    EntityType.PROTOCOL: "protocols",
    EntityType.SOURCE: "sources",
    EntityType.DESTINATION: "destinations",
    EntityType.PROCESSOR: "processors",
    EntityType.IMPORTER: "importers",
    EntityType.EXPORTER: "exporters",
    EntityType.STEP: "steps",
    EntityType.FLOW: "flows",
    EntityType.ORCHESTRATED_FLOW: "orchestratedflows",
}


class Cardinality(str, Enum):
    """Shape of a foreign-key field."""

    SINGLE = "single"  # field holds one id
    MANY = "many"      # field holds a list of ids


@dataclass(frozen=True)
class ReferenceEdge:
    """Documents of ``from_type`` reference ``to_type`` through ``foreign_key_field``."""

    from_type: EntityType
    to_type: EntityType
    foreign_key_field: str
    cardinality: Cardinality = Cardinality.SINGLE

    @property
    def key(self) -> str:
        """Stable identifier used by policy toggles."""
        return f"{self.from_type.value}->{self.to_type.value}"

    @property
    def collection(self) -> str:
        """Collection that must be queried to count this edge."""
        return self.from_type.collection

    def __str__(self) -> str:
        return f"{self.from_type.value}.{self.foreign_key_field} -> {self.to_type.value}"


DEFAULT_EDGES: tuple[ReferenceEdge, ...] = (
    ReferenceEdge(EntityType.SOURCE, EntityType.PROTOCOL, "protocolId"),
    ReferenceEdge(EntityType.DESTINATION, EntityType.PROTOCOL, "protocolId"),
    ReferenceEdge(EntityType.STEP, EntityType.IMPORTER, "entityId"),
    ReferenceEdge(EntityType.STEP, EntityType.EXPORTER, "entityId"),
    ReferenceEdge(EntityType.STEP, EntityType.PROCESSOR, "entityId"),
    ReferenceEdge(EntityType.FLOW, EntityType.STEP, "stepIds", Cardinality.MANY),
    ReferenceEdge(EntityType.ORCHESTRATED_FLOW, EntityType.FLOW, "flowId"),
)


class ReferenceGraph:
    """
    Immutable directed graph of reference edges between entity types.

    Usage:
        ```python
        graph = ReferenceGraph()
        for edge in graph.edges_into(EntityType.PROTOCOL):
            print(edge.key, edge.foreign_key_field)
        ```
    """

    def __init__(self, edges: Iterable[ReferenceEdge] = DEFAULT_EDGES) -> None:
        self._edges = tuple(edges)

        seen: set[tuple[str, str]] = set()
        for edge in self._edges:
            identity = (edge.key, edge.foreign_key_field)
            if identity in seen:
                raise ValueError(f"Duplicate reference edge: {edge}")
            seen.add(identity)

        incoming: dict[EntityType, list[ReferenceEdge]] = {}
        for edge in self._edges:
            incoming.setdefault(edge.to_type, []).append(edge)
        self._incoming = {k: tuple(v) for k, v in incoming.items()}

    @property
    def edges(self) -> tuple[ReferenceEdge, ...]:
        """All edges in declaration order."""
        return self._edges

    @property
    def edge_keys(self) -> frozenset[str]:
        return frozenset(edge.key for edge in self._edges)

    def edges_into(self, entity_type: EntityType) -> tuple[ReferenceEdge, ...]:
        """Edges whose target is ``entity_type``, in declaration order."""
        return self._incoming.get(entity_type, ())

    def referencing_types(self, entity_type: EntityType) -> list[EntityType]:
        """Entity types that may reference ``entity_type``, deduplicated, in declaration order."""
        types: list[EntityType] = []
        for edge in self.edges_into(entity_type):
            if edge.from_type not in types:
                types.append(edge.from_type)
        return types

    def reference_fields(self) -> list[tuple[str, str]]:
        """Distinct ``(collection, field)`` pairs queried by reference counts."""
        pairs = ((edge.collection, edge.foreign_key_field) for edge in self._edges)
        return list(dict.fromkeys(pairs))


_default_graph = ReferenceGraph()


def get_reference_graph() -> ReferenceGraph:
    """Get the process-wide reference graph."""
    return _default_graph
