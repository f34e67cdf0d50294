"""
Reference Counter.

Executes one reference edge against the store. Every edge is counted
the same way, so a new dependency needs only a new graph edge.
"""

from typing import Any, Protocol

import structlog
from neo4j.exceptions import DriverError, Neo4jError

from src.integrity.errors import CountingFailure
from src.integrity.models import ReferenceCount
from src.integrity.reference_graph import Cardinality, ReferenceEdge

logger = structlog.get_logger(__name__)


class DocumentCounter(Protocol):
    """Read-only counting capability of the document store."""

    async def count_documents(self, collection: str, field: str, value: Any) -> int: ...

    async def count_documents_containing(self, collection: str, field: str, value: Any) -> int: ...


class ReferenceCounter:
    """Counts documents referencing an id along one edge."""

    def __init__(self, store: DocumentCounter) -> None:
        self._store = store

    async def count(self, edge: ReferenceEdge, target_id: str) -> ReferenceCount:
        """
        Count documents of ``edge.from_type`` pointing at ``target_id``.

        Args:
            edge: Reference edge to execute
            target_id: Id of the referenced entity

        Returns:
            ReferenceCount for the edge

        Raises:
            CountingFailure: If the store query fails or the edge is malformed
        """
        try:
            if edge.cardinality == Cardinality.MANY:
                count = await self._store.count_documents_containing(
                    edge.collection, edge.foreign_key_field, target_id
                )
            else:
                count = await self._store.count_documents(
                    edge.collection, edge.foreign_key_field, target_id
                )
        except (Neo4jError, DriverError, ValueError) as e:
            logger.error(
                "Error counting references",
                edge=edge.key,
                collection=edge.collection,
                field=edge.foreign_key_field,
                target_id=target_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CountingFailure(edge, target_id) from e

        logger.debug(
            "Counted references",
            edge=edge.key,
            collection=edge.collection,
            target_id=target_id,
            count=count,
        )
        return ReferenceCount(edge=edge, count=int(count))
