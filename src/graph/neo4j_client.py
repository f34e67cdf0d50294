"""
Workflow Graph Client Module.

Neo4j client for workflow-definition documents. Each collection is a
node label and each document a node carrying an ``id`` property plus
arbitrary other properties. Foreign keys are plain properties (scalar
or list), so the database enforces none of them.
"""

import re
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import ClientError

from src.config.settings import get_settings

logger = structlog.get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(name: str) -> str:
    """Validate a label/property name before it is interpolated into Cypher."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid collection or field name: {name!r}")
    return f"`{name}`"


def _to_document(node: Any) -> dict[str, Any]:
    """Convert a returned node to a plain document, temporal values as ISO strings."""
    return {
        key: value.iso_format() if hasattr(value, "iso_format") else value
        for key, value in dict(node).items()
    }


class WorkflowGraphClient:
    """
    Neo4j client for workflow-definition documents.

    Provides connection management, raw Cypher execution, document CRUD
    and the foreign-key counting queries used by referential integrity
    validation.
    """

    def __init__(self, settings: Any = None) -> None:
        """Initialize the client with optional custom settings."""
        self._driver: AsyncDriver | None = None
        self._settings = settings or get_settings().neo4j

    async def connect(self) -> None:
        """Establish connection to Neo4j database."""
        if self._driver is not None:
            return

        self._driver = AsyncGraphDatabase.driver(
            self._settings.uri,
            auth=(self._settings.username, self._settings.password.get_secret_value()),
            max_connection_pool_size=self._settings.max_connection_pool_size,
        )
        await self._driver.verify_connectivity()
        logger.info("Connected to Neo4j", uri=self._settings.uri)

    async def close(self) -> None:
        """Close the database connection."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Disconnected from Neo4j")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        if self._driver is None:
            await self.connect()

        assert self._driver is not None  # Type guard for mypy
        async with self._driver.session(database=self._settings.database) as session:
            yield session

    # =========================================================================
    # Raw Queries
    # =========================================================================

    async def execute_cypher(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a raw Cypher query.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries
        """
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            records: list[dict[str, Any]] = await result.data()

        logger.debug(
            "Cypher executed",
            query=query[:100],
            param_count=len(parameters) if parameters else 0,
            result_count=len(records),
        )

        return records

    async def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Execute a write query and return its counters.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            Summary counters of the write
        """
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            summary = await result.consume()

        counters = summary.counters
        return {
            "nodes_created": counters.nodes_created,
            "nodes_deleted": counters.nodes_deleted,
            "properties_set": counters.properties_set,
        }

    # =========================================================================
    # Schema
    # =========================================================================

    async def setup_schema(
        self,
        collections: Iterable[str],
        reference_fields: Iterable[tuple[str, str]],
    ) -> dict[str, Any]:
        """
        Create id constraints and foreign-key indexes.

        Reference counts filter on foreign-key properties, so every
        ``(collection, field)`` pair gets a property index.

        Args:
            collections: Collections (node labels) whose ``id`` must be unique
            reference_fields: ``(collection, field)`` pairs holding references

        Returns:
            Dictionary with creation results per kind
        """
        results: dict[str, list[Any]] = {"constraints": [], "indexes": [], "errors": []}

        queries: list[tuple[str, str]] = []
        for collection in dict.fromkeys(collections):
            name = f"{collection}_id_unique"
            queries.append((
                "constraints",
                f"CREATE CONSTRAINT {name} IF NOT EXISTS "
                f"FOR (d:{_identifier(collection)}) REQUIRE d.id IS UNIQUE",
            ))
        for collection, field in dict.fromkeys(reference_fields):
            name = f"idx_{collection}_{field}"
            queries.append((
                "indexes",
                f"CREATE INDEX {name} IF NOT EXISTS "
                f"FOR (d:{_identifier(collection)}) ON (d.{_identifier(field)})",
            ))

        async with self.session() as session:
            for kind, query in queries:
                try:
                    await session.run(query)
                    results[kind].append({"query": query[:60], "status": "created"})
                except ClientError as e:
                    results["errors"].append({"query": query[:60], "error": e.code})
                    logger.warning("Schema statement failed", query=query[:60], error=str(e))

        logger.info(
            "Schema setup complete",
            constraints=len(results["constraints"]),
            indexes=len(results["indexes"]),
            errors=len(results["errors"]),
        )
        return results

    # =========================================================================
    # Reference Counting
    # =========================================================================

    async def count_documents(self, collection: str, field: str, value: Any) -> int:
        """
        Count documents whose ``field`` equals ``value``.

        Args:
            collection: Collection (node label)
            field: Scalar foreign-key property
            value: Referenced id

        Returns:
            Number of matching documents
        """
        query = f"""
        MATCH (d:{_identifier(collection)})
        WHERE d.{_identifier(field)} = $value
        RETURN count(d) as count
        """
        records = await self.execute_cypher(query, {"value": value})
        return records[0]["count"] if records else 0

    async def count_documents_containing(
        self, collection: str, field: str, value: Any
    ) -> int:
        """
        Count documents whose list-valued ``field`` contains ``value``.

        Args:
            collection: Collection (node label)
            field: List foreign-key property
            value: Referenced id

        Returns:
            Number of matching documents
        """
        query = f"""
        MATCH (d:{_identifier(collection)})
        WHERE $value IN coalesce(d.{_identifier(field)}, [])
        RETURN count(d) as count
        """
        records = await self.execute_cypher(query, {"value": value})
        return records[0]["count"] if records else 0

    # =========================================================================
    # Documents
    # =========================================================================

    async def get_document(self, collection: str, document_id: str) -> dict[str, Any] | None:
        """Get a document by id, or None."""
        query = f"""
        MATCH (d:{_identifier(collection)} {{id: $id}})
        RETURN d
        """
        records = await self.execute_cypher(query, {"id": document_id})
        return _to_document(records[0]["d"]) if records else None

    async def create_document(self, collection: str, properties: dict[str, Any]) -> dict[str, Any]:
        """
        Create a document.

        Args:
            collection: Collection (node label)
            properties: Document properties, must include ``id``

        Returns:
            Created document
        """
        if "id" not in properties:
            raise ValueError("Document properties must include 'id'")

        query = f"""
        CREATE (d:{_identifier(collection)})
        SET d = $props, d.created_at = datetime()
        RETURN d
        """
        records = await self.execute_cypher(query, {"props": properties})
        logger.info("Document created", collection=collection, id=properties["id"])
        return _to_document(records[0]["d"]) if records else properties

    async def update_document(
        self,
        collection: str,
        document_id: str,
        properties: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Replace a document's properties, keeping its creation timestamp.

        Returns:
            Updated document, or None if it does not exist
        """
        query = f"""
        MATCH (d:{_identifier(collection)} {{id: $id}})
        WITH d, d.created_at as created_at
        SET d = $props, d.created_at = created_at, d.updated_at = datetime()
        RETURN d
        """
        props = {**properties, "id": properties.get("id", document_id)}
        records = await self.execute_cypher(query, {"id": document_id, "props": props})
        if not records:
            return None

        logger.info("Document updated", collection=collection, id=document_id)
        return _to_document(records[0]["d"])

    async def delete_document(self, collection: str, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        query = f"""
        MATCH (d:{_identifier(collection)} {{id: $id}})
        DELETE d
        """
        counters = await self.execute_write(query, {"id": document_id})
        deleted = counters["nodes_deleted"] > 0
        if deleted:
            logger.info("Document deleted", collection=collection, id=document_id)
        return deleted


# Singleton instance
_client: WorkflowGraphClient | None = None


def get_workflow_client() -> WorkflowGraphClient:
    """Get the singleton WorkflowGraphClient instance."""
    global _client
    if _client is None:
        _client = WorkflowGraphClient()
    return _client
