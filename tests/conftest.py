"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing the Workflow Entities Manager.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.config.settings import Settings, get_settings
from src.graph.neo4j_client import WorkflowGraphClient
from src.integrity import (
    EntityNotFoundError,
    EntityType,
    IntegrityGate,
    ReferentialIntegrityValidator,
    ValidationPolicy,
)
from src.observability.metrics import MetricsRegistry


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with mock values."""
    with patch.dict(
        "os.environ",
        {
            "NEO4J_URI": "bolt://localhost:7687",
            "NEO4J_USERNAME": "neo4j",
            "NEO4J_PASSWORD": "password123",
        },
    ):
        # Clear cache and get fresh settings
        get_settings.cache_clear()
        return get_settings()


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryDocumentStore:
    """
    Document store keeping collections in dictionaries.

    Supports per-collection latency and failures so tests can observe
    concurrency, cancellation and error propagation.
    """

    def __init__(
        self,
        documents: dict[str, list[dict[str, Any]]] | None = None,
        latency: dict[str, float] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {
            name: [dict(doc) for doc in docs] for name, docs in (documents or {}).items()
        }
        self.latency = latency or {}
        self.failures = failures or {}
        self.queries: list[tuple[str, str, Any]] = []
        self.cancelled: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _simulate(self, collection: str, field: str, value: Any) -> None:
        self.queries.append((collection, field, value))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency.get(collection, 0))
        except asyncio.CancelledError:
            self.cancelled.append(collection)
            raise
        finally:
            self.in_flight -= 1

        if collection in self.failures:
            raise self.failures[collection]

    async def count_documents(self, collection: str, field: str, value: Any) -> int:
        await self._simulate(collection, field, value)
        return sum(1 for doc in self.collections.get(collection, []) if doc.get(field) == value)

    async def count_documents_containing(self, collection: str, field: str, value: Any) -> int:
        await self._simulate(collection, field, value)
        return sum(
            1 for doc in self.collections.get(collection, []) if value in (doc.get(field) or [])
        )

    def add(self, collection: str, document: dict[str, Any]) -> None:
        self.collections.setdefault(collection, []).append(dict(document))

    def remove(self, collection: str, document_id: str) -> bool:
        docs = self.collections.get(collection, [])
        remaining = [doc for doc in docs if doc.get("id") != document_id]
        self.collections[collection] = remaining
        return len(remaining) != len(docs)

    def find(self, collection: str, document_id: str) -> dict[str, Any] | None:
        for doc in self.collections.get(collection, []):
            if doc.get("id") == document_id:
                return doc
        return None

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return {name: [dict(doc) for doc in docs] for name, docs in self.collections.items()}


class InMemoryEntityRepository:
    """Entity repository over an ``InMemoryDocumentStore`` that records its calls."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self.store = store
        self.update_calls: list[tuple[EntityType, str, dict[str, Any]]] = []
        self.delete_calls: list[tuple[EntityType, str]] = []

    async def get(self, entity_type: EntityType, entity_id: str) -> dict[str, Any] | None:
        document = self.store.find(entity_type.collection, entity_id)
        return dict(document) if document is not None else None

    async def update(
        self, entity_type: EntityType, entity_id: str, new_state: dict[str, Any]
    ) -> dict[str, Any]:
        self.update_calls.append((entity_type, entity_id, new_state))
        current = self.store.find(entity_type.collection, entity_id)
        if current is None:
            raise EntityNotFoundError(entity_type, entity_id)
        current.clear()
        current.update({"id": entity_id, **new_state})
        return dict(current)

    async def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        self.delete_calls.append((entity_type, entity_id))
        if not self.store.remove(entity_type.collection, entity_id):
            raise EntityNotFoundError(entity_type, entity_id)
        return True


# =============================================================================
# Workflow Data Fixtures
# =============================================================================


@pytest.fixture
def sample_documents() -> dict[str, list[dict[str, Any]]]:
    """A small but fully connected set of workflow-definition documents."""
    return {
        "protocols": [{"id": "P1", "name": "http"}, {"id": "P2", "name": "sftp"}],
        "sources": [
            {"id": "S1", "name": "orders-in", "protocolId": "P1"},
            {"id": "S2", "name": "invoices-in", "protocolId": "P1"},
        ],
        "destinations": [{"id": "D1", "name": "archive", "protocolId": "P2"}],
        "importers": [{"id": "I1", "name": "csv-importer"}],
        "exporters": [{"id": "E1", "name": "json-exporter"}],
        "processors": [{"id": "X1", "name": "dedupe"}, {"id": "X2", "name": "unused"}],
        "steps": [
            {"id": "ST1", "entityId": "I1"},
            {"id": "ST2", "entityId": "X1"},
        ],
        "flows": [{"id": "F1", "stepIds": ["ST1", "ST2"]}],
        "orchestratedflows": [{"id": "OF1", "flowId": "F1"}],
    }


@pytest.fixture
def document_store(sample_documents: dict[str, list[dict[str, Any]]]) -> InMemoryDocumentStore:
    """In-memory store seeded with the sample documents."""
    return InMemoryDocumentStore(sample_documents)


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Fresh metrics registry, isolated from the process-wide one."""
    return MetricsRegistry()


@pytest.fixture
def validator(
    document_store: InMemoryDocumentStore,
    metrics_registry: MetricsRegistry,
) -> ReferentialIntegrityValidator:
    """Validator over the in-memory store with the default policy."""
    return ReferentialIntegrityValidator(
        document_store,
        policy=ValidationPolicy(),
        metrics=metrics_registry,
    )


@pytest.fixture
def entity_repository(document_store: InMemoryDocumentStore) -> InMemoryEntityRepository:
    return InMemoryEntityRepository(document_store)


@pytest.fixture
def integrity_gate(
    entity_repository: InMemoryEntityRepository,
    validator: ReferentialIntegrityValidator,
) -> IntegrityGate:
    return IntegrityGate(entity_repository, validator)


# =============================================================================
# Neo4j Client Fixtures
# =============================================================================


@pytest.fixture
def mock_graph_client() -> MagicMock:
    """Create a mock Neo4j client."""
    client = MagicMock(spec=WorkflowGraphClient)

    # Connection methods
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client.setup_schema = AsyncMock(return_value={"constraints": [], "indexes": [], "errors": []})

    # Query methods
    client.execute_cypher = AsyncMock(return_value=[])
    client.count_documents = AsyncMock(return_value=0)
    client.count_documents_containing = AsyncMock(return_value=0)

    return client


@pytest.fixture
def store_factory() -> type[InMemoryDocumentStore]:
    """Build stores with custom documents, latency or failures."""
    return InMemoryDocumentStore
