"""
Unit Tests for Neo4j Client.

Tests the WorkflowGraphClient class functionality.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.graph.neo4j_client import WorkflowGraphClient, get_workflow_client


def _mock_driver(records: list[dict[str, Any]] | None = None, nodes_deleted: int = 0) -> MagicMock:
    """Build a driver whose sessions return ``records`` / write counters."""
    mock_result = MagicMock()
    mock_result.data = AsyncMock(return_value=records or [])
    summary = MagicMock()
    summary.counters.nodes_created = 0
    summary.counters.nodes_deleted = nodes_deleted
    summary.counters.properties_set = 0
    mock_result.consume = AsyncMock(return_value=summary)

    mock_session = MagicMock()
    mock_session.run = AsyncMock(return_value=mock_result)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)

    mock_driver = MagicMock()
    mock_driver.verify_connectivity = AsyncMock()
    mock_driver.close = AsyncMock()
    mock_driver.session.return_value = mock_session
    return mock_driver


class TestWorkflowGraphClient:
    """Test cases for WorkflowGraphClient."""

    # =========================================================================
    # Connection Tests
    # =========================================================================

    @pytest.mark.asyncio
    async def test_connect_success(self) -> None:
        """Test successful database connection."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver()
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            await client.connect()

            mock_db.driver.assert_called_once()
            mock_driver.verify_connectivity.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_already_connected(self) -> None:
        """Test that connect() is idempotent."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_db.driver.return_value = _mock_driver()

            client = WorkflowGraphClient()
            await client.connect()
            await client.connect()  # Second call should be no-op

            assert mock_db.driver.call_count == 1

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """Test database disconnection."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver()
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            await client.connect()
            await client.close()
            await client.close()

            mock_driver.close.assert_called_once()

    # =========================================================================
    # Counting Tests
    # =========================================================================

    @pytest.mark.asyncio
    async def test_count_documents(self) -> None:
        """Test scalar foreign-key count."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver([{"count": 2}])
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            count = await client.count_documents("sources", "protocolId", "P1")

            assert count == 2
            session = mock_driver.session.return_value
            query, params = session.run.call_args[0]
            assert "MATCH (d:`sources`)" in query
            assert "d.`protocolId` = $value" in query
            assert params == {"value": "P1"}

    @pytest.mark.asyncio
    async def test_count_documents_containing(self) -> None:
        """Test list foreign-key count."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver([{"count": 1}])
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            count = await client.count_documents_containing("flows", "stepIds", "ST1")

            assert count == 1
            query = mock_driver.session.return_value.run.call_args[0][0]
            assert "$value IN coalesce(d.`stepIds`, [])" in query

    @pytest.mark.asyncio
    async def test_count_without_records_is_zero(self) -> None:
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_db.driver.return_value = _mock_driver([])

            client = WorkflowGraphClient()

            assert await client.count_documents("steps", "entityId", "I1") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "collection,field",
        [("sources`) DETACH DELETE d //", "id"), ("sources", "1field"), ("", "id")],
    )
    async def test_invalid_identifier_rejected(self, collection: str, field: str) -> None:
        """Test that names are never interpolated unchecked."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver()
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            with pytest.raises(ValueError, match="Invalid collection or field name"):
                await client.count_documents(collection, field, "P1")

            mock_driver.session.return_value.run.assert_not_called()

    # =========================================================================
    # Schema Tests
    # =========================================================================

    @pytest.mark.asyncio
    async def test_setup_schema(self) -> None:
        """Test schema setup creates constraints and foreign-key indexes."""
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_driver = _mock_driver()
            mock_db.driver.return_value = mock_driver

            client = WorkflowGraphClient()
            result = await client.setup_schema(
                ["protocols", "sources", "sources"],
                [("sources", "protocolId"), ("sources", "protocolId")],
            )

            assert len(result["constraints"]) == 2
            assert len(result["indexes"]) == 1
            assert result["errors"] == []
            queries = [c[0][0] for c in mock_driver.session.return_value.run.call_args_list]
            assert any("ON (d.`protocolId`)" in q for q in queries)

    # =========================================================================
    # Document Tests
    # =========================================================================

    @pytest.mark.asyncio
    async def test_create_document_requires_id(self) -> None:
        client = WorkflowGraphClient()

        with pytest.raises(ValueError, match="must include 'id'"):
            await client.create_document("protocols", {"name": "http"})

    @pytest.mark.asyncio
    async def test_get_document(self) -> None:
        created_at = MagicMock()
        created_at.iso_format.return_value = "2024-01-01T00:00:00Z"

        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_db.driver.return_value = _mock_driver(
                [{"d": {"id": "P1", "name": "http", "created_at": created_at}}]
            )

            client = WorkflowGraphClient()
            document = await client.get_document("protocols", "P1")

            assert document == {
                "id": "P1",
                "name": "http",
                "created_at": "2024-01-01T00:00:00Z",
            }

    @pytest.mark.asyncio
    async def test_update_missing_document(self) -> None:
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_db.driver.return_value = _mock_driver([])

            client = WorkflowGraphClient()

            assert await client.update_document("protocols", "P404", {"name": "x"}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("nodes_deleted,expected", [(1, True), (0, False)])
    async def test_delete_document(self, nodes_deleted: int, expected: bool) -> None:
        with patch("src.graph.neo4j_client.AsyncGraphDatabase") as mock_db:
            mock_db.driver.return_value = _mock_driver(nodes_deleted=nodes_deleted)

            client = WorkflowGraphClient()

            assert await client.delete_document("protocols", "P1") is expected


class TestSingleton:
    """Test singleton pattern."""

    def test_get_workflow_client_singleton(self) -> None:
        """Test that get_workflow_client returns same instance."""
        with patch("src.graph.neo4j_client._client", None):
            client1 = get_workflow_client()
            client2 = get_workflow_client()

            assert client1 is client2
