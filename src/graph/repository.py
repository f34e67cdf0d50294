"""
Workflow Entity Repository.

Plain persistence for workflow-definition entities on top of the
workflow graph client. Carries no validation: wrap it in an
``IntegrityGate`` to guard updates and deletions.
"""

from typing import Any

import structlog

from src.graph.neo4j_client import WorkflowGraphClient, get_workflow_client
from src.integrity.errors import EntityNotFoundError
from src.integrity.reference_graph import EntityType

logger = structlog.get_logger(__name__)


class GraphEntityRepository:
    """Entity repository backed by Neo4j, one label per entity collection."""

    def __init__(self, client: WorkflowGraphClient | None = None) -> None:
        self._client = client or get_workflow_client()

    async def get(self, entity_type: EntityType, entity_id: str) -> dict[str, Any] | None:
        return await self._client.get_document(entity_type.collection, entity_id)

    async def create(self, entity_type: EntityType, properties: dict[str, Any]) -> dict[str, Any]:
        return await self._client.create_document(entity_type.collection, properties)

    async def update(
        self,
        entity_type: EntityType,
        entity_id: str,
        new_state: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Replace an entity's state.

        Raises:
            EntityNotFoundError: If the entity does not exist
        """
        updated = await self._client.update_document(entity_type.collection, entity_id, new_state)
        if updated is None:
            logger.warning("Entity not found for update", entity_type=entity_type.value, id=entity_id)
            raise EntityNotFoundError(entity_type, entity_id)
        return updated

    async def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        """
        Delete an entity.

        Raises:
            EntityNotFoundError: If the entity does not exist
        """
        deleted = await self._client.delete_document(entity_type.collection, entity_id)
        if not deleted:
            logger.warning("Entity not found for deletion", entity_type=entity_type.value, id=entity_id)
            raise EntityNotFoundError(entity_type, entity_id)
        return deleted
