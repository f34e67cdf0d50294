"""
Integrity Gate.

Wraps a repository's update and delete operations so that they only
run after referential integrity validation passes. On rejection the
repository is never called.

There is no lock between the check and the write: a concurrent request
may add or remove a reference in between.
"""

from typing import Any, Protocol

import structlog

from src.integrity.errors import IntegrityViolation
from src.integrity.reference_graph import EntityType
from src.integrity.validator import ReferentialIntegrityValidator
from src.observability.logging import LogContext

logger = structlog.get_logger(__name__)


class EntityRepository(Protocol):
    """Persistence operations the integrity gate delegates to."""

    async def get(self, entity_type: EntityType, entity_id: str) -> Any: ...

    async def update(
        self, entity_type: EntityType, entity_id: str, new_state: dict[str, Any]
    ) -> Any: ...

    async def delete(self, entity_type: EntityType, entity_id: str) -> Any: ...


class IntegrityGate:
    """
    Guarded update/delete on top of a plain entity repository.

    Usage:
        ```python
        gate = IntegrityGate(GraphEntityRepository(), get_integrity_validator())

        try:
            await gate.guarded_delete(EntityType.PROTOCOL, "P1")
        except IntegrityViolation as e:
            return JSONResponse(status_code=409, content=e.to_dict())
        ```
    """

    def __init__(
        self,
        repository: EntityRepository,
        validator: ReferentialIntegrityValidator,
    ) -> None:
        self._repository = repository
        self._validator = validator

    async def guarded_delete(self, entity_type: EntityType, entity_id: str) -> Any:
        """
        Delete an entity if nothing references it.

        Returns:
            Whatever the repository's delete returns

        Raises:
            IntegrityViolation: If the entity is still referenced
        """
        with LogContext(operation="delete", entity_type=entity_type.value, entity_id=entity_id):
            logger.info("Validating referential integrity before deletion")

            verdict = await self._validator.validate_deletion(entity_type, entity_id)
            if not verdict.is_valid:
                self._reject("deletion", verdict.to_error())

            logger.info("Referential integrity validation passed, proceeding with deletion")
            return await self._repository.delete(entity_type, entity_id)

    async def guarded_update(
        self,
        entity_type: EntityType,
        entity_id: str,
        new_state: dict[str, Any],
    ) -> Any:
        """
        Update an entity if nothing references it.

        Args:
            entity_type: Type of the entity
            entity_id: Current id of the entity
            new_state: Replacement state; an ``id`` in it re-parents the entity

        Returns:
            Whatever the repository's update returns

        Raises:
            IntegrityViolation: If the entity is still referenced
        """
        new_id = new_state.get("id")
        with LogContext(operation="update", entity_type=entity_type.value, entity_id=entity_id):
            verdict = await self._validator.validate_update(
                entity_type, entity_id, new_id=str(new_id) if new_id is not None else None
            )
            if not verdict.is_valid:
                self._reject("update", verdict.to_error())

            return await self._repository.update(entity_type, entity_id, new_state)

    def _reject(self, operation: str, error: IntegrityViolation) -> None:
        logger.warning(
            f"Referential integrity violation prevented {operation}",
            error=error.message,
            total_references=error.total_references,
        )
        raise error
