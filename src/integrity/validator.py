"""
Referential Integrity Validator.

Decides whether an entity may be deleted or modified by counting the
documents that still reference it along every enabled edge of the
reference graph.
"""

import asyncio
from datetime import timedelta

import structlog

from src.graph.neo4j_client import get_workflow_client
from src.integrity.counter import DocumentCounter, ReferenceCounter
from src.integrity.models import ReferenceCount, ReferenceSummary, ValidationVerdict
from src.integrity.policy import PolicyProvider, ValidationPolicy, load_policy
from src.integrity.reference_graph import (
    EntityType,
    ReferenceEdge,
    ReferenceGraph,
    get_reference_graph,
)
from src.observability.metrics import (
    MetricsRegistry,
    ValidationOutcome,
    ValidationTimer,
    get_metrics_registry,
)

logger = structlog.get_logger(__name__)


class ReferentialIntegrityValidator:
    """
    Validates that no document still references an entity.

    Counts run concurrently (fan-out/fan-in) or one at a time in
    declaration order, depending on the policy. Both modes yield the same
    summary for the same data. The policy is resolved at the start of
    every call.

    Usage:
        ```python
        validator = ReferentialIntegrityValidator(get_workflow_client())

        verdict = await validator.validate_deletion(EntityType.PROTOCOL, "P1")
        if not verdict.is_valid:
            raise verdict.to_error()
        ```
    """

    def __init__(
        self,
        store: DocumentCounter,
        graph: ReferenceGraph | None = None,
        policy: ValidationPolicy | PolicyProvider | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._graph = graph or get_reference_graph()
        self._counter = ReferenceCounter(store)
        self._metrics = metrics or get_metrics_registry()

        if policy is None:
            graph_for_policy = self._graph
            self._policy_provider: PolicyProvider = lambda: load_policy(graph_for_policy)
        elif isinstance(policy, ValidationPolicy):
            self._policy_provider = lambda: policy
        else:
            self._policy_provider = policy

    @property
    def graph(self) -> ReferenceGraph:
        return self._graph

    async def validate_deletion(self, entity_type: EntityType, entity_id: str) -> ValidationVerdict:
        """
        Check whether ``entity_id`` may be deleted.

        Args:
            entity_type: Type of the entity
            entity_id: Id of the entity

        Returns:
            ValidationVerdict (valid when nothing references the entity or
            validation is disabled)

        Raises:
            CountingFailure: If a reference count fails
            ConfigurationError: If the policy cannot be loaded
        """
        policy = self._policy_provider()

        if not policy.enabled:
            logger.debug(
                "Referential integrity validation is disabled",
                entity_type=entity_type.value,
                entity_id=entity_id,
            )
            self._metrics.validation_metrics.record(entity_type.value, ValidationOutcome.DISABLED)
            return ValidationVerdict(
                is_valid=True,
                summary=ReferenceSummary(entity_type=entity_type, entity_id=entity_id),
            )

        logger.info(
            "Starting referential integrity validation",
            entity_type=entity_type.value,
            entity_id=entity_id,
            parallel=policy.parallel,
        )

        try:
            async with ValidationTimer() as timer:
                summary = await self._collect(entity_type, entity_id, policy)
        except Exception as e:
            # Store errors outside the driver hierarchy reach here unwrapped
            self._metrics.validation_metrics.record(
                entity_type.value, ValidationOutcome.FAILURE, timer.elapsed_ms
            )
            logger.error(
                "Referential integrity validation failed",
                entity_type=entity_type.value,
                entity_id=entity_id,
                error_type=type(e).__name__,
            )
            raise

        verdict = ValidationVerdict.from_summary(
            summary, timedelta(milliseconds=timer.elapsed_ms)
        )
        self._metrics.validation_metrics.record(
            entity_type.value,
            ValidationOutcome.VALID if verdict.is_valid else ValidationOutcome.VIOLATION,
            timer.elapsed_ms,
        )

        logger.info(
            "Referential integrity validation completed",
            entity_type=entity_type.value,
            entity_id=entity_id,
            is_valid=verdict.is_valid,
            total_references=summary.total_references,
            counts={t.value: c for t, c in summary.by_type.items()},
            duration_ms=round(timer.elapsed_ms, 2),
        )

        return verdict

    async def validate_update(
        self,
        entity_type: EntityType,
        entity_id: str,
        new_id: str | None = None,
    ) -> ValidationVerdict:
        """
        Check whether ``entity_id`` may be modified.

        Every update is validated like a deletion of the current id,
        whether or not identity-bearing fields change.

        Args:
            entity_type: Type of the entity
            entity_id: Current id of the entity
            new_id: Id after the update, when the update re-parents the entity

        Returns:
            ValidationVerdict for the current id
        """
        if new_id is not None and new_id != entity_id:
            logger.info(
                "Validating entity ID change",
                entity_type=entity_type.value,
                current_id=entity_id,
                new_id=new_id,
            )

        return await self.validate_deletion(entity_type, entity_id)

    async def get_references(self, entity_type: EntityType, entity_id: str) -> ReferenceSummary:
        """
        Count references to an entity without rendering a verdict.

        The kill switch is ignored; per-edge toggles and the execution
        mode still apply.
        """
        policy = self._policy_provider()
        return await self._collect(entity_type, entity_id, policy)

    async def _collect(
        self,
        entity_type: EntityType,
        entity_id: str,
        policy: ValidationPolicy,
    ) -> ReferenceSummary:
        """Run the counters for every enabled edge into ``entity_type``."""
        edges = policy.applicable_edges(self._graph.edges_into(entity_type))

        if policy.parallel:
            counts = await self._count_parallel(edges, entity_id)
        else:
            counts = [await self._counter.count(edge, entity_id) for edge in edges]

        return ReferenceSummary(entity_type=entity_type, entity_id=entity_id, counts=counts)

    async def _count_parallel(
        self,
        edges: list[ReferenceEdge],
        entity_id: str,
    ) -> list[ReferenceCount]:
        """Dispatch all counts at once and wait for every one of them."""
        tasks = [asyncio.ensure_future(self._counter.count(edge, entity_id)) for edge in edges]
        if not tasks:
            return []

        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # No orphaned queries when a sibling fails or the caller cancels
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


_validator: ReferentialIntegrityValidator | None = None


def get_integrity_validator() -> ReferentialIntegrityValidator:
    """Get the singleton validator bound to the workflow graph client."""
    global _validator
    if _validator is None:
        _validator = ReferentialIntegrityValidator(get_workflow_client())
    return _validator
