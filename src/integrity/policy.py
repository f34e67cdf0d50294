"""
Validation Policy.

Immutable snapshot of the referential integrity switches: the global
kill switch, parallel vs sequential counting and per-edge toggles.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog
from pydantic import ValidationError
from pydantic_settings import SettingsError

from src.config.settings import ReferentialIntegritySettings
from src.integrity.errors import ConfigurationError
from src.integrity.reference_graph import (
    EntityType,
    ReferenceEdge,
    ReferenceGraph,
    get_reference_graph,
)

logger = structlog.get_logger(__name__)

# Per-relationship flags, keyed by the referencing entity type
RELATIONSHIP_FLAGS: dict[EntityType, str] = {
    EntityType.SOURCE: "validate_source_references",
    EntityType.DESTINATION: "validate_destination_references",
    EntityType.STEP: "validate_step_references",
    EntityType.FLOW: "validate_flow_references",
    EntityType.ORCHESTRATED_FLOW: "validate_orchestrated_flow_references",
}


@dataclass(frozen=True)
class ValidationPolicy:
    """Which reference checks run, and how."""

    enabled: bool = True
    parallel: bool = True
    disabled_edges: frozenset[str] = frozenset()

    def is_edge_enabled(self, edge: ReferenceEdge) -> bool:
        return edge.key not in self.disabled_edges

    def applicable_edges(self, edges: Iterable[ReferenceEdge]) -> list[ReferenceEdge]:
        """Filter ``edges`` down to the enabled ones, preserving order."""
        return [edge for edge in edges if self.is_edge_enabled(edge)]

    def with_edge(self, edge_key: str, enabled: bool) -> "ValidationPolicy":
        """Copy of this policy with one edge toggled."""
        disabled = set(self.disabled_edges)
        if enabled:
            disabled.discard(edge_key)
        else:
            disabled.add(edge_key)
        return ValidationPolicy(
            enabled=self.enabled,
            parallel=self.parallel,
            disabled_edges=frozenset(disabled),
        )

    @classmethod
    def from_settings(
        cls,
        settings: ReferentialIntegritySettings,
        graph: ReferenceGraph | None = None,
    ) -> "ValidationPolicy":
        """
        Build a policy from settings.

        Args:
            settings: Referential integrity settings
            graph: Reference graph whose edges the toggles apply to

        Returns:
            ValidationPolicy

        Raises:
            ConfigurationError: If an edge override names an unknown edge
        """
        graph = graph or get_reference_graph()

        unknown = sorted(set(settings.edge_overrides) - graph.edge_keys)
        if unknown:
            logger.error("Unknown reference edges in configuration", edges=unknown)
            raise ConfigurationError(
                f"Unknown reference edge(s) in edge_overrides: {', '.join(unknown)}"
            )

        disabled: set[str] = set()
        for edge in graph.edges:
            flag = RELATIONSHIP_FLAGS.get(edge.from_type)
            enabled = getattr(settings, flag) if flag else True
            enabled = settings.edge_overrides.get(edge.key, enabled)
            if not enabled:
                disabled.add(edge.key)

        if not settings.enabled:
            logger.debug("Referential integrity validation is disabled by configuration")
        elif disabled:
            logger.debug("Reference edges excluded from validation", edges=sorted(disabled))

        return cls(
            enabled=settings.enabled,
            parallel=settings.parallel_validation,
            disabled_edges=frozenset(disabled),
        )


PolicyProvider = Callable[[], ValidationPolicy]


def load_policy(graph: ReferenceGraph | None = None) -> ValidationPolicy:
    """
    Read the current policy from the environment.

    Settings are re-read on every call so changes take effect without a
    restart.

    Raises:
        ConfigurationError: If a setting cannot be parsed
    """
    try:
        settings = ReferentialIntegritySettings()
    except (ValidationError, SettingsError) as e:
        logger.error(
            "Invalid referential integrity configuration",
            error_type=type(e).__name__,
            error=str(e),
        )
        raise ConfigurationError(f"Invalid referential integrity configuration: {e}") from e

    return ValidationPolicy.from_settings(settings, graph)
