"""
Application Settings - Pydantic Settings for configuration management.

Supports environment variables and .env file loading.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BeforeValidator, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_to_lowercase(v: str) -> str:
    """Normalize string to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


class Neo4jSettings(BaseSettings):
    """Neo4j database connection settings."""

    model_config = SettingsConfigDict(env_prefix="NEO4J_")

    uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    username: str = Field(default="neo4j", description="Neo4j username")
    password: SecretStr = Field(default=SecretStr("password"), description="Neo4j password")
    database: str = Field(default="neo4j", description="Neo4j database name")
    max_connection_pool_size: int = Field(default=50, description="Connection pool size")


class ReferentialIntegritySettings(BaseSettings):
    """Referential integrity validation settings."""

    model_config = SettingsConfigDict(env_prefix="REFERENTIAL_INTEGRITY_")

    # Kill switch
    enabled: bool = Field(default=True, description="Validate references before update/delete")
    parallel_validation: bool = Field(
        default=True, description="Count dependent collections concurrently"
    )

    # Per-relationship toggles
    validate_source_references: bool = Field(
        default=True, description="Validate Source -> Protocol references"
    )
    validate_destination_references: bool = Field(
        default=True, description="Validate Destination -> Protocol references"
    )
    validate_step_references: bool = Field(
        default=True, description="Validate Step -> Importer/Exporter/Processor references"
    )
    validate_flow_references: bool = Field(
        default=True, description="Validate Flow -> Step references"
    )
    validate_orchestrated_flow_references: bool = Field(
        default=True, description="Validate OrchestratedFlow -> Flow references"
    )

    # Fine-grained overrides keyed by edge key, e.g. {"Step->Importer": false}
    edge_overrides: dict[str, bool] = Field(
        default_factory=dict,
        description="Per-edge toggles applied on top of the per-relationship flags",
    )


class ObservabilitySettings(BaseSettings):
    """Observability and monitoring settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    # Logging
    log_format: Annotated[
        Literal["json", "console"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(
        default="json", description="Log format (json for production, console for development)"
    )

    # Metrics
    metrics_enabled: bool = Field(default=True, description="Enable metrics collection")


class APISettings(BaseSettings):
    """FastAPI server settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")  # nosec B104 - intentional for container deployment
    port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Workflow Entities Manager", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Sub-settings
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    referential_integrity: ReferentialIntegritySettings = Field(
        default_factory=ReferentialIntegritySettings
    )
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: APISettings = Field(default_factory=APISettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
