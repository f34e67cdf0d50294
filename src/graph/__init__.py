"""
Workflow Graph Module.

Neo4j-backed storage for workflow-definition entities.
"""

from src.graph.neo4j_client import (
    WorkflowGraphClient,
    get_workflow_client,
)

__all__ = [
    "WorkflowGraphClient",
    "get_workflow_client",
]
