"""WorkflowLoader — loads dispatchable workflows from the workflow table."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workflow_events.db.models.workflow import Workflow
from workflow_events.execution.engine import WorkflowExecutionModel

logger = structlog.get_logger(__name__)


class WorkflowLoader:
    """Read-only access to workflow definitions.

    ``load`` returns None for every reason a workflow cannot run (missing,
    soft-deleted, disabled, invalid, no definition, or the query failed);
    the router only needs to know whether to skip.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self, workflow_id: str, space_id: str) -> WorkflowExecutionModel | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Workflow).where(
                        Workflow.id == workflow_id,
                        Workflow.space_id == space_id,
                        Workflow.deleted_at.is_(None),
                    )
                )
                workflow = result.scalar_one_or_none()
        except Exception as exc:
            logger.error(
                "workflow_load_failed",
                workflow_id=workflow_id,
                space_id=space_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        if workflow is None:
            logger.warning("workflow_not_found", workflow_id=workflow_id, space_id=space_id)
            return None

        if not workflow.enabled or not workflow.valid or not workflow.definition:
            logger.warning(
                "workflow_not_dispatchable",
                workflow_id=workflow_id,
                space_id=space_id,
                enabled=workflow.enabled,
                valid=workflow.valid,
                has_definition=bool(workflow.definition),
            )
            return None

        return WorkflowExecutionModel(
            id=workflow.id,
            name=workflow.name,
            enabled=workflow.enabled,
            definition=workflow.definition,
            yaml=workflow.yaml,
        )
