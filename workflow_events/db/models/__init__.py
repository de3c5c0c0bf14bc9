from workflow_events.db.models.workflow import Workflow

__all__ = ["Workflow"]
