class WorkflowEventsError(Exception):
    """Base exception for the workflow events pipeline."""

    pass


class UnknownTriggerError(WorkflowEventsError):
    """Raised when a trigger type is not in the registry."""

    def __init__(self, trigger_type: str):
        self.trigger_type = trigger_type
        super().__init__(f"Unknown trigger type: {trigger_type}")


class DuplicateTriggerError(WorkflowEventsError):
    """Raised when a trigger id is registered twice."""

    def __init__(self, trigger_id: str):
        self.trigger_id = trigger_id
        super().__init__(
            f'Trigger "{trigger_id}" is already registered. Each trigger must have a unique identifier.'
        )


class PayloadValidationError(WorkflowEventsError):
    """Raised when an emitted payload does not match the trigger's schema."""

    def __init__(self, trigger_type: str, detail: str):
        self.trigger_type = trigger_type
        self.detail = detail
        super().__init__(f"Payload validation failed for trigger {trigger_type}: {detail}")


class FilterValidationError(WorkflowEventsError):
    """Raised when a subscription's where clause is invalid for its trigger."""

    def __init__(self, message: str, invalid_paths: list[str] | None = None):
        self.invalid_paths = invalid_paths or []
        super().__init__(message)


class FilterEvaluationError(WorkflowEventsError):
    """Raised when a rendered filter cannot be evaluated."""

    pass


class KqlSyntaxError(WorkflowEventsError):
    """Raised when a KQL expression cannot be parsed."""

    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


class VersionConflictError(WorkflowEventsError):
    """Optimistic concurrency conflict on a document write."""

    def __init__(self, doc_id: str, expected: int, actual: int | None):
        self.doc_id = doc_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"version conflict on {doc_id}: expected={expected}, actual={actual}")


class DocumentNotFoundError(WorkflowEventsError):
    """Raised when updating or deleting a document that does not exist."""

    def __init__(self, index: str, doc_id: str):
        self.index = index
        self.doc_id = doc_id
        super().__init__(f"document not found: {index}/{doc_id}")


class SubscriptionNotFoundError(WorkflowEventsError):
    """Raised when a subscription id does not exist."""

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription not found: {subscription_id}")


class CredentialResolutionError(WorkflowEventsError):
    """Raised when a stored execution credential cannot be decrypted."""

    pass


class DispatchError(WorkflowEventsError):
    """Raised when the execution engine rejects a workflow dispatch."""

    def __init__(self, workflow_id: str, message: str, status_code: int | None = None):
        self.workflow_id = workflow_id
        self.status_code = status_code
        super().__init__(f"Dispatch of workflow {workflow_id} failed: {message}")
