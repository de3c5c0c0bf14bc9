"""HttpExecutionEngine — dispatches workflows to the execution service over HTTP."""

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from workflow_events.core.exceptions import DispatchError
from workflow_events.credentials.issuer import api_key_authorization
from workflow_events.execution.engine import ExecutionContext, ExecutionOutcome, WorkflowExecutionModel

logger = structlog.get_logger(__name__)


class HttpExecutionEngine:
    """POSTs ``{workflow, context}`` to ``{base_url}/api/workflows/{id}/run``.

    The propagated credential travels as ``Authorization: ApiKey ...`` so the
    execution runs as the principal that emitted the event. Transport errors
    (connection refused, timeouts) are retried with exponential backoff; an
    HTTP error status is a rejection and raises DispatchError immediately.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        retry_wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._transport = transport

    def _headers(self, context: ExecutionContext) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "X-Triggered-By": context.triggered_by}
        if context.credential is not None:
            headers["Authorization"] = api_key_authorization(context.credential)
        return headers

    async def execute(self, workflow: WorkflowExecutionModel, context: ExecutionContext) -> ExecutionOutcome:
        url = f"{self.base_url}/api/workflows/{workflow.id}/run"
        body = {
            "workflow": workflow.model_dump(mode="json"),
            "context": context.model_dump(mode="json", by_alias=True),
        }

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_attempts),
                wait=self.retry_wait,
                reraise=True,
                before_sleep=lambda rs: logger.warning(
                    "dispatch_transport_error_retrying",
                    workflow_id=workflow.id,
                    attempt=rs.attempt_number,
                    error=str(rs.outcome.exception()),
                ),
            ):
                with attempt:
                    response = await client.post(url, json=body, headers=self._headers(context))

        if response.status_code >= 400:
            raise DispatchError(workflow.id, response.text[:500] or response.reason_phrase, status_code=response.status_code)

        data = response.json()
        return ExecutionOutcome(
            execution_id=str(data.get("executionId") or data.get("execution_id") or data.get("id")),
            status=data.get("status", "pending"),
        )
