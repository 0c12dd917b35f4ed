"""Execute step: perform the tracker call described by the run."""

import asyncio
from typing import Any

import structlog

from telegit.enums import ActionKind, ErrorCode, WorkflowStatus
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.exceptions import ActionExecutionError
from telegit.models.domain import ActionDescriptor, ActionResult, utcnow

log = structlog.get_logger(__name__)


class ExecuteStep(WorkflowStep):
    """Invoke the action gateway exactly once.

    Before an update, the target issue's current fields are read so that the
    operation can be compensated later. When the run has a deadline, it
    bounds the snapshot read and the gateway call together; expiry is an
    ``ACTION_TIMEOUT`` failure.
    """

    name = "execute"
    status = WorkflowStatus.EXECUTING
    fatal = True
    error_code = ErrorCode.GITHUB_EXECUTION_ERROR

    async def execute(self, state: RunState) -> RunState:
        descriptor = state.descriptor
        if descriptor is None or descriptor.kind == ActionKind.NONE:
            raise ActionExecutionError("No action to execute")

        try:
            prior_state, result = await asyncio.wait_for(self._call(descriptor), timeout=state.remaining_seconds())
        except TimeoutError as e:
            raise ActionExecutionError(
                "Timed out waiting for the issue tracker",
                code=ErrorCode.ACTION_TIMEOUT,
                details={"kind": str(descriptor.kind), "repository": descriptor.target},
            ) from e

        if not result.success:
            raise ActionExecutionError(
                result.error or "Issue tracker call failed",
                details={"kind": str(descriptor.kind), "repository": descriptor.target},
            )

        log.info(
            "action_executed",
            kind=str(descriptor.kind),
            repository=descriptor.target,
            result_ref=result.result_ref,
        )
        return state.advance(self.status, result=result, prior_state=prior_state, executed_at=utcnow())

    async def _call(self, descriptor: ActionDescriptor) -> tuple[dict[str, Any] | None, ActionResult]:
        gateway = self.services.gateway

        prior_state = None
        if descriptor.kind == ActionKind.UPDATE:
            prior_state = await gateway.get_issue(descriptor.target, int(descriptor.payload["issue_number"]))

        return prior_state, await gateway.invoke(descriptor)
