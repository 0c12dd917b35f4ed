"""Message workflow and operation lifecycle engine.

Key Components:
    - WorkflowEngine: Drives a trigger message from classification to reply
    - WorkflowStep: Base class for the steps in :mod:`telegit.engine.stages`
    - FeedbackLifecycle: Posts, expires and dismisses feedback replies
    - UndoEngine: Compensating actions for completed operations
    - ReactionInterpreter: Maps 👍/👎 reactions to dismiss/undo
    - Scheduler: Periodic background jobs
    - MessageQueue: Priority queue with bounded concurrency
    - TriggerFilter: Selects the chat messages that start a run
    - GroupDirectory: Chat to repository bindings and GitHub tokens
    - SetupFlow: Private-chat linking of a group to a repository
    - CommandHandler: /start, /status and /unlink in groups

Type Definitions:
    - RunState: Immutable state of one workflow run
    - StepError: Error recorded by a step
    - WorkflowServices: Collaborators shared by all steps

Example:
    >>> from telegit.engine.workflow import WorkflowEngine
    >>> engine = WorkflowEngine(services)
    >>> state = await engine.run(trigger, repository="acme/app")
"""

from telegit.engine.types import RunState, StepError, WorkflowServices

__all__ = [
    "RunState",
    "StepError",
    "WorkflowServices",
]
