"""Workflow step implementations for the message workflow.

Each step handles one phase of processing a trigger message:

    - AnalyzeStep: Classify the message into an intent
    - FormatStep: Build the action descriptor for the intent
    - ExecuteStep: Invoke the issue tracker
    - StoreStep: Persist the operation record
    - NotifyStep: Post the result reply as a feedback message
    - ErrorStep: Terminal step for failed runs
    - UnknownStep: Terminal step for unclear or low-confidence intents

Every step inherits from WorkflowStep and returns the next RunState.

Example:
    >>> from telegit.engine.stages.analyze import AnalyzeStep
    >>> step = AnalyzeStep(services)
    >>> state = await step.run(state)
"""
