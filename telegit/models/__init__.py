"""Core domain models for the TeleGit bot.

This package defines the records that flow between the workflow engine,
the stores and the chat/tracker adapters.

Key Models:
    - Intent / IntentEntities: classifier output
    - TriggerMessage: a chat message that passed the trigger filter
    - ActionDescriptor / ActionResult: a tracker call and its outcome
    - Operation: durable record of an executed action
    - FeedbackMessage: ephemeral chat reply tied to an operation
    - ReactionEvent: added/removed emoji on a chat message

Example:
    >>> from telegit.models.domain import Intent, IntentEntities
    >>> intent = Intent(type=IntentType.CREATE_BUG, confidence=0.92)
"""
