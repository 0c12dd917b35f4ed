"""Persistence for operations, feedback messages, group links and cached context.

Key Components:
    - OperationRepository / FeedbackRepository: entity interfaces
    - JsonOperationRepository / JsonFeedbackRepository: JSON document implementations
    - JsonDocumentStore: atomic per-document file storage shared by all of the above
    - JsonGroupLinkRepository: groups linked through the private-chat setup
    - ConversationContextStore: TTL cache of reply threads
    - SetupSessionStore: in-memory setup sessions
"""

from telegit.storage.base import FeedbackRepository, OperationRepository
from telegit.storage.feedback import JsonFeedbackRepository
from telegit.storage.operations import JsonOperationRepository

__all__ = [
    "FeedbackRepository",
    "JsonFeedbackRepository",
    "JsonOperationRepository",
    "OperationRepository",
]
