"""Provider implementations for chat, issue tracker and classifier integrations.

Key Components:
    - ChatTransport: Abstract base for chat platforms
    - ActionGateway: Abstract base for issue tracker calls
    - IntentClassifier: Abstract base for intent classification
    - TelegramTransport: Telegram Bot API over httpx
    - GitHubActionGateway: GitHub REST API via PyGithub
    - OpenAICompatibleClassifier: OpenAI-compatible chat completions over httpx

Example:
    >>> from telegit.providers.telegram import TelegramTransport
    >>> transport = TelegramTransport(token="123:abc")
"""

from telegit.providers.base import ActionGateway, ChatTransport, IntentClassifier

__all__ = [
    "ActionGateway",
    "ChatTransport",
    "IntentClassifier",
]
