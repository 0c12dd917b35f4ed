"""Intent classifier backed by any OpenAI-compatible chat completions API.

Works with OpenAI, Groq, OpenRouter, vLLM, LM Studio, Ollama's ``/v1``
endpoint and similar servers. The model is asked for a JSON object; the
answer is validated and enriched with fields recoverable from the message
itself (hashtags as labels, @mentions as assignees, a default title).
"""

import json
import re
from typing import Any

import httpx
import structlog

from telegit.engine.filters import HASHTAG_PATTERN, extract_hashtags
from telegit.enums import IntentType
from telegit.exceptions import ClassificationError
from telegit.models.domain import Intent, IntentEntities
from telegit.providers.base import IntentClassifier

log = structlog.get_logger(__name__)

MENTION_RE = re.compile(r"@(\w+)")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")

SYSTEM_PROMPT = """You classify Telegram group messages for a bot that manages GitHub issues.

Reply with a single JSON object and nothing else:
{
  "intent": "create_bug" | "create_task" | "create_idea" | "update_issue" | "search_issues" | "unknown",
  "confidence": number between 0 and 1,
  "entities": {
    "title": string (optional, concise issue title),
    "description": string (optional, issue body),
    "labels": [string] (optional),
    "assignees": [string] (optional, GitHub usernames),
    "issue_number": integer (required for update_issue),
    "search_query": string (required for search_issues),
    "state": "open" | "closed" (optional, for update_issue)
  },
  "reasoning": string (optional, one sentence)
}

Guidelines:
- create_bug: something is broken or behaves incorrectly (#bug).
- create_task: concrete work to be done (#task, #todo).
- create_idea: a feature request or suggestion (#idea, #feature).
- update_issue: change an existing issue, referenced as #123 or "issue 123".
- search_issues: the user asks to find or list issues.
- unknown: none of the above. Use a low confidence when unsure."""


def extract_mentions(text: str) -> list[str]:
    return MENTION_RE.findall(text)


def default_title(message: str) -> str:
    """Build a title from the first sentence, capped at 60 characters.

    Hashtags and mentions are removed.
    """
    match = re.match(r"^[^.!?]+", message)
    first_sentence = match.group(0) if match else message
    title = first_sentence.strip()[:60]
    return MENTION_RE.sub("", HASHTAG_PATTERN.sub("", title)).strip()


def format_context(context: list[dict[str, Any]] | None) -> str:
    if not context:
        return "No previous context available."
    lines = []
    for index, message in enumerate(context, start=1):
        speaker = message.get("username") or message.get("first_name") or "User"
        text = message.get("text") or "[media message]"
        lines.append(f"[{index}] {speaker}: {text}")
    return "\n".join(lines)


class OpenAICompatibleClassifier(IntentClassifier):
    """Intent classifier for OpenAI-compatible API servers."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        bot_username: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the classifier.

        Args:
            base_url: API base URL (e.g., http://localhost:8000/v1)
            model: Model identifier to use
            api_key: Optional API key for authentication
            temperature: Sampling temperature
            max_tokens: Maximum tokens for the response
            timeout: Request timeout in seconds
            bot_username: The bot's own username, never treated as an assignee
            client: Optional preconfigured client (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.bot_username = (bot_username or "").lstrip("@").lower()

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def close(self) -> None:
        await self.client.aclose()

    async def classify(self, text: str, context: list[dict[str, Any]] | None = None) -> Intent:
        message = text.strip()
        if not message:
            raise ClassificationError("Message text is required for intent classification")

        user_prompt = f"Conversation context:\n{format_context(context)}\n\nMessage to classify:\n{message}"
        log.info("classifying_intent", model=self.model, context_messages=len(context or []))

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user_prompt},
                    ],
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                    "response_format": {"type": "json_object"},
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error("classification_request_failed", status_code=e.response.status_code)
            raise ClassificationError(
                f"Classifier API error ({e.response.status_code})",
                details={"response": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            log.error("classification_request_failed", error=str(e))
            raise ClassificationError(f"Classifier request failed: {e}") from e

        choices = response.json().get("choices", [])
        if not choices:
            raise ClassificationError("No choices returned from classifier API")
        content = choices[0].get("message", {}).get("content", "") or ""

        intent = self._parse(content, message)
        log.info("intent_classified", intent=str(intent.type), confidence=intent.confidence)
        return intent

    def _parse(self, content: str, message: str) -> Intent:
        """Validate the model's JSON answer and fill in recoverable fields."""
        try:
            raw = json.loads(_FENCE_RE.sub("", content.strip()))
        except json.JSONDecodeError as e:
            raise ClassificationError("Classifier returned invalid JSON", details={"content": content[:500]}) from e
        if not isinstance(raw, dict):
            raise ClassificationError("Classifier returned a non-object answer")

        try:
            intent_type = IntentType(raw.get("intent", "unknown"))
        except ValueError:
            intent_type = IntentType.UNKNOWN

        try:
            confidence = float(raw.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0

        fields = raw.get("entities") or {}
        entities = IntentEntities(
            title=fields.get("title") or None,
            description=fields.get("description") or None,
            labels=[str(label).lower() for label in fields.get("labels") or []],
            assignees=[str(user).lstrip("@") for user in fields.get("assignees") or []],
            issue_number=self._issue_number(fields.get("issue_number", fields.get("issueNumber"))),
            search_query=fields.get("search_query") or fields.get("searchQuery") or None,
            state=fields.get("state") if fields.get("state") in ("open", "closed") else None,
        )

        if not entities.labels:
            entities.labels = extract_hashtags(message)
        if not entities.assignees:
            entities.assignees = [m for m in extract_mentions(message) if m.lower() != self.bot_username]
        if intent_type.is_create and not entities.title:
            entities.title = default_title(message)
        if intent_type.is_create and not entities.description:
            entities.description = message

        return Intent(type=intent_type, confidence=confidence, entities=entities, reasoning=raw.get("reasoning"))

    @staticmethod
    def _issue_number(value: Any) -> int | None:
        if value is None:
            return None
        try:
            return int(str(value).lstrip("#"))
        except ValueError:
            return None
