"""Tests for telegit/providers/openai_compatible.py - LLM intent classifier."""

import json

import httpx
import pytest

from telegit.enums import IntentType
from telegit.exceptions import ClassificationError
from telegit.providers.openai_compatible import (
    OpenAICompatibleClassifier,
    default_title,
    format_context,
)


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_classifier(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleClassifier(
        base_url="http://localhost:8000/v1/", model="test-model", bot_username="@telegit_bot", client=client, **kwargs
    )


class TestHelpers:
    """Tests for the text helpers."""

    def test_default_title(self):
        """Titles come from the first sentence without tags or mentions."""
        assert default_title("#bug @alice The login page crashes. It happens daily") == "The login page crashes"

    def test_default_title_capped(self):
        assert len(default_title("x" * 100)) == 60

    def test_format_context(self):
        context = [
            {"username": "alice", "text": "The login is broken"},
            {"first_name": "Bob", "text": None},
        ]

        assert format_context(context) == "[1] alice: The login is broken\n[2] Bob: [media message]"
        assert format_context(None) == "No previous context available."


class TestClassify:
    """Tests for OpenAICompatibleClassifier.classify."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """The request should carry the model, both prompts and JSON mode."""
        requests = []

        def handler(request):
            requests.append(request)
            return completion('{"intent": "unknown", "confidence": 0.1}')

        classifier = make_classifier(handler)

        await classifier.classify("hello", context=[{"username": "alice", "text": "earlier"}])

        assert requests[0].url == "http://localhost:8000/v1/chat/completions"
        body = json.loads(requests[0].content)
        assert body["model"] == "test-model"
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        assert "[1] alice: earlier" in body["messages"][1]["content"]
        assert body["messages"][1]["content"].endswith("Message to classify:\nhello")
        await classifier.close()

    @pytest.mark.asyncio
    async def test_create_bug_with_recovered_fields(self):
        """Missing labels, assignees, title and description come from the message."""
        answer = {"intent": "create_bug", "confidence": 0.92, "entities": {}}
        classifier = make_classifier(lambda request: completion(json.dumps(answer)))

        intent = await classifier.classify("#bug @telegit_bot @bob the login page crashes")

        assert intent.type == IntentType.CREATE_BUG
        assert intent.confidence == 0.92
        assert intent.entities.labels == ["bug"]
        assert intent.entities.assignees == ["bob"]
        assert intent.entities.title == "the login page crashes"
        assert intent.entities.description == "#bug @telegit_bot @bob the login page crashes"
        await classifier.close()

    @pytest.mark.asyncio
    async def test_fenced_json(self):
        """Answers wrapped in a markdown code fence should still parse."""
        content = '```json\n{"intent": "update_issue", "confidence": 0.8, "entities": {"issue_number": "#12", "state": "closed"}}\n```'
        classifier = make_classifier(lambda request: completion(content))

        intent = await classifier.classify("close #12")

        assert intent.type == IntentType.UPDATE_ISSUE
        assert intent.entities.issue_number == 12
        assert intent.entities.state == "closed"
        await classifier.close()

    @pytest.mark.asyncio
    async def test_unrecognized_values_are_tolerated(self):
        """Unknown intents, bad confidences and bad states degrade gracefully."""
        content = json.dumps({"intent": "make_coffee", "confidence": "very", "entities": {"state": "archived"}})
        classifier = make_classifier(lambda request: completion(content))

        intent = await classifier.classify("make coffee")

        assert intent.type == IntentType.UNKNOWN
        assert intent.confidence == 0.0
        assert intent.entities.state is None
        await classifier.close()

    @pytest.mark.asyncio
    async def test_confidence_clamped(self):
        classifier = make_classifier(lambda request: completion('{"intent": "create_task", "confidence": 7}'))

        intent = await classifier.classify("#task write docs")

        assert intent.confidence == 1.0
        await classifier.close()

    @pytest.mark.asyncio
    async def test_empty_text(self):
        classifier = make_classifier(lambda request: completion("{}"))

        with pytest.raises(ClassificationError, match="Message text is required"):
            await classifier.classify("   ")
        await classifier.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        classifier = make_classifier(lambda request: completion("I think this is a bug"))

        with pytest.raises(ClassificationError, match="invalid JSON"):
            await classifier.classify("#bug crash")
        await classifier.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        classifier = make_classifier(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(ClassificationError, match="Classifier API error \\(500\\)"):
            await classifier.classify("#bug crash")
        await classifier.close()

    @pytest.mark.asyncio
    async def test_no_choices(self):
        classifier = make_classifier(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(ClassificationError, match="No choices"):
            await classifier.classify("#bug crash")
        await classifier.close()

    @pytest.mark.asyncio
    async def test_recovered_labels_match_trigger_hashtags(self):
        """Labels recovered from the message are de-duplicated like the trigger's hashtags."""
        answer = {"intent": "create_task", "confidence": 0.8, "entities": {}}
        classifier = make_classifier(lambda request: completion(json.dumps(answer)))

        intent = await classifier.classify("#Task write #docs #task")

        assert intent.entities.labels == ["task", "docs"]
        await classifier.close()
