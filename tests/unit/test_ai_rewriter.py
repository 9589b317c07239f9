"""Unit tests for the AI rewriter: response parsing, truncation and the completion call."""
import json

import httpx
import pytest

from launchpad.config import Settings
from launchpad.errors import ErrorKind, ServiceError
from launchpad.services.ai_rewriter import (
    AIRewriter,
    create_ai_rewriter,
    estimate_tokens,
    parse_ai_response,
    truncate_text,
    validate_metadata,
)

VALID_META = {
    "title": "Example Product",
    "description": "A product that does useful things.",
    "url": "https://example.com/product",
}


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _rewriter(handler, max_retries: int = 3) -> AIRewriter:
    return AIRewriter(
        api_key="sk-test",
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


# parse_ai_response

def test_parse_plain_json():
    result = parse_ai_response('{"title": " New ", "description": "Desc", "tags": ["a", " b ", ""]}')
    assert result == {"title": "New", "description": "Desc", "tags": ["a", "b"]}


def test_parse_fenced_json():
    content = '```json\n{"title": "T", "description": "D", "tags": ["x"]}\n```'
    assert parse_ai_response(content)["title"] == "T"


def test_parse_non_list_tags_become_empty():
    assert parse_ai_response('{"title": "T", "description": "D", "tags": "x"}')["tags"] == []


@pytest.mark.parametrize("content", ["not json", "", "[1, 2]", "{broken"])
def test_parse_malformed_response_fails(content):
    with pytest.raises(ServiceError) as exc_info:
        parse_ai_response(content)
    assert "Failed to parse" in exc_info.value.message


@pytest.mark.parametrize("content", ['{"title": "T"}', '{"description": "D"}', '{"title": "", "description": "D"}'])
def test_parse_missing_fields_fails(content):
    with pytest.raises(ServiceError) as exc_info:
        parse_ai_response(content)
    assert "missing required fields" in exc_info.value.message


# helpers

def test_truncate_prefers_word_boundary():
    text = "word " * 60
    result = truncate_text(text, 200)
    assert len(result) <= 203
    assert result.endswith("...")
    assert not result[:-3].endswith(" ")


def test_truncate_hard_cut_without_spaces():
    result = truncate_text("x" * 300, 200)
    assert result == "x" * 197 + "..."


def test_truncate_leaves_short_text():
    assert truncate_text("short", 200) == "short"


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize(
    "field,message",
    [("title", "Title is required"), ("description", "Description is required"), ("url", "URL is required")],
)
def test_validate_metadata_requires_fields(field, message):
    meta = {**VALID_META, field: "  "}
    with pytest.raises(ServiceError) as exc_info:
        validate_metadata(meta)
    assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR
    assert exc_info.value.message == message


# rewrite_metadata

@pytest.mark.asyncio
async def test_rewrite_returns_title_description_tags():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(
            200, json=_completion('{"title": "Better", "description": "Sharper copy", "tags": ["saas"]}')
        )

    result = await _rewriter(handler).rewrite_metadata(VALID_META)

    assert result["title"] == "Better"
    assert result["description"] == "Sharper copy"
    assert isinstance(result["tags"], list)
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert "Example Product" in seen["body"]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_rewrite_retries_server_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503, json={"error": {"message": "overloaded"}})
        return httpx.Response(200, json=_completion('{"title": "T", "description": "D", "tags": []}'))

    result = await _rewriter(handler).rewrite_metadata(VALID_META)
    assert result["title"] == "T"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_rewrite_unauthorized_fails_fast():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

    with pytest.raises(ServiceError) as exc_info:
        await _rewriter(handler).rewrite_metadata(VALID_META)
    assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE_ERROR
    assert exc_info.value.message == "Invalid OpenAI API key. Please check your configuration."
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_rewrite_quota_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429, json={"error": {"message": "You exceeded your current quota"}})

    with pytest.raises(ServiceError) as exc_info:
        await _rewriter(handler).rewrite_metadata(VALID_META)
    assert exc_info.value.message == "Rate limit exceeded. Please try again later."
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_rewrite_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(500, json={"error": {"message": "boom"}})

    with pytest.raises(ServiceError) as exc_info:
        await _rewriter(handler, max_retries=2).rewrite_metadata(VALID_META)
    assert "temporarily unavailable" in exc_info.value.message
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_rewrite_validates_before_calling_out():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    with pytest.raises(ServiceError) as exc_info:
        await _rewriter(handler).rewrite_metadata({"title": "T", "url": "https://x.io"})
    assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR


def test_factory_returns_none_without_key():
    assert create_ai_rewriter(Settings(_env_file=None, OPENAI_API_KEY=None)) is None
    assert create_ai_rewriter(Settings(_env_file=None, OPENAI_API_KEY="sk", AI_REWRITE_ENABLED=False)) is None
    assert isinstance(create_ai_rewriter(Settings(_env_file=None, OPENAI_API_KEY="sk")), AIRewriter)
