import asyncio
import json
import logging
import math
import re

import httpx

from launchpad.config import Settings
from launchpad.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert copywriter and SEO specialist. Your task is to rewrite product metadata "
    "to make it unique, engaging, and SEO-friendly while preserving the core meaning and functionality."
)

TITLE_MAX_CHARS = 200
DESCRIPTION_MAX_CHARS = 1000
MAX_INPUT_TOKENS = 500

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")


class _CompletionError(Exception):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def estimate_tokens(text: str | None) -> int:
    """Rough token count at four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def truncate_text(text: str | None, max_length: int) -> str | None:
    if not text or len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space] + "..."
    return truncated[: max_length - 3] + "..."


def validate_metadata(metadata: dict) -> None:
    if not isinstance(metadata, dict):
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Metadata must be an object")
    for field, label in (("title", "Title"), ("description", "Description"), ("url", "URL")):
        value = metadata.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ServiceError(ErrorKind.VALIDATION_ERROR, f"{label} is required")


def parse_ai_response(content: str) -> dict:
    """Parse the model's JSON reply, tolerating a markdown code fence around it."""
    cleaned = (content or "").strip()
    match = _FENCED_JSON.search(cleaned)
    if match:
        cleaned = match.group(1)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, f"Failed to parse AI response: {exc}") from exc

    if not isinstance(parsed, dict) or not parsed.get("title") or not parsed.get("description"):
        raise ServiceError(
            ErrorKind.EXTERNAL_SERVICE_ERROR,
            "Failed to parse AI response: AI response missing required fields: title and description",
        )

    tags = parsed.get("tags")
    if not isinstance(tags, list):
        tags = []
    return {
        "title": str(parsed["title"]).strip(),
        "description": str(parsed["description"]).strip(),
        "tags": [str(tag).strip() for tag in tags if str(tag).strip()],
    }


def format_error(message: str, status: int | None) -> ServiceError:
    if status == 429 or "rate limit" in message.lower():
        text = "Rate limit exceeded. Please try again later."
    elif status == 401:
        text = "Invalid OpenAI API key. Please check your configuration."
    elif status == 403:
        text = "Access denied. Please check your OpenAI API permissions."
    elif status is not None and status >= 500:
        text = "OpenAI service temporarily unavailable. Please try again later."
    else:
        text = f"OpenAI API error: {message}"
    return ServiceError(ErrorKind.EXTERNAL_SERVICE_ERROR, text)


def _is_retryable(error: _CompletionError) -> bool:
    message = error.message.lower()
    if error.status in (400, 401, 403):
        return False
    if "unauthorized" in message or "invalid api key" in message:
        return False
    if error.status == 429 and "quota" in message:
        return False
    return True


class AIRewriter:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 500,
        temperature: float = 0.7,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport

    def build_prompt(self, metadata: dict) -> str:
        budget = MAX_INPUT_TOKENS - estimate_tokens(metadata["title"]) - estimate_tokens(metadata["description"])
        extra_lines = [
            f"{key}: {value}"
            for key, value in metadata.items()
            if key not in ("title", "description", "url") and isinstance(value, (str, int, float)) and value != ""
        ]
        additional = "\n".join(extra_lines)
        if estimate_tokens(additional) > max(budget, 0):
            additional = truncate_text(additional, max(budget, 0) * 4) if budget > 0 else ""

        additional_block = f"Additional Info:\n{additional}" if additional else ""
        return f"""
Please rewrite the following product metadata to make it unique, engaging, and SEO-friendly.
Maintain the core functionality and meaning while making it more compelling for users and search engines.

Original Metadata:
Title: {metadata["title"]}
Description: {metadata["description"]}
URL: {metadata["url"]}
{additional_block}

Requirements:
1. Create a new title that is catchy, SEO-friendly, and under 60 characters
2. Write a new description that is engaging, informative, and 120-160 characters
3. Generate 3-5 relevant tags/keywords for SEO
4. Ensure the rewritten content is unique and doesn't duplicate the original
5. Maintain the product's core value proposition and functionality

Return your response as a JSON object with the following structure:
{{
  "title": "Rewritten title here",
  "description": "Rewritten description here",
  "tags": ["tag1", "tag2", "tag3"]
}}
""".strip()

    async def rewrite_metadata(self, metadata: dict) -> dict:
        """Return {title, description, tags} rewritten by the LLM."""
        validate_metadata(metadata)
        truncated = {
            **metadata,
            "title": truncate_text(metadata["title"], TITLE_MAX_CHARS),
            "description": truncate_text(metadata["description"], DESCRIPTION_MAX_CHARS),
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(truncated)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

        last_error = _CompletionError("Unknown error")
        for attempt in range(1, self.max_retries + 1):
            try:
                content = await self._complete(payload)
                return parse_ai_response(content)
            except ServiceError as exc:
                last_error = _CompletionError(exc.message)
            except _CompletionError as exc:
                last_error = exc
                if not _is_retryable(exc):
                    logger.warning("[ai] rewrite failed | status=%s | error=%s", exc.status, exc.message)
                    raise format_error(exc.message, exc.status) from exc

            logger.info(
                "[ai] attempt failed | attempt=%d/%d | status=%s | error=%s",
                attempt, self.max_retries, last_error.status, last_error.message,
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay)

        logger.warning("[ai] giving up | error=%s", last_error.message)
        raise format_error(last_error.message, last_error.status)

    async def _complete(self, payload: dict) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise _CompletionError("Request timed out") from exc
        except httpx.HTTPError as exc:
            raise _CompletionError(str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message") or response.text
            except (ValueError, AttributeError):
                message = response.text
            raise _CompletionError(message or f"HTTP {response.status_code}", response.status_code)

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise _CompletionError("Malformed response from OpenAI API") from exc
        if not content:
            raise _CompletionError("Empty response from OpenAI API")
        return content


def create_ai_rewriter(config: Settings) -> AIRewriter | None:
    if not config.ai_enabled:
        logger.info("[ai] rewriting disabled")
        return None
    return AIRewriter(
        api_key=config.OPENAI_API_KEY,
        base_url=config.OPENAI_BASE_URL,
        model=config.OPENAI_MODEL,
        max_retries=config.AI_MAX_RETRIES,
        retry_delay=config.AI_RETRY_DELAY,
    )
