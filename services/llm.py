"""Commit summarizer on top of OpenAI chat completions.

Two modes:
- per-commit: one message in, one prose summary out (webhook path)
- batch: many (sha, message) pairs in, {short_sha: {title, description}} out
  (bulk regeneration path)

The summarizer never touches the database. Callers decide what a failure means
for the commit record.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence

import openai

from core.errors import ConfigurationError, SummarizationError
from core.settings import Settings, settings as default_settings
from services.schemas import BatchSummary

logger = logging.getLogger(__name__)

SHORT_SHA_LENGTH = 7
TITLE_MAX_LENGTH = 64

COMMIT_SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes git commit messages into clear, "
    "human-readable descriptions. Make them concise but informative, focusing on "
    "what changed and why it matters."
)

BATCH_SYSTEM_PROMPT = (
    "You write changelog entries from git commit messages.\n"
    "Return ONLY a JSON object. Each key is the 7-character short sha given for a commit; "
    'each value is an object with "title" and "description".\n'
    "- title: one line, imperative mood, at most 64 characters, no leading dash\n"
    '- description: 1-4 lines, each starting with "- ", describing the change for a user\n'
    "Include every commit exactly once."
)

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", re.DOTALL)
_BULLET_RE = re.compile(r"^(?:[-*•–]\s*)+")
_DESC_BULLET_RE = re.compile(r"^[*•–]\s+")


def short_sha(sha: str) -> str:
    return sha[:SHORT_SHA_LENGTH].lower()


def strip_code_fence(text: str) -> str:
    """Return the body of a ``` fenced block if the model wrapped its answer in one."""
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def clean_title(raw: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """First line, bullet markers stripped, cut at a word boundary near max_length."""
    text = raw.strip()
    if not text:
        return ""
    text = _BULLET_RE.sub("", text.splitlines()[0].strip()).strip().strip('"').strip()
    if len(text) <= max_length:
        return text
    head = text[: max_length + 1]
    cut = head.rsplit(" ", 1)[0] if " " in head else text[:max_length]
    return cut.rstrip(" ,;:-")


def clean_description(raw: str | list) -> str:
    if isinstance(raw, list):
        raw = "\n".join(f"- {_BULLET_RE.sub('', str(item).strip())}" for item in raw if str(item).strip())
    lines = []
    for line in str(raw).strip().splitlines():
        line = line.strip()
        if not line:
            continue
        lines.append(_DESC_BULLET_RE.sub("- ", line))
    return "\n".join(lines)


def parse_batch_response(text: str) -> dict[str, BatchSummary]:
    """Parse a batch completion into {short_sha: BatchSummary}.

    Empty or unparsable output is a failure, never an empty success.
    """
    body = strip_code_fence(text or "")
    if not body:
        raise SummarizationError("Empty batch summary response")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise SummarizationError(f"Batch summary response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SummarizationError("Batch summary response is not a JSON object")

    out: dict[str, BatchSummary] = {}
    for key, entry in data.items():
        if isinstance(entry, str):
            title, description = entry, ""
        elif isinstance(entry, dict):
            title, description = entry.get("title") or "", entry.get("description") or ""
        else:
            continue
        title = clean_title(str(title))
        if not title:
            continue
        out[str(key).strip().lower()] = BatchSummary(title=title, description=clean_description(description))

    if not out:
        raise SummarizationError("Batch summary response contained no usable entries")
    return out


def lookup_batch_summary(summaries: dict[str, BatchSummary], sha: str) -> BatchSummary | None:
    """Find the entry for a commit.

    Models sometimes echo a shorter or longer prefix than asked for, so besides the
    exact short sha we accept any key of at least 4 characters that prefixes the
    sha. The longest such key wins; a tie is ambiguous and matches nothing.
    """
    sha = sha.lower()
    short = short_sha(sha)
    for key in (short, sha):
        if key in summaries:
            return summaries[key]
    matches = sorted(
        (key for key in summaries if len(key) >= 4 and sha.startswith(key)),
        key=len,
        reverse=True,
    )
    if len(matches) == 1 or (len(matches) > 1 and len(matches[0]) > len(matches[1])):
        return summaries[matches[0]]
    return None


class Summarizer:
    def __init__(
        self,
        config: Settings | None = None,
        client=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or default_settings
        self.model = self.config.ai_model
        self.max_retries = self.config.summary_max_retries
        self.base_delay = self.config.summary_retry_base_delay
        self.batch_size = max(1, self.config.summary_batch_size)
        self._client = client
        self._sleep = sleep

    def _get_client(self):
        if self._client is None:
            if not self.config.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY is required for commit summarization")
            # Retries are ours (rate limits only); the timeout bounds each attempt.
            self._client = openai.AsyncOpenAI(
                api_key=self.config.openai_api_key,
                max_retries=0,
                timeout=self.config.summary_timeout_seconds,
            )
        return self._client

    def ensure_configured(self) -> None:
        """Raise ConfigurationError now rather than partway through a batch."""
        self._get_client()

    async def _complete(self, messages: list[dict], **kwargs) -> str:
        client = self._get_client()
        for attempt in range(self.max_retries + 1):
            try:
                resp = await client.chat.completions.create(model=self.model, messages=messages, **kwargs)
            except openai.RateLimitError as e:
                if attempt >= self.max_retries:
                    raise SummarizationError(f"Rate limited after {attempt + 1} attempts") from e
                delay = self.base_delay * (2 ** attempt)
                logger.warning(f"Rate limited by OpenAI (attempt {attempt + 1}); retrying in {delay:.0f}s")
                await self._sleep(delay)
                continue
            except openai.OpenAIError as e:
                raise SummarizationError(f"Completion request failed: {e}") from e

            if not resp.choices:
                return ""
            return (resp.choices[0].message.content or "").strip()
        raise SummarizationError("Completion retries exhausted")

    async def summarize_commit(self, message: str) -> str:
        summary = await self._complete(
            [
                {"role": "system", "content": COMMIT_SYSTEM_PROMPT},
                {"role": "user", "content": f"Summarize this git commit message in a clear, human-readable way:\n\n{message}"},
            ],
            temperature=0.2,
        )
        if not summary:
            raise SummarizationError("Empty summary returned from OpenAI")
        return summary

    async def _summarize_chunk(self, commits: Sequence[tuple[str, str]]) -> dict[str, BatchSummary]:
        listing = "\n\n".join(f"[{short_sha(sha)}]\n{message.strip()}" for sha, message in commits)
        text = await self._complete(
            [
                {"role": "system", "content": BATCH_SYSTEM_PROMPT},
                {"role": "user", "content": f"Summarize these {len(commits)} commits:\n\n{listing}"},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        return parse_batch_response(text)

    async def summarize_batch(self, commits: Sequence[tuple[str, str]]) -> dict[str, BatchSummary]:
        """Summarize (sha, message) pairs; keys of the result are short shas.

        Large inputs are sent in chunks of `summary_batch_size`; a failing chunk fails
        the whole call.
        """
        if not commits:
            return {}
        chunks = [commits[i:i + self.batch_size] for i in range(0, len(commits), self.batch_size)]
        merged: dict[str, BatchSummary] = {}
        for i, chunk in enumerate(chunks, 1):
            logger.info(f"Summarizing batch chunk {i}/{len(chunks)} ({len(chunk)} commits)")
            merged.update(await self._summarize_chunk(chunk))
        return merged
