"""Gmail REST adapter implementing MailProvider.

Thin wrapper over the Gmail v1 API: search, message fetch, and label
modification. Label IDs are resolved to names through a cache that is
refreshed on a miss, so the core only ever sees label names.

Message bodies are decoded from base64url MIME parts, preferring text/plain
and falling back to tag-stripped text/html. All regex operations use the
`regex` library with a timeout because email content is untrusted.

Usage:
    from todo_agent.providers.gmail import GmailProvider

    gmail = GmailProvider(config.gmail)
    await gmail.ensure_labels()
    emails = await gmail.fetch_emails("is:unread", max_results=10)
"""

from __future__ import annotations

import base64
import binascii
import html
import os
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import httpx
import regex

from todo_agent.config_schema import GmailConfig
from todo_agent.core.errors import MailProviderError, UpstreamError
from todo_agent.core.logging import get_logger
from todo_agent.core.rate_limiter import TokenBucket
from todo_agent.labels import ALL_LABELS
from todo_agent.models import Email
from todo_agent.providers.http import RestClient

logger = get_logger(__name__)

TOKEN_ENV = "GMAIL_ACCESS_TOKEN"

BODY_MAX_CHARS = 5000
SNIPPET_MAX_CHARS = 150

GMAIL_RATE = 10.0  # requests per second
GMAIL_CAPACITY = 10

# Regex timeout in seconds (all operations on message content use this)
REGEX_TIMEOUT = 1.0

_STYLE_SCRIPT_PATTERN = regex.compile(
    r"<(style|script)\b[^>]*>.*?</\1\s*>", regex.IGNORECASE | regex.DOTALL
)
_BLOCK_TAG_PATTERN = regex.compile(r"<(br|/p|/div|/tr|/li)\b[^>]*>", regex.IGNORECASE)
_HTML_TAG_PATTERN = regex.compile(r"<[^>]+>")
_BLANK_LINES_PATTERN = regex.compile(r"\n\s*\n\s*\n+")
_NEWLINES_PATTERN = regex.compile(r"[\r\n]+")


def _env_token() -> str:
    return os.environ.get(TOKEN_ENV, "")


class GmailProvider:
    """MailProvider backed by the Gmail REST API.

    Attributes:
        _client: REST client bound to the user's mailbox URL
        _label_ids: Label name -> ID cache
        _label_names: Label ID -> name cache
    """

    def __init__(
        self,
        config: GmailConfig | None = None,
        token_provider: Callable[[], str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the adapter.

        Args:
            config: Gmail settings (defaults when None)
            token_provider: Returns an OAuth access token; reads GMAIL_ACCESS_TOKEN when None
            transport: Optional httpx transport for tests
        """
        self._config = config or GmailConfig()
        self._client = RestClient(
            self._config.base_url,
            token_provider or _env_token,
            service="gmail",
            error_cls=MailProviderError,
            max_retries=self._config.max_retries,
            timeout=self._config.timeout_seconds,
            rate_bucket=TokenBucket(rate=GMAIL_RATE, capacity=GMAIL_CAPACITY),
            transport=transport,
        )
        self._label_ids: dict[str, str] = {}
        self._label_names: dict[str, str] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    async def refresh_label_cache(self) -> None:
        """Reload the label name/ID mapping from the mailbox."""
        data = await self._client.get("/labels")
        labels = data.get("labels", [])
        self._label_ids = {label["name"]: label["id"] for label in labels}
        self._label_names = {label["id"]: label["name"] for label in labels}
        logger.debug("gmail_label_cache_refreshed", count=len(labels))

    async def get_label_id(self, label_name: str) -> str | None:
        """Resolve a label name to its ID, refreshing the cache on a miss."""
        label_id = self._label_ids.get(label_name)
        if label_id is None:
            await self.refresh_label_cache()
            label_id = self._label_ids.get(label_name)
        return label_id

    async def create_label(self, label_name: str) -> str:
        data = await self._client.post(
            "/labels",
            json={
                "name": label_name,
                "labelListVisibility": "labelShow",
                "messageListVisibility": "show",
            },
        )
        label_id = data.get("id")
        if not label_id:
            raise MailProviderError(f"Label creation for '{label_name}' returned no ID")

        self._label_ids[label_name] = label_id
        self._label_names[label_id] = label_name
        logger.info("gmail_label_created", label=label_name)
        return label_id

    async def ensure_labels(self, label_names: Iterable[str] = ALL_LABELS) -> list[str]:
        """Create any missing agent labels.

        Returns:
            Names of the labels that were created
        """
        await self.refresh_label_cache()
        created = []
        for name in label_names:
            if name not in self._label_ids:
                await self.create_label(name)
                created.append(name)
        return created

    async def _resolve_label_names(self, label_ids: list[str]) -> frozenset[str]:
        if any(label_id not in self._label_names for label_id in label_ids):
            await self.refresh_label_cache()
        # System labels (INBOX, UNREAD, ...) use their name as ID
        return frozenset(self._label_names.get(label_id, label_id) for label_id in label_ids)

    async def _modify_labels(self, email_id: str, label_name: str, *, add: bool) -> bool:
        action = "add" if add else "remove"
        try:
            label_id = await self.get_label_id(label_name)
            if label_id is None:
                logger.warning("gmail_label_not_found", label=label_name, action=action)
                return False

            key = "addLabelIds" if add else "removeLabelIds"
            await self._client.post(f"/messages/{email_id}/modify", json={key: [label_id]})
        except UpstreamError as e:
            logger.warning(
                "gmail_label_modify_failed",
                email_id=email_id[:20],
                label=label_name,
                action=action,
                error=str(e),
            )
            return False

        logger.debug(
            "gmail_label_modified", email_id=email_id[:20], label=label_name, action=action
        )
        return True

    async def add_label(self, email_id: str, label_name: str) -> bool:
        return await self._modify_labels(email_id, label_name, add=True)

    async def remove_label(self, email_id: str, label_name: str) -> bool:
        return await self._modify_labels(email_id, label_name, add=False)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def fetch_emails(self, query: str, max_results: int) -> list[Email]:
        """Search the mailbox and fetch each matching message in full.

        Raises:
            MailProviderError: If the search or a message fetch fails
        """
        message_ids: list[str] = []
        page_token: str | None = None

        while len(message_ids) < max_results:
            params: dict[str, Any] = {
                "q": query,
                "maxResults": min(500, max_results - len(message_ids)),
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._client.get("/messages", params=params)
            message_ids.extend(message["id"] for message in data.get("messages", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        emails = []
        for message_id in message_ids[:max_results]:
            email = await self.fetch_email_by_id(message_id)
            if email is not None:
                emails.append(email)

        logger.info("gmail_emails_fetched", query=query, count=len(emails))
        return emails

    async def fetch_email_by_id(self, email_id: str) -> Email | None:
        """Fetch one message; None if it no longer exists.

        Raises:
            MailProviderError: For failures other than 404
        """
        try:
            message = await self._client.get(f"/messages/{email_id}", params={"format": "full"})
        except MailProviderError as e:
            if e.status_code == 404:
                logger.info("gmail_email_not_found", email_id=email_id[:20])
                return None
            raise

        label_names = await self._resolve_label_names(message.get("labelIds", []))
        return parse_message(message, label_names)


# ---------------------------------------------------------------------------
# Message parsing
# ---------------------------------------------------------------------------


def parse_message(message: dict[str, Any], label_names: frozenset[str]) -> Email:
    """Build an Email from a Gmail API message resource (format=full)."""
    payload = message.get("payload", {})
    headers = {
        header.get("name", "").lower(): header.get("value", "")
        for header in payload.get("headers", [])
    }

    body = extract_body(payload)[:BODY_MAX_CHARS]
    snippet = _NEWLINES_PATTERN.sub(" ", body[:SNIPPET_MAX_CHARS], timeout=REGEX_TIMEOUT).strip()

    try:
        received_at = datetime.fromtimestamp(int(message["internalDate"]) / 1000, tz=UTC)
    except (KeyError, TypeError, ValueError):
        received_at = datetime.now(UTC)

    return Email(
        id=message["id"],
        sender=headers.get("from", ""),
        recipient=headers.get("to", ""),
        subject=headers.get("subject", ""),
        body=body,
        snippet=snippet,
        label_names=label_names,
        thread_id=message.get("threadId", ""),
        received_at=received_at,
    )


def _decode_part(data: str) -> str:
    try:
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode(
            "utf-8", errors="replace"
        )
    except (binascii.Error, ValueError):
        return ""


def _collect_parts(part: dict[str, Any], mime_type: str) -> list[str]:
    found = []
    if part.get("mimeType") == mime_type and part.get("body", {}).get("data"):
        found.append(_decode_part(part["body"]["data"]))
    for child in part.get("parts", []) or []:
        found.extend(_collect_parts(child, mime_type))
    return found


def strip_html(text: str) -> str:
    """Convert an HTML body to plain text."""
    text = _STYLE_SCRIPT_PATTERN.sub("", text, timeout=REGEX_TIMEOUT)
    text = _BLOCK_TAG_PATTERN.sub("\n", text, timeout=REGEX_TIMEOUT)
    text = _HTML_TAG_PATTERN.sub("", text, timeout=REGEX_TIMEOUT)
    text = html.unescape(text)
    return _BLANK_LINES_PATTERN.sub("\n\n", text, timeout=REGEX_TIMEOUT).strip()


def extract_body(payload: dict[str, Any]) -> str:
    """Extract a plain-text body from a MIME payload tree."""
    plain = _collect_parts(payload, "text/plain")
    if plain:
        return "\n".join(plain).strip()

    html_parts = _collect_parts(payload, "text/html")
    if html_parts:
        return strip_html("\n".join(html_parts))

    return ""
