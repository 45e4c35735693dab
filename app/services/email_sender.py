"""
Transactional email sender (Resend HTTP API)

Retries are limited to failures where the provider cannot have accepted the
message: a refused connection, HTTP 429 and HTTP 503. A timeout or a dropped
connection after the request was written is reported as a failure and never
retried.
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import aiohttp

from app.config import Settings, get_settings
from app.exceptions import DigestConfigError
from app.utils.logger import log
from app.utils.retry import RetryStats, calculate_backoff, is_retryable_status


@dataclass
class EmailMessage:
    sender: str
    to: str
    subject: str
    html: str


@dataclass
class SendResult:
    """Outcome of one send, with attempt details for auditing."""
    success: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    errors: List[str] = field(default_factory=list)


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> SendResult:
        ...


class ResendEmailSender:
    """
    Sends email through Resend with bounded retries.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.max_attempts = max(1, self.settings.email_max_attempts)

    @property
    def configured(self) -> bool:
        return bool(self.settings.resend_api_key)

    def _require_key(self) -> str:
        if not self.settings.resend_api_key:
            raise DigestConfigError("Missing RESEND_API_KEY")
        return self.settings.resend_api_key

    async def send(self, message: EmailMessage) -> SendResult:
        """
        POST the message to Resend.

        Raises:
            DigestConfigError: no API key configured (nothing was sent)
        """
        api_key = self._require_key()
        payload = {
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        stats = RetryStats()
        result = SendResult()
        timeout = aiohttp.ClientTimeout(total=self.settings.email_timeout_seconds)

        for attempt in range(1, self.max_attempts + 1):
            delay = 0.0
            try:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.post(self.settings.resend_api_url, json=payload, headers=headers) as response:
                        if 200 <= response.status < 300:
                            try:
                                body = await response.json(content_type=None)
                            except ValueError:
                                body = None
                            stats.record_attempt()
                            stats.mark_success()
                            result.success = True
                            result.message_id = (body or {}).get("id")
                            result.attempts = stats.attempts
                            log.info(f"Email sent to {message.to} (attempt {attempt}, id={result.message_id})")
                            return result

                        error_body = await response.text()
                        error_str = f"HTTP {response.status}: {error_body[:500]}"
                        retryable = is_retryable_status(response.status)

            except aiohttp.ClientConnectorError as e:
                # Connection never established, nothing reached the provider
                error_str = f"{type(e).__name__}: {str(e)}"
                retryable = True
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error_str = f"{type(e).__name__}: {str(e)}"
                retryable = False

            if retryable and attempt < self.max_attempts:
                delay = calculate_backoff(
                    attempt,
                    base_delay=self.settings.email_retry_base_delay,
                    max_delay=self.settings.email_retry_max_delay
                )
            stats.record_attempt(error_str, delay)

            if not retryable or attempt >= self.max_attempts:
                log.error(f"Email to {message.to} failed after {attempt} attempts: {error_str}")
                break

            log.warning(f"Email attempt {attempt} failed: {error_str}. Retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)

        result.error = stats.last_error
        result.errors = stats.errors[:5]
        result.attempts = stats.attempts
        return result
