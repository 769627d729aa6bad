from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import HTTPException

from .settings import settings

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
	pass


@dataclass(frozen=True)
class EmailMessage:
	to: str
	subject: str
	html: str
	text: Optional[str] = None


class Mailer:
	"""Sends one message per call; never retries.

	provider="log" writes the message to the log instead of delivering it, which
	is what development and tests run with. provider="resend" posts to the
	Resend HTTP API.
	"""

	def __init__(
		self,
		provider: Optional[str] = None,
		*,
		api_key: Optional[str] = None,
		base_url: Optional[str] = None,
		from_email: Optional[str] = None,
		timeout: Optional[float] = None,
	) -> None:
		self.provider = (provider or settings.email_provider).lower()
		if self.provider not in ("log", "resend"):
			raise MailerError(f"Unknown EMAIL_PROVIDER: {self.provider}")
		self.api_key = api_key or settings.resend_api_key
		if self.provider == "resend" and not self.api_key:
			raise MailerError("RESEND_API_KEY is not configured")
		self.base_url = base_url or settings.resend_base_url
		self.from_email = from_email or settings.from_email
		timeout_s = timeout if timeout is not None else settings.email_timeout_seconds
		self._client: Optional[httpx.AsyncClient] = None
		if self.provider == "resend":
			self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

	async def send(self, message: EmailMessage) -> Dict[str, Any]:
		if not message.to or "@" not in message.to:
			raise MailerError(f"Invalid recipient address: {message.to!r}")
		if self._client is None:
			logger.info("Email (not delivered) to=%s subject=%r", message.to, message.subject)
			return {"id": None, "provider": "log"}
		payload: Dict[str, Any] = {
			"from": self.from_email,
			"to": [message.to],
			"subject": message.subject,
			"html": message.html,
		}
		if message.text:
			payload["text"] = message.text
		headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
		try:
			r = await self._client.post(self.base_url, headers=headers, json=payload)
		except httpx.RequestError as e:
			raise MailerError(f"Email request to {message.to} failed: {e!r}") from e
		if r.status_code >= 400:
			raise MailerError(f"Email to {message.to} rejected: {r.status_code} {r.text[:500]}")
		try:
			data = r.json()
		except ValueError:
			data = {}
		logger.info("Email sent to %s (id=%s)", message.to, data.get("id"))
		return {"id": data.get("id"), "provider": "resend"}

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()


async def get_mailer() -> AsyncIterator[Mailer]:
	try:
		mailer = Mailer()
	except MailerError as e:
		raise HTTPException(status_code=503, detail=str(e))
	try:
		yield mailer
	finally:
		await mailer.aclose()
