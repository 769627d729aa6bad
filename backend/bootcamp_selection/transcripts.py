from __future__ import annotations
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from fastapi import HTTPException

from .settings import settings

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES = ("/embed/", "/shorts/", "/live/", "/v/", "/e/")
_YOUTUBE_HOSTS = {
	"youtube.com",
	"www.youtube.com",
	"m.youtube.com",
	"music.youtube.com",
	"youtube-nocookie.com",
	"www.youtube-nocookie.com",
}

# [00:12], (1:02:03), bare 00:01 or 1:02:03 tokens
_TIMESTAMP_RE = re.compile(r"[\[(]?\b\d{1,2}:\d{2}(?::\d{2})?(?:\.\d+)?\b[\])]?")
_WHITESPACE_RE = re.compile(r"\s+")


class TranscriptError(RuntimeError):
	pass


def extract_video_id(url: Optional[str]) -> Optional[str]:
	"""Pull the 11-character YouTube id out of a submitted link.

	Accepts watch?v=, youtu.be/, /embed/, /shorts/, /live/, /v/ links and bare
	ids. Returns None when nothing usable is found.
	"""
	if not url:
		return None
	candidate = url.strip()
	if _VIDEO_ID_RE.match(candidate):
		return candidate
	if "://" not in candidate:
		candidate = "https://" + candidate
	try:
		parsed = urlparse(candidate)
	except ValueError:
		return None
	host = (parsed.hostname or "").lower()
	path = parsed.path or ""
	video_id: Optional[str] = None
	if host in ("youtu.be", "www.youtu.be"):
		video_id = path.lstrip("/").split("/")[0]
	elif host in _YOUTUBE_HOSTS:
		if path in ("/watch", "/watch/"):
			video_id = (parse_qs(parsed.query).get("v") or [None])[0]
		else:
			for prefix in _PATH_PREFIXES:
				if path.startswith(prefix):
					video_id = path[len(prefix):].split("/")[0]
					break
	if video_id and _VIDEO_ID_RE.match(video_id):
		return video_id
	return None


def strip_timestamps(text: str) -> str:
	cleaned = _TIMESTAMP_RE.sub(" ", text or "")
	return _WHITESPACE_RE.sub(" ", cleaned).strip()


def join_fragments(fragments: List[Any]) -> str:
	parts: List[str] = []
	for frag in fragments:
		if isinstance(frag, dict):
			text = frag.get("text")
		else:
			text = frag
		if isinstance(text, str):
			cleaned = strip_timestamps(text)
			if cleaned:
				parts.append(cleaned)
	return " ".join(parts)


class TranscriptClient:
	"""Fetches a plain-text transcript for a video id from TRANSCRIPT_API_URL.

	The service may answer with a list of timed fragments, an object holding
	one (``transcript`` or ``segments``), or an object with a ready ``text``.
	A 404 or an empty body means no transcript is available and yields None.
	"""

	def __init__(self, base_url: Optional[str] = None, *, api_key: Optional[str] = None, timeout: Optional[float] = None) -> None:
		self.base_url = base_url or settings.transcript_api_url
		if not self.base_url:
			raise TranscriptError("TRANSCRIPT_API_URL is not configured")
		self.api_key = api_key or settings.transcript_api_key
		timeout_s = timeout if timeout is not None else settings.transcript_timeout_seconds
		self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

	async def fetch(self, video_id: str) -> Optional[str]:
		headers: Dict[str, str] = {}
		if self.api_key:
			headers["x-api-key"] = self.api_key
		try:
			r = await self._client.get(self.base_url, params={"video_id": video_id}, headers=headers)
		except httpx.RequestError as e:
			raise TranscriptError(f"Transcript request failed for {video_id}: {e!r}") from e
		if r.status_code == 404:
			logger.info("No transcript available for video %s", video_id)
			return None
		if r.status_code >= 400:
			raise TranscriptError(f"Transcript fetch failed for {video_id}: {r.status_code} {r.text[:500]}")
		try:
			data = r.json()
		except ValueError:
			text = strip_timestamps(r.text)
			return text or None
		text = self._extract_text(data)
		return text or None

	def _extract_text(self, data: Any) -> str:
		if isinstance(data, list):
			return join_fragments(data)
		if isinstance(data, dict):
			for key in ("transcript", "segments"):
				value = data.get(key)
				if isinstance(value, list):
					return join_fragments(value)
				if isinstance(value, str):
					return strip_timestamps(value)
			if isinstance(data.get("text"), str):
				return strip_timestamps(data["text"])
		return ""

	async def aclose(self) -> None:
		await self._client.aclose()


async def get_transcript_client() -> AsyncIterator[TranscriptClient]:
	try:
		client = TranscriptClient()
	except TranscriptError as e:
		raise HTTPException(status_code=503, detail=str(e))
	try:
		yield client
	finally:
		await client.aclose()
