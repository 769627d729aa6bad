from __future__ import annotations

import os

# Must be set before the package reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ["EMAIL_PROVIDER"] = "log"

from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import pytest
from fastapi.testclient import TestClient

from bootcamp_selection.db import Base, SessionLocal, engine
from bootcamp_selection.gemini_client import get_llm_client
from bootcamp_selection.mailer import EmailMessage, MailerError, get_mailer
from bootcamp_selection.main import app
from bootcamp_selection.routers.auth import Admin, get_current_admin
from bootcamp_selection.transcripts import get_transcript_client


class FakeLLM:
	"""Replays canned replies; a reply that is an Exception is raised instead."""

	def __init__(self, replies: Union[List[Any], Callable[[str], Any], None] = None) -> None:
		self.replies = replies if replies is not None else []
		self.prompts: List[str] = []

	async def generate(self, prompt: str) -> str:
		self.prompts.append(prompt)
		if callable(self.replies):
			reply = self.replies(prompt)
		else:
			reply = self.replies.pop(0)
		if isinstance(reply, Exception):
			raise reply
		return reply


class FakeTranscripts:
	def __init__(self, by_video: Optional[Dict[str, Any]] = None) -> None:
		self.by_video = by_video or {}
		self.requested: List[str] = []

	async def fetch(self, video_id: str) -> Optional[str]:
		self.requested.append(video_id)
		value = self.by_video.get(video_id)
		if isinstance(value, Exception):
			raise value
		return value


class FakeMailer:
	def __init__(self, fail_for: Optional[set] = None) -> None:
		self.fail_for = fail_for or set()
		self.attempted: List[EmailMessage] = []

	@property
	def sent(self) -> List[EmailMessage]:
		return [m for m in self.attempted if m.to not in self.fail_for]

	async def send(self, message: EmailMessage) -> Dict[str, Any]:
		self.attempted.append(message)
		if message.to in self.fail_for:
			raise MailerError(f"rejected {message.to}")
		return {"id": f"msg-{len(self.attempted)}"}


@pytest.fixture()
def db() -> Iterator[Any]:
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	session = SessionLocal()
	try:
		yield session
	finally:
		session.close()
		Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def llm() -> FakeLLM:
	return FakeLLM()


@pytest.fixture()
def transcripts() -> FakeTranscripts:
	return FakeTranscripts()


@pytest.fixture()
def mailer() -> FakeMailer:
	return FakeMailer()


@pytest.fixture()
def client(db, llm, transcripts, mailer) -> Iterator[TestClient]:
	app.dependency_overrides[get_current_admin] = lambda: Admin(email="admin@example.com", session_id="test")
	app.dependency_overrides[get_llm_client] = lambda: llm
	app.dependency_overrides[get_transcript_client] = lambda: transcripts
	app.dependency_overrides[get_mailer] = lambda: mailer
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()
