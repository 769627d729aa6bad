import asyncio

import httpx
import pytest

from bootcamp_selection.transcripts import TranscriptClient, TranscriptError, extract_video_id, strip_timestamps

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.mark.parametrize(
	"link",
	[
		f"https://www.youtube.com/watch?v={VIDEO_ID}",
		f"https://www.youtube.com/watch?feature=share&v={VIDEO_ID}&t=42",
		f"youtube.com/watch?v={VIDEO_ID}",
		f"https://m.youtube.com/watch?v={VIDEO_ID}",
		f"https://youtu.be/{VIDEO_ID}",
		f"https://youtu.be/{VIDEO_ID}?si=abc",
		f"https://www.youtube.com/embed/{VIDEO_ID}",
		f"https://www.youtube.com/shorts/{VIDEO_ID}",
		f"https://www.youtube.com/live/{VIDEO_ID}?feature=share",
		VIDEO_ID,
	],
)
def test_extract_video_id(link) -> None:
	assert extract_video_id(link) == VIDEO_ID


@pytest.mark.parametrize(
	"link",
	[None, "", "https://vimeo.com/12345", "https://www.youtube.com/watch?v=short", "https://www.youtube.com/channel/UC123"],
)
def test_extract_video_id_rejects_unusable_links(link) -> None:
	assert extract_video_id(link) is None


def test_strip_timestamps() -> None:
	assert strip_timestamps("[00:01] Hello  (1:02:03) world 00:15 again") == "Hello world again"


def _client(handler) -> TranscriptClient:
	client = TranscriptClient("https://transcripts.test/api", api_key="k-1", timeout=5)
	client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
	return client


def test_fetch_joins_fragment_list() -> None:
	captured = {}

	def handler(request: httpx.Request) -> httpx.Response:
		captured["video_id"] = request.url.params.get("video_id")
		captured["api_key"] = request.headers.get("x-api-key")
		return httpx.Response(200, json=[{"text": "[00:00] Hi there"}, {"text": "I am Ada"}, {"start": 3}])

	text = asyncio.run(_client(handler).fetch(VIDEO_ID))
	assert text == "Hi there I am Ada"
	assert captured == {"video_id": VIDEO_ID, "api_key": "k-1"}


def test_fetch_accepts_text_object_and_plain_body() -> None:
	assert asyncio.run(_client(lambda r: httpx.Response(200, json={"text": "Plain words"})).fetch(VIDEO_ID)) == "Plain words"
	assert asyncio.run(_client(lambda r: httpx.Response(200, json={"transcript": [{"text": "a"}, {"text": "b"}]})).fetch(VIDEO_ID)) == "a b"
	assert asyncio.run(_client(lambda r: httpx.Response(200, text="raw body")).fetch(VIDEO_ID)) == "raw body"


def test_fetch_missing_transcript_returns_none() -> None:
	assert asyncio.run(_client(lambda r: httpx.Response(404)).fetch(VIDEO_ID)) is None
	assert asyncio.run(_client(lambda r: httpx.Response(200, json=[])).fetch(VIDEO_ID)) is None


def test_fetch_server_error_raises() -> None:
	with pytest.raises(TranscriptError):
		asyncio.run(_client(lambda r: httpx.Response(500, text="down")).fetch(VIDEO_ID))


def test_unconfigured_client_raises(monkeypatch) -> None:
	from bootcamp_selection import transcripts

	monkeypatch.setattr(transcripts.settings, "transcript_api_url", None)
	with pytest.raises(TranscriptError):
		TranscriptClient()
