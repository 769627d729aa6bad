"""
Video Evaluation
================

Turns a video transcript into a rubric score breakdown by prompting the LLM
once and parsing the JSON object out of its free-form reply.

Rubric (100 points):
- relevance_score        0-40  how directly the video addresses the topic
- content_quality_score  0-30  depth, accuracy and structure of the content
- presentation_score     0-20  clarity and delivery
- engagement_score       0-10  how compelling the video is

Replies that cannot be parsed, miss a score, put a score out of range or do
not add up to their total are replaced by a fixed fallback evaluation
(20/15/10/5 = 50). The outcome is tagged so callers can tell the cases apart.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Protocol

from pydantic import BaseModel, Field, model_validator

from ..settings import settings

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Video analysis completed with basic scoring"

SUB_SCORE_RANGES: Dict[str, float] = {
	"relevance_score": 40,
	"content_quality_score": 30,
	"presentation_score": 20,
	"engagement_score": 10,
}

# Accepted spellings of each field in the model's reply
_FIELD_ALIASES: Dict[str, tuple] = {
	"relevance_score": ("relevance_score", "relevanceScore", "relevance"),
	"content_quality_score": ("content_quality_score", "contentQualityScore", "content_quality"),
	"presentation_score": ("presentation_score", "presentationScore", "presentation"),
	"engagement_score": ("engagement_score", "engagementScore", "engagement"),
	"total_score": ("total_score", "totalScore", "total"),
	"summary": ("summary",),
	"feedback": ("feedback",),
	"topic_alignment": ("topic_alignment", "topicAlignment"),
}

_SUM_TOLERANCE = 0.01


class VideoEvaluation(BaseModel):
	relevance_score: float = Field(ge=0, le=40)
	content_quality_score: float = Field(ge=0, le=30)
	presentation_score: float = Field(ge=0, le=20)
	engagement_score: float = Field(ge=0, le=10)
	total_score: float = Field(ge=0, le=100)
	summary: str = ""
	feedback: str = ""
	topic_alignment: str = ""

	@model_validator(mode="after")
	def _check_total(self) -> "VideoEvaluation":
		parts = self.relevance_score + self.content_quality_score + self.presentation_score + self.engagement_score
		if abs(parts - self.total_score) > _SUM_TOLERANCE:
			raise ValueError(f"sub-scores sum to {parts}, total_score is {self.total_score}")
		return self


def fallback_evaluation() -> VideoEvaluation:
	return VideoEvaluation(
		relevance_score=20,
		content_quality_score=15,
		presentation_score=10,
		engagement_score=5,
		total_score=50,
		summary=FALLBACK_SUMMARY,
		feedback="The automated evaluation could not be completed, so a default score was assigned.",
		topic_alignment="Unknown",
	)


EvaluationStatus = Literal["parsed", "fallback", "invalid"]


@dataclass(frozen=True)
class EvaluationOutcome:
	status: EvaluationStatus
	evaluation: VideoEvaluation
	# Why a reply was not accepted; None for parsed outcomes
	reason: Optional[str] = None
	raw_response: Optional[str] = None

	@property
	def is_fallback(self) -> bool:
		return self.status != "parsed"


class TextGenerator(Protocol):
	async def generate(self, prompt: str) -> str: ...


def build_evaluation_prompt(transcript: str, *, topic: str, quiz_name: Optional[str] = None) -> str:
	context = f"Quiz stage passed: {quiz_name}\n" if quiz_name else ""
	return (
		"You are an expert judge for an AI-skills bootcamp selection contest.\n"
		f"Candidates recorded a short video on the topic: \"{topic}\".\n"
		f"{context}"
		"Evaluate the video using ONLY its transcript below.\n\n"
		"Score these four criteria (integers):\n"
		"- relevance_score (0-40): how directly the video addresses the topic\n"
		"- content_quality_score (0-30): depth, accuracy and structure of the content\n"
		"- presentation_score (0-20): clarity, organisation and delivery\n"
		"- engagement_score (0-10): how compelling and original the video is\n"
		"total_score must equal the sum of the four criteria (0-100).\n\n"
		"Return ONLY a JSON object with exactly these keys:\n"
		"{\n"
		"  \"relevance_score\": number,\n"
		"  \"content_quality_score\": number,\n"
		"  \"presentation_score\": number,\n"
		"  \"engagement_score\": number,\n"
		"  \"total_score\": number,\n"
		"  \"summary\": \"two sentences summarising the video\",\n"
		"  \"feedback\": \"one or two sentences of constructive feedback\",\n"
		"  \"topic_alignment\": \"High|Medium|Low with a short reason\"\n"
		"}\n"
		"No markdown, no extra commentary.\n\n"
		f"Transcript (verbatim):\n---\n{transcript}\n---"
	)


def truncate_transcript(transcript: str, max_chars: Optional[int] = None) -> str:
	limit = settings.transcript_max_chars if max_chars is None else max_chars
	text = (transcript or "").strip()
	if limit and len(text) > limit:
		return text[:limit]
	return text


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def first_balanced_object(text: str) -> Optional[str]:
	"""Return the first balanced ``{...}`` span in text, or None.

	Braces inside JSON string literals are ignored, so a summary containing "}"
	does not end the span early.
	"""
	start = text.find("{")
	while start != -1:
		depth = 0
		in_string = False
		escaped = False
		for i in range(start, len(text)):
			ch = text[i]
			if in_string:
				if escaped:
					escaped = False
				elif ch == "\\":
					escaped = True
				elif ch == '"':
					in_string = False
				continue
			if ch == '"':
				in_string = True
			elif ch == "{":
				depth += 1
			elif ch == "}":
				depth -= 1
				if depth == 0:
					return text[start : i + 1]
		# Unbalanced from this brace; try the next one
		start = text.find("{", start + 1)
	return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
	"""Strict parse of the whole reply first, then a fenced block, then the first balanced span."""
	if not text:
		return None
	candidates = [text.strip()]
	fenced = _FENCE_RE.search(text)
	if fenced:
		candidates.append(fenced.group(1))
	span = first_balanced_object(text)
	if span:
		candidates.append(span)
	for candidate in candidates:
		try:
			data = json.loads(candidate)
		except (TypeError, ValueError):
			continue
		if isinstance(data, dict):
			return data
	return None


def _safe_float(value: Any) -> Optional[float]:
	if isinstance(value, bool) or value is None:
		return None
	try:
		number = float(value)
	except (TypeError, ValueError):
		return None
	if math.isnan(number) or math.isinf(number):
		return None
	return number


def _lookup(data: Dict[str, Any], field: str) -> Any:
	for key in _FIELD_ALIASES[field]:
		if key in data:
			return data[key]
	return None


def parse_evaluation(text: str) -> EvaluationOutcome:
	data = extract_json_object(text)
	if data is None:
		return EvaluationOutcome("fallback", fallback_evaluation(), "no JSON object in response", text)
	# Some models nest the object one level down
	nested = data.get("evaluation")
	if isinstance(nested, dict):
		data = nested

	numbers: Dict[str, float] = {}
	for field in (*SUB_SCORE_RANGES, "total_score"):
		value = _safe_float(_lookup(data, field))
		if value is None:
			return EvaluationOutcome("fallback", fallback_evaluation(), f"missing numeric field {field}", text)
		numbers[field] = value

	def _text(field: str) -> str:
		value = _lookup(data, field)
		return value.strip() if isinstance(value, str) else ""

	try:
		evaluation = VideoEvaluation(
			**numbers,
			summary=_text("summary"),
			feedback=_text("feedback"),
			topic_alignment=_text("topic_alignment"),
		)
	except ValueError as e:
		# pydantic.ValidationError subclasses ValueError
		return EvaluationOutcome("invalid", fallback_evaluation(), str(e), text)
	return EvaluationOutcome("parsed", evaluation, None, text)


class VideoEvaluator:
	"""Scores one transcript per call against the fixed rubric.

	Args:
		client: Anything with ``async generate(prompt) -> str``.
		max_chars: Transcript length cap; defaults to TRANSCRIPT_MAX_CHARS.

	Errors raised by the client propagate unchanged; batch callers isolate them
	per submission. A reply that cannot be used is never retried.
	"""

	def __init__(self, client: TextGenerator, *, max_chars: Optional[int] = None) -> None:
		self.client = client
		self.max_chars = max_chars

	async def evaluate(self, transcript: str, *, topic: Optional[str] = None, quiz_name: Optional[str] = None) -> EvaluationOutcome:
		prompt = build_evaluation_prompt(
			truncate_transcript(transcript, self.max_chars),
			topic=topic or settings.video_topic,
			quiz_name=quiz_name,
		)
		raw = await self.client.generate(prompt)
		outcome = parse_evaluation(raw)
		if outcome.is_fallback:
			logger.warning("Video evaluation fell back to default score (%s): %s", outcome.status, outcome.reason)
		return outcome
