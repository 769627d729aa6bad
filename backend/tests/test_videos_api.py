import asyncio
import json
from datetime import datetime, timedelta

import pytest

from bootcamp_selection import emails
from bootcamp_selection.gemini_client import LLMClientError
from bootcamp_selection.models import Answer, Question, Quiz, Student, VideoSubmission
from bootcamp_selection.routers import videos
from bootcamp_selection.routers.auth import Admin
from bootcamp_selection.routers.videos import ProcessPendingRequest

ALPHA, BRAVO, CHARLIE, DELTA = "AAAAAAAAAAA", "BBBBBBBBBBB", "CCCCCCCCCCC", "DDDDDDDDDDD"

SCORED = {
	"relevance_score": 35,
	"content_quality_score": 25,
	"presentation_score": 15,
	"engagement_score": 8,
	"total_score": 83,
	"summary": "Clear and personal.",
}


def _reply(prompt: str):
	if "alpha talk" in prompt:
		return "Evaluation follows. " + json.dumps(SCORED)
	if "charlie talk" in prompt:
		return LLMClientError("Gemini error: 429 quota")
	return "The transcript was too short to judge."


@pytest.fixture()
def students(db):
	rows = [Student(name=name, email=f"{name.lower()}@example.com") for name in ("Ada", "Ben", "Cyd", "Dee")]
	db.add_all(rows)
	db.commit()
	return [s.id for s in rows]


@pytest.fixture()
def submitted(client, llm, transcripts, students):
	llm.replies = _reply
	transcripts.by_video.update({ALPHA: "[00:01] alpha talk", BRAVO: None, CHARLIE: "charlie talk", DELTA: "delta talk"})
	links = [
		f"https://www.youtube.com/watch?v={ALPHA}",
		f"https://youtu.be/{BRAVO}",
		f"https://www.youtube.com/shorts/{CHARLIE}",
		f"https://www.youtube.com/embed/{DELTA}",
	]
	ids = []
	for student_id, link in zip(students, links):
		r = client.post("/videos/submit", json={"student_id": student_id, "youtube_link": link, "title": f"Video {student_id}"})
		assert r.status_code == 201
		ids.append(r.json()["id"])
	return ids


def test_submit_rejects_links_without_video_id(client, students) -> None:
	r = client.post("/videos/submit", json={"student_id": students[0], "youtube_link": "https://vimeo.com/123"})
	assert r.status_code == 400
	assert "video id" in r.json()["error"]
	assert client.post("/videos/submit", json={"student_id": 999, "youtube_link": ALPHA}).status_code == 404


def test_process_pending_isolates_each_submission(client, submitted, transcripts) -> None:
	r = client.post("/videos/process-pending", json={"concurrency": 2})
	body = r.json()

	assert (body["processed"], body["skipped"], body["failed"], body["total"]) == (2, 1, 1, 4)
	assert [item["status"] for item in body["results"]] == ["ok", "skipped", "failed", "ok"]
	assert body["results"][0]["score"] == 83
	assert body["results"][0]["evaluation_status"] == "parsed"
	assert body["results"][3]["score"] == 50
	assert body["results"][3]["evaluation_status"] == "fallback"
	assert sorted(transcripts.requested) == sorted([ALPHA, BRAVO, CHARLIE, DELTA])

	videos = {v["id"]: v for v in client.get("/videos").json()}
	alpha, bravo, charlie, delta = (videos[i] for i in submitted)
	assert alpha["status"] == "COMPLETED"
	assert alpha["evaluation"]["evaluation"]["total_score"] == 83
	assert alpha["evaluation"]["video_id"] == ALPHA
	assert bravo["status"] == "FAILED"
	assert charlie["status"] == "FAILED"
	assert delta["status"] == "COMPLETED"
	assert delta["evaluation"]["status"] == "fallback"


def test_process_pending_only_retries_failed_when_asked(client, submitted, llm) -> None:
	client.post("/videos/process-pending", json={})
	assert client.post("/videos/process-pending", json={}).json()["total"] == 0
	body = client.post("/videos/process-pending", json={"include_failed": True}).json()
	assert body["total"] == 2


def test_process_single_submission_errors(client, submitted) -> None:
	r = client.post("/videos/process", json={"submission_id": submitted[1]})
	assert r.status_code == 422
	assert BRAVO in r.json()["error"]

	r = client.post("/videos/process", json={"submission_id": submitted[2]})
	assert r.status_code == 502
	assert "quota" in r.json()["error"]

	r = client.post("/videos/process", json={"submission_id": submitted[0]})
	assert r.status_code == 200
	assert r.json()["submission"]["ai_score"] == 83

	assert client.post("/videos/process", json={"submission_id": 999}).status_code == 404


def test_final_rank_and_notify(client, submitted, db, mailer) -> None:
	client.post("/videos/process-pending", json={})

	r = client.post("/videos/final-rank-and-notify", json={"top_n": 10})
	body = r.json()

	assert body["ranked"] == 2
	winners = body["winners"]
	assert [w["studentName"] for w in winners] == ["Ada", "Dee"]
	assert [w["position"] for w in winners] == [1, 2]
	assert winners[0]["prize"] == emails.prize_for(1)
	assert winners[0]["videoScore"] == 83
	# No quiz answers, so the final score is the video score
	assert winners[0]["finalScore"] == 83.0
	assert body["notifications"]["sent"] == 2
	assert [m.to for m in mailer.attempted] == ["ada@example.com", "dee@example.com"]
	assert mailer.attempted[0].subject == f"Congratulations! You're a Winner - {emails.prize_for(1)}"

	listed = client.get("/winners").json()
	assert [w["position"] for w in listed] == [1, 2]
	assert all(w["notified"] for w in listed)


def test_equal_scores_rank_earlier_submission_first(client, db, students) -> None:
	base = datetime(2025, 5, 1, 12, 0)
	for student_id, minutes in zip(students[:3], (30, 10, 20)):
		db.add(VideoSubmission(
			student_id=student_id,
			youtube_link=ALPHA,
			status="COMPLETED",
			ai_score=70.0,
			submitted_at=base + timedelta(minutes=minutes),
		))
	db.commit()

	body = client.post("/videos/final-rank-and-notify", json={"top_n": 2, "notify": False}).json()

	assert [w["studentName"] for w in body["winners"]] == ["Ben", "Cyd"]
	assert body["notifications"] is None


def test_rerank_clears_previous_positions(client, submitted) -> None:
	client.post("/videos/process-pending", json={})
	client.post("/videos/final-rank-and-notify", json={"top_n": 2, "notify": False})
	client.post("/videos/final-rank-and-notify", json={"top_n": 1, "notify": False})
	assert [w["studentName"] for w in client.get("/winners").json()] == ["Ada"]


def test_default_video_policy_selects_at_least_one(client, submitted) -> None:
	client.post("/videos/process-pending", json={})
	body = client.post("/videos/final-rank-and-notify", json={"notify": False}).json()
	assert len(body["winners"]) == 1


def test_notify_winners_reports_per_winner(client, mailer) -> None:
	mailer.fail_for.add("bad@example.com")
	payload = {
		"winners": [
			{"studentName": "Ada", "email": "ada@example.com", "position": 1, "videoScore": 83, "finalScore": 88.5, "videoTitle": "Why me"},
			{"studentName": "Bad", "email": "bad@example.com", "position": 2, "videoScore": 70, "finalScore": 70},
		]
	}

	body = client.post("/winners/notify", json=payload).json()

	assert body["message"] == "Sent 1/2 winner notifications"
	assert (body["sent"], body["failed"], body["total"]) == (1, 1, 2)
	assert [r["success"] for r in body["results"]] == [True, False]
	assert "error" in body["results"][1]
	assert "88.5/100" in mailer.attempted[0].text


def test_videos_are_judged_against_the_invitation_topic(client, db, llm, transcripts, mailer, students) -> None:
	topic = "Quantum computing for farmers"
	quiz = Quiz(name="Round 1", num_questions=1, is_active=True)
	quiz.questions.append(Question(question_text="2+2?", options=["3", "4"], correct_answer="4"))
	db.add(quiz)
	db.commit()
	db.add(Answer(student_id=students[0], question_id=quiz.questions[0].id, answer_text="4", is_correct=True))
	db.commit()
	quiz_id = quiz.id

	r = client.post("/quizzes/score-and-notify", json={"quiz_id": quiz_id, "top_n": 1, "video_topic": topic})
	assert r.json()["notifications"]["sent"] == 1
	assert topic in mailer.attempted[0].html

	llm.replies = lambda prompt: "no json"
	transcripts.by_video[ALPHA] = "my talk"
	submission = client.post("/videos/submit", json={"student_id": students[0], "youtube_link": ALPHA, "quiz_id": quiz_id}).json()

	assert client.post("/videos/process", json={"submission_id": submission["id"]}).status_code == 200
	assert f'on the topic: "{topic}"' in llm.prompts[-1]

	client.post("/videos/submit", json={"student_id": students[0], "youtube_link": ALPHA, "quiz_id": quiz_id})
	client.post("/videos/process-pending", json={})
	assert f'on the topic: "{topic}"' in llm.prompts[-1]


def test_include_failed_picks_up_rows_stuck_in_processing(client, db, students) -> None:
	db.add(VideoSubmission(student_id=students[0], youtube_link=BRAVO, status="PROCESSING"))
	db.commit()

	assert client.post("/videos/process-pending", json={}).json()["total"] == 0
	assert client.post("/videos/process-pending", json={"include_failed": True}).json()["total"] == 1


def test_cancelled_batch_marks_rows_failed(db, llm, students) -> None:
	class CancellingTranscripts:
		async def fetch(self, video_id):
			raise asyncio.CancelledError()

	db.add(VideoSubmission(student_id=students[0], youtube_link=ALPHA))
	db.commit()
	admin = Admin(email="admin@example.com")

	with pytest.raises(asyncio.CancelledError):
		asyncio.run(videos.process_pending(ProcessPendingRequest(concurrency=1), admin, db, llm, CancellingTranscripts()))

	db.expire_all()
	assert [s.status for s in db.query(VideoSubmission).all()] == ["FAILED"]
