from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import emails, funnel
from ..db import get_db
from ..gemini_client import GeminiClient, LLMClientError, get_llm_client
from ..mailer import Mailer, get_mailer
from ..models import Quiz, Student, VideoSubmission
from ..pipeline.batch import SkipItem, count_status, run_batch
from ..pipeline.cohort import select_cohort
from ..pipeline.dispatch import dispatch
from ..pipeline.evaluation import EvaluationOutcome, VideoEvaluator
from ..settings import settings
from ..transcripts import TranscriptClient, TranscriptError, extract_video_id, get_transcript_client
from .auth import Admin, get_current_admin

router = APIRouter(prefix="/videos", tags=["videos"])

logger = logging.getLogger(__name__)


class SubmitVideoRequest(BaseModel):
	student_id: int
	youtube_link: str = Field(min_length=1)
	title: Optional[str] = None
	quiz_id: Optional[int] = None


class ProcessRequest(BaseModel):
	submission_id: int


class ProcessPendingRequest(BaseModel):
	include_failed: bool = False
	concurrency: Optional[int] = Field(default=None, ge=1, le=20)
	topic: Optional[str] = None


class FinalRankRequest(BaseModel):
	top_n: Optional[int] = Field(default=None, ge=1)
	top_percent: Optional[float] = Field(default=None, gt=0, le=100)
	minimum: Optional[int] = Field(default=None, ge=0)
	maximum: Optional[int] = Field(default=None, ge=1)
	notify: bool = True


@dataclass(frozen=True)
class _Job:
	"""Plain copy of what a worker needs, so no ORM object crosses into a task."""

	submission_id: int
	youtube_link: str
	quiz_name: Optional[str]
	# Topic the student was invited with; None means the configured default
	topic: Optional[str] = None


@dataclass(frozen=True)
class _Processed:
	video_id: str
	transcript: str
	outcome: EvaluationOutcome


def _submission_dict(s: VideoSubmission) -> Dict[str, Any]:
	evaluation = None
	if s.evaluation:
		try:
			evaluation = json.loads(s.evaluation)
		except ValueError:
			evaluation = {"raw": s.evaluation}
	return {
		"id": s.id,
		"student_id": s.student_id,
		"student": {"name": s.student.name, "email": s.student.email} if s.student else None,
		"quiz_id": s.quiz_id,
		"title": s.title,
		"youtube_link": s.youtube_link,
		"status": s.status,
		"ai_score": s.ai_score,
		"ranking": s.ranking,
		"evaluation": evaluation,
		"submitted_at": s.submitted_at.isoformat() if s.submitted_at else None,
		"processed_at": s.processed_at.isoformat() if s.processed_at else None,
	}


def _evaluation_blob(video_id: str, outcome: EvaluationOutcome) -> str:
	return json.dumps({
		"status": outcome.status,
		"reason": outcome.reason,
		"video_id": video_id,
		"evaluated_at": datetime.utcnow().isoformat(),
		"evaluation": outcome.evaluation.model_dump(),
	})


def _job_for(db: Session, submission: VideoSubmission) -> _Job:
	quiz = db.get(Quiz, submission.quiz_id) if submission.quiz_id else None
	return _Job(
		submission_id=submission.id,
		youtube_link=submission.youtube_link,
		quiz_name=quiz.name if quiz else None,
		topic=quiz.video_topic if quiz else None,
	)


async def _process_job(job: _Job, transcripts: TranscriptClient, evaluator: VideoEvaluator, topic: Optional[str] = None) -> _Processed:
	video_id = extract_video_id(job.youtube_link)
	if video_id is None:
		raise SkipItem(f"no video id in link {job.youtube_link!r}")
	transcript = await transcripts.fetch(video_id)
	if not transcript:
		raise SkipItem(f"no transcript available for video {video_id}")
	outcome = await evaluator.evaluate(transcript, topic=topic or job.topic, quiz_name=job.quiz_name)
	return _Processed(video_id=video_id, transcript=transcript, outcome=outcome)


def _store(submission: VideoSubmission, processed: _Processed) -> None:
	funnel.mark_processed(
		submission,
		status="COMPLETED",
		transcript=processed.transcript,
		evaluation_blob=_evaluation_blob(processed.video_id, processed.outcome),
		score=processed.outcome.evaluation.total_score,
	)


# ---- Student-facing ----

@router.post("/submit", status_code=201)
async def submit_video(req: SubmitVideoRequest, db: Session = Depends(get_db)):
	if db.get(Student, req.student_id) is None:
		raise HTTPException(status_code=404, detail="Student not found")
	if req.quiz_id is not None and db.get(Quiz, req.quiz_id) is None:
		raise HTTPException(status_code=404, detail=f"Quiz {req.quiz_id} not found")
	video_id = extract_video_id(req.youtube_link)
	if video_id is None:
		raise HTTPException(status_code=400, detail="Could not find a YouTube video id in the link")
	row = VideoSubmission(
		student_id=req.student_id,
		quiz_id=req.quiz_id,
		title=(req.title or "").strip() or None,
		youtube_link=req.youtube_link.strip(),
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"success": True, "id": row.id, "video_id": video_id, "status": row.status}


# ---- Admin ----

@router.get("")
async def list_videos(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	rows = db.query(VideoSubmission).order_by(VideoSubmission.submitted_at.desc(), VideoSubmission.id.desc()).all()
	return [_submission_dict(s) for s in rows]


@router.post("/process")
async def process_video(
	req: ProcessRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	client: GeminiClient = Depends(get_llm_client),
	transcripts: TranscriptClient = Depends(get_transcript_client),
):
	submission = db.get(VideoSubmission, req.submission_id)
	if submission is None:
		raise HTTPException(status_code=404, detail=f"Submission {req.submission_id} not found")
	job = _job_for(db, submission)
	submission.status = "PROCESSING"
	db.commit()
	try:
		processed = await _process_job(job, transcripts, VideoEvaluator(client))
	except SkipItem as e:
		funnel.mark_processed(submission, status="FAILED")
		db.commit()
		raise HTTPException(status_code=422, detail=str(e))
	except Exception as e:
		funnel.mark_processed(submission, status="FAILED")
		db.commit()
		if isinstance(e, (LLMClientError, TranscriptError)):
			raise HTTPException(status_code=502, detail=str(e))
		raise
	_store(submission, processed)
	db.commit()
	return {
		"success": True,
		"submission": _submission_dict(submission),
		"evaluation_status": processed.outcome.status,
	}


@router.post("/process-pending")
async def process_pending(
	req: ProcessPendingRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	client: GeminiClient = Depends(get_llm_client),
	transcripts: TranscriptClient = Depends(get_transcript_client),
):
	# PROCESSING rows left behind by an interrupted run are retried with the failed ones
	statuses = ["PENDING", "FAILED", "PROCESSING"] if req.include_failed else ["PENDING"]
	submissions = db.query(VideoSubmission).filter(VideoSubmission.status.in_(statuses)).order_by(VideoSubmission.id).all()
	jobs = [_job_for(db, s) for s in submissions]
	for s in submissions:
		s.status = "PROCESSING"
	db.commit()

	evaluator = VideoEvaluator(client)
	try:
		results = await run_batch(
			jobs,
			lambda job: _process_job(job, transcripts, evaluator, req.topic),
			concurrency=req.concurrency or settings.batch_concurrency,
			label="video processing",
		)
	except BaseException:
		# Cancelled mid-batch: do not leave rows stuck in PROCESSING
		for s in submissions:
			funnel.mark_processed(s, status="FAILED")
		db.commit()
		raise

	# Writes happen here, after fan-in, on the request's session only
	by_id = {s.id: s for s in submissions}
	items: List[Dict[str, Any]] = []
	for result in results:
		submission = by_id[result.item.submission_id]
		item: Dict[str, Any] = {"submission_id": submission.id, "status": result.status, "error": result.error}
		if result.ok:
			_store(submission, result.value)
			item["score"] = result.value.outcome.evaluation.total_score
			item["evaluation_status"] = result.value.outcome.status
		else:
			funnel.mark_processed(submission, status="FAILED")
		items.append(item)
	db.commit()
	return {
		"success": True,
		"processed": count_status(results, "ok"),
		"skipped": count_status(results, "skipped"),
		"failed": count_status(results, "failed"),
		"total": len(results),
		"results": items,
	}


@router.post("/final-rank-and-notify")
async def final_rank_and_notify(
	req: FinalRankRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	mailer: Mailer = Depends(get_mailer),
):
	try:
		policy = funnel.video_stage_policy(req.top_n, req.top_percent, req.minimum, req.maximum)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	entities = funnel.video_entities(db)
	cohort = select_cohort(entities, policy)
	quiz_best = funnel.best_quiz_percentages(db)

	db.query(VideoSubmission).filter(VideoSubmission.ranking.isnot(None)).update({VideoSubmission.ranking: None}, synchronize_session="fetch")
	winners: List[Dict[str, Any]] = []
	for position, entity in enumerate(cohort, start=1):
		submission: VideoSubmission = entity.payload
		submission.ranking = position
		video_score = float(entity.percentage)
		winners.append({
			"submission_id": submission.id,
			"student_id": submission.student_id,
			"studentName": submission.student.name if submission.student else None,
			"email": submission.student.email if submission.student else None,
			"position": position,
			"prize": emails.prize_for(position),
			"videoScore": video_score,
			"quizScore": quiz_best.get(submission.student_id),
			"finalScore": funnel.final_score(video_score, quiz_best.get(submission.student_id)),
			"videoTitle": submission.title,
		})
	db.commit()
	logger.info("Final ranking: %d completed submissions, %d winners", len(entities), len(winners))

	notifications = None
	if req.notify:
		summary = await dispatch(winners, _winner_message, mailer.send, concurrency=settings.email_concurrency)
		now = datetime.utcnow()
		for result in summary.results:
			if result.success:
				db.get(VideoSubmission, winners[result.index]["submission_id"]).notified_at = now
		db.commit()
		notifications = summary.to_dict()
	return {"success": True, "ranked": len(entities), "winners": winners, "notifications": notifications}


def _winner_message(winner: Dict[str, Any]):
	if not winner.get("email"):
		raise ValueError(f"submission {winner['submission_id']} has no student email")
	return emails.winner_notification(
		to=winner["email"],
		student_name=winner["studentName"] or "Student",
		position=winner["position"],
		prize=winner["prize"],
		video_score=winner["videoScore"],
		final_score=winner["finalScore"],
		video_title=winner["videoTitle"],
	)
