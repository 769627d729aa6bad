from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import emails, funnel
from ..db import get_db
from ..mailer import Mailer, get_mailer
from ..models import VideoSubmission
from ..pipeline.dispatch import dispatch
from ..settings import settings
from .auth import Admin, get_current_admin

router = APIRouter(prefix="/winners", tags=["winners"])

logger = logging.getLogger(__name__)


class Winner(BaseModel):
	studentName: str
	email: str
	position: int = Field(ge=1)
	prize: Optional[str] = None
	videoScore: float = Field(ge=0, le=100)
	finalScore: float = Field(ge=0, le=100)
	videoTitle: Optional[str] = None


class NotifyWinnersRequest(BaseModel):
	winners: List[Winner]


@router.get("")
async def list_winners(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	quiz_best = funnel.best_quiz_percentages(db)
	rows = db.query(VideoSubmission).filter(VideoSubmission.ranking.isnot(None)).order_by(VideoSubmission.ranking).all()
	return [
		{
			"position": s.ranking,
			"submission_id": s.id,
			"studentName": s.student.name if s.student else None,
			"email": s.student.email if s.student else None,
			"prize": emails.prize_for(s.ranking),
			"videoScore": s.ai_score,
			"quizScore": quiz_best.get(s.student_id),
			"finalScore": funnel.final_score(s.ai_score or 0, quiz_best.get(s.student_id)),
			"videoTitle": s.title,
			"notified": s.notified_at is not None,
		}
		for s in rows
	]


@router.post("/notify")
async def notify_winners(
	req: NotifyWinnersRequest,
	admin: Admin = Depends(get_current_admin),
	mailer: Mailer = Depends(get_mailer),
):
	summary = await dispatch(
		req.winners,
		lambda w: emails.winner_notification(
			to=w.email,
			student_name=w.studentName,
			position=w.position,
			prize=w.prize or emails.prize_for(w.position),
			video_score=w.videoScore,
			final_score=w.finalScore,
			video_title=w.videoTitle,
		),
		mailer.send,
		concurrency=settings.email_concurrency,
	)
	results = [
		{
			"studentName": req.winners[r.index].studentName,
			"email": req.winners[r.index].email,
			"success": r.success,
			**({"error": r.error} if r.error else {}),
		}
		for r in summary.results
	]
	return {
		"message": f"Sent {summary.sent_count}/{summary.total_count} winner notifications",
		"sent": summary.sent_count,
		"failed": summary.failed_count,
		"total": summary.total_count,
		"results": results,
	}
