"""Storage-facing glue between the database rows and the pure pipeline functions."""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Hashable, List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import Answer, Question, Quiz, Student, VideoSubmission
from .pipeline.aggregation import AnswerRecord, QuizTally, aggregate_answers
from .pipeline.cohort import CohortPolicy
from .pipeline.evaluation import VideoEvaluation
from .pipeline.scoring import ScoredEntity, percentage, round_one_decimal, score_tally
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuizScore:
	student: Student
	quiz: Quiz
	tally: QuizTally
	entity: ScoredEntity


def declared_question_count(db: Session, quiz: Quiz) -> int:
	if quiz.num_questions:
		return int(quiz.num_questions)
	return db.query(Question).filter(Question.quiz_id == quiz.id).count()


def load_tallies(db: Session, quiz_ids: Optional[List[int]] = None) -> Dict[Tuple[Hashable, Hashable], QuizTally]:
	question_rows = db.query(Question.id, Question.quiz_id)
	if quiz_ids is not None:
		question_rows = question_rows.filter(Question.quiz_id.in_(quiz_ids))
	question_to_quiz = {qid: quiz_id for qid, quiz_id in question_rows.all()}
	if not question_to_quiz:
		return {}
	answers = db.query(Answer).filter(Answer.question_id.in_(list(question_to_quiz))).all()
	records = [
		AnswerRecord(
			student_id=a.student_id,
			question_id=a.question_id,
			answer_text=a.answer_text,
			is_correct=bool(a.is_correct),
			answered_at=a.answered_at,
		)
		for a in answers
	]
	return aggregate_answers(records, question_to_quiz)


def quiz_scores(db: Session, quiz: Quiz) -> List[QuizScore]:
	"""Score every student who answered at least one question of the quiz."""
	tallies = load_tallies(db, [quiz.id])
	total = declared_question_count(db, quiz)
	students = {s.id: s for s in db.query(Student).filter(Student.id.in_([k[0] for k in tallies])).all()} if tallies else {}
	scores: List[QuizScore] = []
	for (student_id, _), tally in tallies.items():
		student = students.get(student_id)
		if student is None:
			logger.warning("Answers reference missing student %s; skipped", student_id)
			continue
		scores.append(QuizScore(student=student, quiz=quiz, tally=tally, entity=score_tally(tally, total, payload=student)))
	return scores


def best_quiz_percentages(db: Session) -> Dict[int, float]:
	totals = {q.id: declared_question_count(db, q) for q in db.query(Quiz).all()}
	best: Dict[int, float] = {}
	for (student_id, quiz_id), tally in load_tallies(db).items():
		value = percentage(tally.correct_count, totals.get(quiz_id))
		if value > best.get(student_id, -1.0):
			best[student_id] = value
	return best


def quiz_stage_policy(top_n: Optional[int] = None, top_percent: Optional[float] = None, minimum: Optional[int] = None, maximum: Optional[int] = None) -> CohortPolicy:
	if top_n is not None:
		return CohortPolicy.top(top_n)
	return CohortPolicy.top_percent(
		top_percent if top_percent is not None else settings.quiz_stage_top_percent,
		minimum=minimum if minimum is not None else settings.quiz_stage_min,
		maximum=maximum if maximum is not None else settings.quiz_stage_max,
	)


def video_stage_policy(top_n: Optional[int] = None, top_percent: Optional[float] = None, minimum: Optional[int] = None, maximum: Optional[int] = None) -> CohortPolicy:
	if top_n is not None:
		return CohortPolicy.top(top_n)
	return CohortPolicy.top_percent(
		top_percent if top_percent is not None else settings.video_stage_top_percent,
		minimum=minimum if minimum is not None else settings.video_stage_min,
		maximum=maximum if maximum is not None else settings.video_stage_max,
	)


def stored_evaluation(submission: VideoSubmission) -> Optional[VideoEvaluation]:
	if not submission.evaluation:
		return None
	try:
		data = json.loads(submission.evaluation)
		return VideoEvaluation(**data["evaluation"])
	except (ValueError, KeyError, TypeError) as e:
		logger.warning("Stored evaluation for submission %s is unreadable: %s", submission.id, e)
		return None


def video_entities(db: Session) -> List[ScoredEntity]:
	"""Completed submissions as rankable entities, scored by the evaluator total."""
	entities: List[ScoredEntity] = []
	rows = db.query(VideoSubmission).filter(VideoSubmission.status == "COMPLETED").order_by(VideoSubmission.id).all()
	for submission in rows:
		score = submission.ai_score
		if score is None:
			evaluation = stored_evaluation(submission)
			score = evaluation.total_score if evaluation else None
		entities.append(
			ScoredEntity(
				identity=submission.id,
				raw_score=float(score or 0),
				total_possible=100.0,
				percentage=score,
				tie_break=submission.submitted_at,
				payload=submission,
			)
		)
	return entities


def final_score(video_score: float, quiz_percentage: Optional[float]) -> float:
	if quiz_percentage is None:
		return round_one_decimal(video_score)
	return round_one_decimal((float(video_score) + float(quiz_percentage)) / 2)


def mark_processed(submission: VideoSubmission, *, status: str, transcript: Optional[str] = None, evaluation_blob: Optional[str] = None, score: Optional[float] = None) -> None:
	submission.status = status
	if transcript is not None:
		submission.transcript = transcript
	if evaluation_blob is not None:
		submission.evaluation = evaluation_blob
	submission.ai_score = score
	submission.processed_at = datetime.utcnow()
