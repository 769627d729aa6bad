from __future__ import annotations
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import emails, funnel
from ..db import get_db
from ..gemini_client import GeminiClient, get_llm_client
from ..mailer import Mailer, get_mailer
from ..models import Answer, Question, Quiz, Student
from ..pipeline.cohort import select_cohort
from ..pipeline.dispatch import dispatch
from ..pipeline.scoring import round_one_decimal
from ..settings import settings
from .auth import Admin, get_current_admin

router = APIRouter(prefix="/quizzes", tags=["quizzes"])

logger = logging.getLogger(__name__)

PASS_MARK = 70.0


class QuizGenerationError(RuntimeError):
	pass


class QuizCreate(BaseModel):
	name: str = Field(min_length=1, max_length=256)
	description: Optional[str] = None
	difficulty: str = "medium"
	topics: List[str] = Field(default_factory=list)
	type: str = "multiple-choice"
	num_questions: int = Field(default=10, ge=1, le=100)
	time_per_question: int = Field(default=30, ge=5, le=600)


class GenerateRequest(BaseModel):
	quiz_id: int
	num_questions: Optional[int] = Field(default=None, ge=1, le=100)
	difficulty: Optional[str] = None
	topics: Optional[List[str]] = None
	time_per_question: Optional[int] = None
	type: Optional[str] = None


class ActivateRequest(BaseModel):
	quiz_id: int
	is_active: bool


class InvitationRequest(BaseModel):
	quiz_id: int


class AnswerIn(BaseModel):
	question_id: int
	answer_text: str


class SubmitAnswersRequest(BaseModel):
	student_id: int
	answers: List[AnswerIn]


class ScoreAndNotifyRequest(BaseModel):
	quiz_id: int
	# Absolute top-N wins over the percentage policy when given
	top_n: Optional[int] = Field(default=None, ge=1)
	top_percent: Optional[float] = Field(default=None, gt=0, le=100)
	minimum: Optional[int] = Field(default=None, ge=0)
	maximum: Optional[int] = Field(default=None, ge=1)
	video_topic: Optional[str] = None


def _quiz_or_404(db: Session, quiz_id: int) -> Quiz:
	quiz = db.get(Quiz, quiz_id)
	if quiz is None:
		raise HTTPException(status_code=404, detail=f"Quiz {quiz_id} not found")
	return quiz


def _quiz_dict(quiz: Quiz, *, with_questions: bool = False, with_answers: bool = True) -> Dict[str, Any]:
	data: Dict[str, Any] = {
		"id": quiz.id,
		"name": quiz.name,
		"description": quiz.description,
		"difficulty": quiz.difficulty,
		"topics": quiz.topics or [],
		"type": quiz.type,
		"num_questions": quiz.num_questions,
		"time_per_question": quiz.time_per_question,
		"is_active": quiz.is_active,
		"video_topic": quiz.video_topic,
		"created_at": quiz.created_at.isoformat() if quiz.created_at else None,
	}
	if with_questions:
		questions = []
		for q in quiz.questions:
			item = {"id": q.id, "question_text": q.question_text, "options": q.options or [], "question_type": q.question_type, "points": q.points}
			if with_answers:
				item["correct_answer"] = q.correct_answer
			questions.append(item)
		data["questions"] = questions
	return data


# ---- Question generation ----

def _build_generation_prompt(num_questions: int, difficulty: str, topics: List[str], time_per_question: int, quiz_type: str) -> str:
	true_false = quiz_type.replace("_", "-").lower() in ("true-false", "truefalse", "true/false")
	options_hint = '"True", "False"' if true_false else '"option1", "option2", "option3", "option4"'
	answer_hint = '"True" or "False"' if true_false else 'the index of the correct option as a string, e.g. "0"'
	kind = "true/false" if true_false else "multiple-choice"
	return (
		f"Generate a quiz with {num_questions} {kind} questions about {', '.join(topics) or 'artificial intelligence'}.\n"
		f"Difficulty level: {difficulty}\n"
		f"Time per question: {time_per_question} seconds (questions must be answerable in that time).\n\n"
		"IMPORTANT: Return ONLY a valid JSON array of question objects, with no additional text or explanation.\n\n"
		"Each question object must have this exact structure:\n"
		"{\n"
		"  \"question_text\": \"The question text\",\n"
		f"  \"options\": [{options_hint}],\n"
		f"  \"correct_answer\": {answer_hint}\n"
		"}\n\n"
		f"Generate exactly {num_questions} questions in this format as a JSON array."
	)


def _extract_json_array(text: str) -> List[Any]:
	try:
		data = json.loads(text)
		if isinstance(data, list):
			return data
		if isinstance(data, dict) and isinstance(data.get("questions"), list):
			return data["questions"]
	except ValueError:
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, list):
				return data
		except ValueError:
			pass
	match = re.search(r"\[[\s\S]*\]", text)
	if match:
		try:
			data = json.loads(match.group(0))
			if isinstance(data, list):
				return data
		except ValueError:
			pass
	raise QuizGenerationError("Could not parse questions from LLM response")


def normalise_question(raw: Any) -> Optional[Dict[str, Any]]:
	"""Return a clean question dict, or None when the item is unusable.

	Index-style answers ("0".."3") are resolved to the option text so that
	answer checking can compare texts.
	"""
	if not isinstance(raw, dict):
		return None
	text = raw.get("question_text") or raw.get("question")
	options = raw.get("options")
	answer = raw.get("correct_answer")
	if not isinstance(text, str) or not text.strip():
		return None
	if not isinstance(options, list) or len(options) < 2:
		return None
	options = [str(o).strip() for o in options]
	if isinstance(answer, bool):
		answer = "True" if answer else "False"
	if isinstance(answer, int) or (isinstance(answer, str) and answer.strip().isdigit()):
		idx = int(answer)
		if 0 <= idx < len(options):
			answer = options[idx]
	if not isinstance(answer, str):
		return None
	match = next((o for o in options if o.lower() == answer.strip().lower()), None)
	if match is None:
		return None
	question_type = "TRUE_FALSE" if {o.lower() for o in options} == {"true", "false"} else "MCQ"
	return {"question_text": text.strip(), "options": options, "correct_answer": match, "question_type": question_type}


async def generate_questions(client: GeminiClient, *, num_questions: int, difficulty: str, topics: List[str], time_per_question: int, quiz_type: str) -> List[Dict[str, Any]]:
	prompt = _build_generation_prompt(num_questions, difficulty, topics, time_per_question, quiz_type)
	raw = await client.generate(prompt)
	items = _extract_json_array(raw)
	questions = [q for q in (normalise_question(item) for item in items) if q is not None]
	dropped = len(items) - len(questions)
	if dropped:
		logger.warning("Dropped %d malformed generated question(s)", dropped)
	if not questions:
		raise QuizGenerationError("LLM returned no usable questions")
	return questions[:num_questions]


# ---- Admin endpoints ----

@router.post("", status_code=201)
async def create_quiz(req: QuizCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	quiz = Quiz(
		name=req.name.strip(),
		description=req.description,
		difficulty=req.difficulty.lower(),
		topics=[t.strip() for t in req.topics if t.strip()],
		type=req.type,
		num_questions=req.num_questions,
		time_per_question=req.time_per_question,
	)
	db.add(quiz)
	db.commit()
	db.refresh(quiz)
	return _quiz_dict(quiz)


@router.get("")
async def list_quizzes(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return [_quiz_dict(q) for q in db.query(Quiz).order_by(Quiz.id.desc()).all()]


@router.get("/{quiz_id}")
async def get_quiz(quiz_id: int, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return _quiz_dict(_quiz_or_404(db, quiz_id), with_questions=True)


@router.delete("/{quiz_id}")
async def delete_quiz(quiz_id: int, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	db.delete(_quiz_or_404(db, quiz_id))
	db.commit()
	return {"ok": True}


@router.post("/generate")
async def generate_quiz(
	req: GenerateRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	client: GeminiClient = Depends(get_llm_client),
):
	quiz = _quiz_or_404(db, req.quiz_id)
	num_questions = req.num_questions or quiz.num_questions or 10
	try:
		questions = await generate_questions(
			client,
			num_questions=num_questions,
			difficulty=req.difficulty or quiz.difficulty,
			topics=req.topics if req.topics is not None else (quiz.topics or []),
			time_per_question=req.time_per_question or quiz.time_per_question,
			quiz_type=req.type or quiz.type,
		)
	except QuizGenerationError as e:
		raise HTTPException(status_code=502, detail=str(e))
	for q in questions:
		db.add(Question(quiz_id=quiz.id, difficulty=(req.difficulty or quiz.difficulty).upper(), **q))
	if not quiz.num_questions:
		quiz.num_questions = len(questions)
	db.commit()
	logger.info("Generated %d question(s) for quiz %s", len(questions), quiz.id)
	return {"success": True, "quiz_id": quiz.id, "questions_generated": len(questions)}


@router.post("/activate")
async def activate_quiz(req: ActivateRequest, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	quiz = _quiz_or_404(db, req.quiz_id)
	quiz.is_active = req.is_active
	db.commit()
	return {"success": True, "is_active": quiz.is_active}


@router.post("/send-invitations")
async def send_invitations(
	req: InvitationRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	mailer: Mailer = Depends(get_mailer),
):
	quiz = _quiz_or_404(db, req.quiz_id)
	students = db.query(Student).order_by(Student.id).all()
	summary = await dispatch(
		students,
		lambda s: emails.quiz_invitation(
			to=s.email,
			student_name=s.name,
			quiz_id=quiz.id,
			student_id=s.id,
			quiz_name=quiz.name,
			time_per_question=quiz.time_per_question,
		),
		mailer.send,
		concurrency=settings.email_concurrency,
	)
	return {
		"success": True,
		"emails_sent": summary.sent_count,
		"emails_failed": summary.failed_count,
		"total_students": summary.total_count,
	}


@router.get("/{quiz_id}/results")
async def quiz_results(quiz_id: int, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	quiz = _quiz_or_404(db, quiz_id)
	scores = funnel.quiz_scores(db, quiz)
	total = funnel.declared_question_count(db, quiz)
	rows = [
		{
			"student": {"id": s.student.id, "name": s.student.name, "email": s.student.email},
			"score": s.tally.correct_count,
			"answered": s.tally.answered_count,
			"total_questions": total,
			"percentage": s.entity.percentage,
			"completed_at": s.tally.last_answered_at.isoformat() if s.tally.last_answered_at else None,
		}
		for s in sorted(scores, key=lambda s: -s.entity.percentage)
	]
	percentages = [r["percentage"] for r in rows]
	stats = {
		"total_results": len(rows),
		"average_score": round_one_decimal(sum(percentages) / len(percentages)) if percentages else 0.0,
		"pass_rate": round_one_decimal(100.0 * sum(1 for p in percentages if p >= PASS_MARK) / len(percentages)) if percentages else 0.0,
		"top_score": max(percentages) if percentages else 0.0,
	}
	return {"quiz": _quiz_dict(quiz), "results": rows, "stats": stats}


@router.post("/score-and-notify")
async def score_and_notify(
	req: ScoreAndNotifyRequest,
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
	mailer: Mailer = Depends(get_mailer),
):
	quiz = _quiz_or_404(db, req.quiz_id)
	try:
		policy = funnel.quiz_stage_policy(req.top_n, req.top_percent, req.minimum, req.maximum)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	scores = funnel.quiz_scores(db, quiz)
	cohort = select_cohort([s.entity for s in scores], policy)
	# The invitation topic is stored so the video round is judged against the same one
	topic = (req.video_topic or "").strip() or quiz.video_topic or settings.video_topic
	quiz.video_topic = topic
	db.commit()
	logger.info("Quiz %s: %d scored, %d selected for the video round", quiz.id, len(scores), len(cohort))
	summary = await dispatch(
		cohort,
		lambda e: emails.video_invitation(
			to=e.payload.email,
			student_name=e.payload.name,
			student_id=e.payload.id,
			quiz_id=quiz.id,
			percentage=e.percentage,
			topic=topic,
		),
		mailer.send,
		concurrency=settings.email_concurrency,
	)
	return {
		"success": True,
		"scored": len(scores),
		"selected": [
			{"student_id": e.identity, "name": e.payload.name, "email": e.payload.email, "percentage": e.percentage}
			for e in cohort
		],
		"notifications": summary.to_dict(),
	}


# ---- Student-facing endpoints ----

@router.get("/{quiz_id}/take")
async def take_quiz(quiz_id: int, student: int = Query(...), db: Session = Depends(get_db)):
	quiz = _quiz_or_404(db, quiz_id)
	if not quiz.is_active:
		raise HTTPException(status_code=403, detail="Quiz is not active")
	if db.get(Student, student) is None:
		raise HTTPException(status_code=404, detail="Student not found")
	return _quiz_dict(quiz, with_questions=True, with_answers=False)


@router.post("/{quiz_id}/answers")
async def submit_answers(quiz_id: int, req: SubmitAnswersRequest, db: Session = Depends(get_db)):
	quiz = _quiz_or_404(db, quiz_id)
	if not quiz.is_active:
		raise HTTPException(status_code=403, detail="Quiz is not active")
	if db.get(Student, req.student_id) is None:
		raise HTTPException(status_code=404, detail="Student not found")
	questions = {q.id: q for q in quiz.questions}
	unknown = [a.question_id for a in req.answers if a.question_id not in questions]
	if unknown:
		raise HTTPException(status_code=400, detail=f"Questions not in quiz {quiz_id}: {unknown}")
	existing = {
		a.question_id: a
		for a in db.query(Answer).filter(Answer.student_id == req.student_id, Answer.question_id.in_(list(questions))).all()
	}
	now = datetime.utcnow()
	correct = 0
	# Upsert in one transaction: a resubmitted question replaces the earlier answer
	for item in req.answers:
		question = questions[item.question_id]
		is_correct = item.answer_text.strip().lower() == (question.correct_answer or "").strip().lower()
		row = existing.get(item.question_id)
		if row is None:
			row = Answer(student_id=req.student_id, question_id=item.question_id)
			db.add(row)
			existing[item.question_id] = row
		row.answer_text = item.answer_text
		row.is_correct = is_correct
		row.answered_at = now
		correct += 1 if is_correct else 0
	db.commit()
	return {"message": "Answers saved", "saved": len(req.answers), "correct": correct}
