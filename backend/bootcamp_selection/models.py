from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


class AdminUser(Base):
	__tablename__ = "admin_users"
	# Primary key is the login email
	email = Column(String(256), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AdminSession(Base):
	__tablename__ = "admin_sessions"
	# JWT "jti" claim; a token is only honoured while its row exists and is not revoked
	session_id = Column(String(64), primary_key=True)
	email = Column(String(256), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	revoked_at = Column(DateTime, nullable=True)


class Student(Base):
	__tablename__ = "students"
	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(256), nullable=False)
	email = Column(String(256), nullable=False, unique=True, index=True)
	extra_info = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	difficulty = Column(String(32), default="medium", nullable=False)
	topics = Column(JSON, default=list, nullable=False)
	type = Column(String(32), default="multiple-choice", nullable=False)
	# Declared question count; scores are computed against this, not against rows answered
	num_questions = Column(Integer, nullable=True)
	time_per_question = Column(Integer, default=30, nullable=False)
	# Topic sent with the video-round invitation; videos for this quiz are judged against it
	video_topic = Column(Text, nullable=True)
	is_active = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	questions = relationship("Question", back_populates="quiz", cascade="all, delete-orphan", order_by="Question.id")


class Question(Base):
	__tablename__ = "questions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
	question_text = Column(Text, nullable=False)
	options = Column(JSON, default=list, nullable=False)
	correct_answer = Column(Text, nullable=False)
	question_type = Column(String(32), default="MCQ", nullable=False)
	difficulty = Column(String(32), default="MEDIUM", nullable=False)
	points = Column(Integer, default=1, nullable=False)

	quiz = relationship("Quiz", back_populates="questions")


class Answer(Base):
	__tablename__ = "answers"
	# One row per (student, question); resubmission overwrites in place
	__table_args__ = (UniqueConstraint("student_id", "question_id", name="uq_answer_student_question"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
	question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
	answer_text = Column(Text, nullable=False, default="")
	is_correct = Column(Boolean, default=False, nullable=False)
	answered_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VideoSubmission(Base):
	__tablename__ = "video_submissions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
	quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="SET NULL"), nullable=True)
	title = Column(String(256), nullable=True)
	youtube_link = Column(Text, nullable=False)
	# PENDING -> PROCESSING -> COMPLETED | FAILED
	status = Column(String(16), default="PENDING", nullable=False)
	transcript = Column(Text, nullable=True)
	evaluation = Column(Text, nullable=True)  # JSON string snapshot of the evaluation
	ai_score = Column(Float, nullable=True)
	ranking = Column(Integer, nullable=True)
	submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	processed_at = Column(DateTime, nullable=True)
	notified_at = Column(DateTime, nullable=True)

	student = relationship("Student")
