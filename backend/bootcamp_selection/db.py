from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./app.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
# In-memory SQLite lives inside one connection; share it across sessions
_pool_args = {"poolclass": StaticPool} if DATABASE_URL in ("sqlite://", "sqlite:///:memory:") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True, **_pool_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema() -> None:
	try:
		inspector = inspect(engine)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	if "video_submissions" in tables:
		cols = {c["name"] for c in inspector.get_columns("video_submissions")}
		with engine.begin() as conn:
			if "quiz_id" not in cols:
				conn.exec_driver_sql("ALTER TABLE video_submissions ADD COLUMN quiz_id INTEGER")
			if "ranking" not in cols:
				conn.exec_driver_sql("ALTER TABLE video_submissions ADD COLUMN ranking INTEGER")
			if "notified_at" not in cols:
				conn.exec_driver_sql("ALTER TABLE video_submissions ADD COLUMN notified_at DATETIME")
	if "quizzes" in tables:
		cols = {c["name"] for c in inspector.get_columns("quizzes")}
		if "video_topic" not in cols:
			with engine.begin() as conn:
				conn.exec_driver_sql("ALTER TABLE quizzes ADD COLUMN video_topic TEXT")
	if "admin_sessions" in tables:
		cols = {c["name"] for c in inspector.get_columns("admin_sessions")}
		if "revoked_at" not in cols:
			with engine.begin() as conn:
				conn.exec_driver_sql("ALTER TABLE admin_sessions ADD COLUMN revoked_at DATETIME")
