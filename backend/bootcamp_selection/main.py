from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .db import Base, engine, ensure_schema, SessionLocal
from .settings import settings
from .routers import auth
from .routers import students
from .routers import quizzes
from .routers import videos
from .routers import winners

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def init_db() -> None:
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed")
	db = SessionLocal()
	try:
		auth.ensure_seed_admin(db)
	finally:
		db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
	init_db()
	yield


app = FastAPI(title="AISB Selection API", lifespan=lifespan)
app.include_router(auth.router)
app.include_router(students.router)
app.include_router(quizzes.router)
app.include_router(videos.router)
app.include_router(winners.router)


# Every failure leaves the API as {"error": message}
@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
	return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
	messages = [f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()]
	return JSONResponse(status_code=422, content={"error": "; ".join(messages) or "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
	logger.exception("Unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"transcripts_configured": bool(settings.transcript_api_url),
		"email_provider": settings.email_provider,
	}
