from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AdminUser, AdminSession

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class Admin(BaseModel):
	email: str
	session_id: Optional[str] = None


def _normalise_email(email: str) -> str:
	return (email or "").strip().lower()


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')[:72]
	return pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	password_bytes = plain_password.encode('utf-8')[:72]
	return pwd_context.verify(password_bytes.decode('utf-8', errors='ignore'), hashed_password)


def ensure_seed_admin(db: Session) -> None:
	"""Create or refresh the ADMIN_EMAIL / ADMIN_PASSWORD account."""
	email = _normalise_email(settings.admin_email or "")
	password = settings.admin_password
	if not email or not password:
		return
	row = db.get(AdminUser, email)
	if row is None:
		db.add(AdminUser(email=email, password_hash=hash_password(password)))
		logger.info("Seeded admin account %s", email)
	elif not verify_password(password, row.password_hash):
		row.password_hash = hash_password(password)
		db.add(row)
	db.commit()


def authenticate_admin(db: Session, email: str, password: str) -> Optional[Admin]:
	email = _normalise_email(email)
	row = db.get(AdminUser, email)
	if row and verify_password(password, row.password_hash):
		return Admin(email=email)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=1)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def open_session(db: Session, email: str) -> str:
	session_id = uuid.uuid4().hex
	db.add(AdminSession(session_id=session_id, email=email))
	db.commit()
	return create_access_token({"sub": email, "jti": session_id})


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	admin = authenticate_admin(db, form_data.username, form_data.password)
	if not admin:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	return Token(access_token=open_session(db, admin.email))


def get_current_admin(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Admin:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		email: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if email is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The token is only as good as its server-side session row
	try:
		row = db.get(AdminSession, jti)
		if not row or row.email != email or row.revoked_at is not None:
			raise credentials_exception
		row.last_activity_at = datetime.utcnow()
		db.add(row)
		db.commit()
	except HTTPException:
		raise
	except Exception:
		# On DB errors, fail closed
		logger.exception("Session lookup failed")
		raise credentials_exception
	return Admin(email=email, session_id=jti)


@router.get("/me", response_model=Admin)
async def me(admin: Admin = Depends(get_current_admin)):
	return admin


@router.post("/logout")
async def logout(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = db.get(AdminSession, admin.session_id)
	if row is not None:
		row.revoked_at = datetime.utcnow()
		db.add(row)
		db.commit()
	return {"ok": True}
