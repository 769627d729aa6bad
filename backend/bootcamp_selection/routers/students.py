from __future__ import annotations
import io
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Student
from .auth import Admin, get_current_admin

router = APIRouter(prefix="/students", tags=["students"])

logger = logging.getLogger(__name__)


class StudentOut(BaseModel):
	id: int
	name: str
	email: str
	extra_info: Optional[str] = None


def _read_roster(filename: str, content: bytes) -> pd.DataFrame:
	name = (filename or "").lower()
	buffer = io.BytesIO(content)
	if name.endswith(".csv"):
		return pd.read_csv(buffer, dtype=str, keep_default_na=False)
	if name.endswith((".xlsx", ".xls")):
		return pd.read_excel(buffer, dtype=str, keep_default_na=False)
	raise HTTPException(status_code=400, detail="Unsupported file type. Upload .xlsx, .xls or .csv")


def parse_roster(frame: pd.DataFrame) -> List[Dict[str, Any]]:
	"""Validate roster rows; the header row is row 1, so data starts at row 2."""
	frame = frame.rename(columns=lambda c: str(c).strip().lower())
	missing = [c for c in ("name", "email") if c not in frame.columns]
	if missing:
		raise HTTPException(status_code=400, detail=f"Missing column(s): {', '.join(missing)}")
	rows: List[Dict[str, Any]] = []
	for offset, record in enumerate(frame.to_dict(orient="records")):
		row_number = offset + 2
		name = str(record.get("name") or "").strip()
		email = str(record.get("email") or "").strip().lower()
		if not name:
			raise HTTPException(status_code=400, detail=f"Student name cannot be empty (row {row_number}). Please check your file.")
		if not email:
			raise HTTPException(status_code=400, detail=f"Student email cannot be empty (row {row_number}). Please check your file.")
		extra = str(record.get("extra_info") or "").strip() or None
		rows.append({"name": name, "email": email, "extra_info": extra})
	return rows


@router.post("/upload")
async def upload_students(
	file: UploadFile = File(...),
	admin: Admin = Depends(get_current_admin),
	db: Session = Depends(get_db),
):
	content = await file.read()
	if not content:
		raise HTTPException(status_code=400, detail="No file uploaded.")
	try:
		frame = _read_roster(file.filename or "", content)
	except HTTPException:
		raise
	except Exception as e:
		raise HTTPException(status_code=400, detail=f"Failed to read roster: {e}")
	rows = parse_roster(frame)

	existing = {email for (email,) in db.query(Student.email).all()}
	created = 0
	skipped = 0
	for row in rows:
		if row["email"] in existing:
			skipped += 1
			continue
		db.add(Student(**row))
		existing.add(row["email"])
		created += 1
	db.commit()
	logger.info("Roster upload by %s: %d created, %d duplicates skipped", admin.email, created, skipped)
	return {"message": "Students uploaded successfully", "count": created, "skipped": skipped}


@router.get("", response_model=List[StudentOut])
async def list_students(admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	return [
		StudentOut(id=s.id, name=s.name, email=s.email, extra_info=s.extra_info)
		for s in db.query(Student).order_by(Student.id).all()
	]


@router.delete("/{student_id}")
async def delete_student(student_id: int, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	row = db.get(Student, student_id)
	if row is None:
		raise HTTPException(status_code=404, detail="Student not found")
	db.delete(row)
	db.commit()
	return {"ok": True}
