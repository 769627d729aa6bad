import io

import pandas as pd

from bootcamp_selection.models import Student
from bootcamp_selection.routers import students

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _upload(client, content: bytes, filename: str = "roster.csv"):
	return client.post("/students/upload", files={"file": (filename, content, "text/csv")})


def test_upload_creates_students_and_skips_duplicates(client, db) -> None:
	db.add(Student(name="Existing", email="dup@example.com"))
	db.commit()
	roster = b"Name,Email,extra_info\nAda Lovelace,ADA@example.com,cohort A\nAlan Turing,alan@example.com,\nDup,dup@example.com,\n"

	r = _upload(client, roster)

	assert r.status_code == 200
	assert r.json() == {"message": "Students uploaded successfully", "count": 2, "skipped": 1}
	listed = client.get("/students").json()
	assert [s["email"] for s in listed] == ["dup@example.com", "ada@example.com", "alan@example.com"]
	assert listed[1]["extra_info"] == "cohort A"
	assert listed[2]["extra_info"] is None


def test_empty_email_names_the_row(client) -> None:
	r = _upload(client, b"name,email\nAda,ada@example.com\nNo Mail,\n")
	assert r.status_code == 400
	assert "row 3" in r.json()["error"]
	assert client.get("/students").json() == []


def test_missing_column_is_rejected(client) -> None:
	r = _upload(client, b"name,phone\nAda,123\n")
	assert r.status_code == 400
	assert "email" in r.json()["error"]


def test_unsupported_file_type(client) -> None:
	r = _upload(client, b"whatever", filename="roster.txt")
	assert r.status_code == 400
	assert "Unsupported" in r.json()["error"]


def test_delete_student(client, db) -> None:
	student = Student(name="Gone", email="gone@example.com")
	db.add(student)
	db.commit()
	assert client.delete(f"/students/{student.id}").json() == {"ok": True}
	assert client.delete(f"/students/{student.id}").status_code == 404


def test_upload_xlsx_roster(client) -> None:
	buffer = io.BytesIO()
	pd.DataFrame({"name": ["Grace Hopper"], "email": ["grace@example.com"]}).to_excel(buffer, index=False)

	r = client.post("/students/upload", files={"file": ("roster.xlsx", buffer.getvalue(), XLSX_TYPE)})

	assert r.status_code == 200
	assert r.json()["count"] == 1
	assert [s["email"] for s in client.get("/students").json()] == ["grace@example.com"]


def test_upload_legacy_xls_goes_through_excel_reader(client, monkeypatch) -> None:
	seen = {}

	def fake_read_excel(buffer, **kwargs):
		seen["bytes"] = buffer.read()
		return pd.DataFrame({"name": ["Linus"], "email": ["linus@example.com"]})

	monkeypatch.setattr(students.pd, "read_excel", fake_read_excel)
	r = client.post("/students/upload", files={"file": ("legacy.xls", b"\xd0\xcf\x11\xe0", "application/vnd.ms-excel")})

	assert r.status_code == 200
	assert r.json()["count"] == 1
	assert seen["bytes"] == b"\xd0\xcf\x11\xe0"
