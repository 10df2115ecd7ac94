import os

import pytest

from mentorhub.core.config import settings
from mentorhub.services.llm_service import llm_service
from mentorhub.services.resume_service import resume_service
from mentorhub.storage.local_storage import storage


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "upload_dir", tmp_path / "uploads")


def upload(client, headers, filename="cv.txt", content=b"Senior engineer with Python experience"):
    return client.post("/api/resumes/upload", files={"resume": (filename, content)}, headers=headers)


def test_upload_text_resume(client, auth_headers):
    response = upload(client, auth_headers)

    assert response.status_code == 201
    resume = response.json()["resume"]
    assert resume["fileName"] == "cv.txt"
    assert resume["fileType"] == "text/plain"
    assert resume["content"] == "Senior engineer with Python experience"
    assert resume["version"] == 1

    latest = client.get("/api/resumes", headers=auth_headers).json()["resume"]
    assert latest["id"] == resume["id"]


def test_no_resume_yet(client, auth_headers):
    assert client.get("/api/resumes", headers=auth_headers).json() == {"resume": None}


def test_upload_rejects_unsupported_and_empty_files(client, auth_headers):
    wrong_type = upload(client, auth_headers, filename="cv.exe")
    empty = upload(client, auth_headers, content=b"")

    assert wrong_type.status_code == 400
    assert "Invalid file type" in wrong_type.json()["error"]
    assert empty.json() == {"error": "Uploaded file is empty"}


def test_upload_rejects_large_files(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "MAX_RESUME_SIZE", 10)

    response = upload(client, auth_headers, content=b"x" * 11)

    assert response.status_code == 400
    assert response.json()["error"].startswith("File size too large")


def test_update_bumps_version(client, auth_headers):
    resume_id = upload(client, auth_headers).json()["resume"]["id"]

    response = client.put(f"/api/resumes/{resume_id}", json={"content": "Edited"}, headers=auth_headers)

    assert response.json()["resume"]["content"] == "Edited"
    assert response.json()["resume"]["version"] == 2


def test_download_falls_back_to_text(client, auth_headers):
    resume = upload(client, auth_headers).json()["resume"]

    original = client.get(f"/api/resumes/{resume['id']}/download", headers=auth_headers)
    assert original.content == b"Senior engineer with Python experience"

    for root, _, files in os.walk(storage.upload_dir):
        for name in files:
            os.remove(os.path.join(root, name))

    fallback = client.get(f"/api/resumes/{resume['id']}/download", headers=auth_headers)
    assert fallback.status_code == 200
    assert fallback.headers["content-type"].startswith("text/plain")
    assert fallback.text == "Senior engineer with Python experience"


def test_feedback_is_saved_on_resume(client, auth_headers, monkeypatch):
    monkeypatch.setattr(llm_service, "complete", lambda messages, **kwargs: "Quantify impact")
    resume_id = upload(client, auth_headers).json()["resume"]["id"]

    response = client.post("/api/resumes/feedback", json={"resumeId": resume_id}, headers=auth_headers)

    assert response.json() == {"feedback": "Quantify impact"}
    latest = client.get("/api/resumes", headers=auth_headers).json()["resume"]
    assert latest["aiFeedback"] == "Quantify impact"


def test_feedback_requires_content(client, auth_headers):
    response = client.post("/api/resumes/feedback", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Resume content is required"}


def test_extract_text_notes_unreadable_files():
    assert resume_service.extract_text(b"\xd0\xcf", ".doc", "old.doc").startswith("[File uploaded: old.doc")
    assert "Error extracting text" in resume_service.extract_text(b"not a pdf", ".pdf", "cv.pdf")
