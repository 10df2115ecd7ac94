import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.api.schemas import CamelModel
from mentorhub.core.database import get_db
from mentorhub.models.resume import Resume
from mentorhub.services.llm_service import llm_service
from mentorhub.services.resume_service import resume_service
from mentorhub.storage.local_storage import storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resumes", tags=["resumes"])

RESUME_NOT_FOUND_MESSAGE = "Resume not found"

REVIEWER_SYSTEM_PROMPT = (
    "You are a resume reviewer for technical roles. Give structured, actionable "
    "feedback on achievements, measurable impact, wording, ATS keywords and layout."
)


class ResumeResponse(CamelModel):
    id: int
    file_name: Optional[str]
    file_type: Optional[str]
    file_size: Optional[int]
    content: Optional[str]
    ai_feedback: Optional[str]
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ResumeEnvelope(CamelModel):
    resume: Optional[ResumeResponse]


class ResumeContentUpdate(CamelModel):
    content: str


class FeedbackRequest(CamelModel):
    resume_id: Optional[int] = None
    content: Optional[str] = None


def _get_owned_resume(db: Session, resume_id: int, user_id: int) -> Resume:
    resume = db.query(Resume).filter(
        Resume.id == resume_id,
        Resume.user_id == user_id
    ).first()
    if not resume:
        raise HTTPException(status_code=404, detail=RESUME_NOT_FOUND_MESSAGE)
    return resume


@router.get("", response_model=ResumeEnvelope)
def get_latest_resume(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Most recently updated resume, or null"""
    resume = (
        db.query(Resume)
        .filter(Resume.user_id == user_id)
        .order_by(Resume.updated_at.desc(), Resume.id.desc())
        .first()
    )
    return {"resume": resume}


@router.post("/upload", response_model=ResumeEnvelope, status_code=201)
def upload_resume(
    resume: UploadFile = File(...),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Store an uploaded resume file and its extracted text"""
    content, file_ext, mime_type = resume_service.read_upload(resume)
    file_path, _ = storage.save_file(user_id, resume.filename, content)
    text = resume_service.extract_text(content, file_ext, resume.filename)

    db_resume = Resume(
        user_id=user_id,
        file_name=resume.filename,
        file_path=file_path,
        file_type=mime_type,
        file_size=len(content),
        content=text,
    )
    db.add(db_resume)
    db.commit()
    db.refresh(db_resume)
    logger.info("Stored resume %s for user %s", db_resume.id, user_id)
    return {"resume": db_resume}


@router.put("/{resume_id}", response_model=ResumeEnvelope)
def update_resume(
    resume_id: int,
    update: ResumeContentUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Replace the resume text; every edit bumps the version"""
    resume = _get_owned_resume(db, resume_id, user_id)
    resume.content = update.content
    resume.version = (resume.version or 0) + 1
    db.commit()
    db.refresh(resume)
    return {"resume": resume}


@router.post("/feedback")
def get_feedback(
    request: FeedbackRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Review resume text; saved on the resume when resumeId is given"""
    resume = None
    if request.resume_id is not None:
        resume = _get_owned_resume(db, request.resume_id, user_id)

    content = request.content or (resume.content if resume else None)
    if not content:
        raise HTTPException(status_code=400, detail="Resume content is required")

    feedback = llm_service.complete(
        [
            {"role": "system", "content": REVIEWER_SYSTEM_PROMPT},
            {"role": "user", "content": f"Review this resume:\n\n{content}"},
        ],
        max_tokens=2000,
    )

    if resume is not None:
        resume.ai_feedback = feedback
        db.commit()

    return {"feedback": feedback}


@router.get("/{resume_id}/download")
def download_resume(
    resume_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Serve the original file, or the stored text when the file is gone"""
    resume = _get_owned_resume(db, resume_id, user_id)

    # Function hosts wipe /tmp between invocations, so the file may be missing
    if storage.file_exists(resume.file_path):
        return FileResponse(resume.file_path, filename=resume.file_name or "resume")

    filename = resume.file_name or "resume.txt"
    return Response(
        content=resume.content or "Resume content not available",
        media_type="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
