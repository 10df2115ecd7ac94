import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.api.schemas import CamelModel
from mentorhub.core.database import classify_database_error, get_db
from mentorhub.models.practice_session import PracticeSession
from mentorhub.models.project import Project
from mentorhub.services.llm_service import llm_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/practice", tags=["practice"])

# A response may proceed with a score of at least 60 and two criteria met
PASSING_SCORE = 60
MIN_CRITERIA_MET = 2

INTERVIEWER_SYSTEM_PROMPT = (
    "You are a technical interviewer. Evaluate the candidate's answer and reply "
    "with a JSON object with keys: score, clarity, depth (0-100), feedback, "
    "redFlags, hireReadiness, strengths, improvements, acceptanceCriteria "
    "(list of {criterion, met, reason}) and canProceed."
)


class AnalyzeResponseRequest(CamelModel):
    question: str
    question_category: str
    user_response: str
    project_name: Optional[str] = None
    project_id: Optional[int] = None

    @field_validator("user_response")
    @classmethod
    def response_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("User response is required")
        return value


class PracticeSessionResponse(CamelModel):
    id: int
    project_id: Optional[int]
    score: Optional[int]
    questions_answered: int
    created_at: Optional[datetime]


class PracticeSessionList(CamelModel):
    sessions: List[PracticeSessionResponse]


def _finite_score(value: Any) -> Optional[float]:
    # json.loads accepts NaN and Infinity; bools are ints
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def normalize_analysis(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce the model's analysis into the shape the frontend expects.

    acceptanceCriteria is always a list of {criterion, met, reason}; when
    canProceed is missing it is derived from the score and criteria met.
    A score that is not a finite number becomes null.
    """
    criteria = analysis.get("acceptanceCriteria")
    if not isinstance(criteria, list):
        criteria = []

    normalized = []
    for item in criteria:
        if not isinstance(item, dict):
            continue
        met = item.get("met") is True
        normalized.append({
            "criterion": item.get("criterion") or item.get("criteria") or "Unknown criterion",
            "met": met,
            "reason": item.get("reason") or item.get("explanation") or (
                "Criterion met" if met else "Criterion not met"
            ),
        })
    analysis["acceptanceCriteria"] = normalized

    score = _finite_score(analysis.get("score"))
    if "score" in analysis:
        analysis["score"] = score

    if not isinstance(analysis.get("canProceed"), bool):
        met_count = sum(1 for c in normalized if c["met"])
        analysis["canProceed"] = (
            score is not None
            and score >= PASSING_SCORE
            and met_count >= MIN_CRITERIA_MET
        )
    return analysis


@router.post("/analyze-response")
def analyze_response(
    request: AnalyzeResponseRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Score an interview answer and record it as a practice session"""
    if request.project_id is not None:
        owned = db.query(Project.id).filter(
            Project.id == request.project_id,
            Project.user_id == user_id
        ).first()
        if not owned:
            raise HTTPException(status_code=404, detail="Project not found")

    prompt = (
        f"Project: {request.project_name or 'Technical Project'}\n"
        f"Question category: {request.question_category}\n"
        f"Question: {request.question}\n"
        f"Candidate response: {request.user_response}"
    )
    analysis = llm_service.complete_json(
        [
            {"role": "system", "content": INTERVIEWER_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        max_tokens=2000,
    )
    analysis = normalize_analysis(analysis)

    score = analysis.get("score")
    session = PracticeSession(
        user_id=user_id,
        project_id=request.project_id,
        score=int(score) if score is not None else 0,
        questions_answered=1,
    )
    db.add(session)
    try:
        db.commit()
    except SQLAlchemyError:
        # The analysis is still useful to the user; losing the history row is logged
        db.rollback()
        logger.exception("Failed to save practice session for user %s", user_id)

    return analysis


@router.get("/sessions", response_model=PracticeSessionList)
def list_sessions(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        sessions = (
            db.query(PracticeSession)
            .filter(PracticeSession.user_id == user_id)
            .order_by(PracticeSession.created_at.desc(), PracticeSession.id.desc())
            .limit(50)
            .all()
        )
    except SQLAlchemyError as exc:
        raise classify_database_error(exc, "Fetching practice sessions")
    return {"sessions": sessions}
