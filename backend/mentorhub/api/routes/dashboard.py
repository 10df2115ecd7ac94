from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.core.database import get_db
from mentorhub.models.chat_message import ChatMessage
from mentorhub.models.practice_session import PracticeSession
from mentorhub.models.project import Project
from mentorhub.models.skill import MASTERY_LEVEL, Skill

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

# Rough effort estimate: half an hour per percent of project progress
HOURS_PER_PROGRESS_POINT = 0.5


def format_last_updated(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Render a timestamp as "5m ago", "3h ago" or "2d ago" """
    if value is None:
        return "never"
    now = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; treat them as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    diff_minutes = max(int((now - value).total_seconds() // 60), 0)
    if diff_minutes < 60:
        return f"{diff_minutes}m ago"
    if diff_minutes < 60 * 24:
        return f"{diff_minutes // 60}h ago"
    return f"{diff_minutes // (60 * 24)}d ago"


@router.get("/stats")
def get_stats(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    active_projects = db.query(func.count(Project.id)).filter(
        Project.user_id == user_id,
        Project.status == "in-progress"
    ).scalar()
    skills_mastered = db.query(func.count(Skill.id)).filter(
        Skill.user_id == user_id,
        Skill.level >= MASTERY_LEVEL
    ).scalar()
    practice_sessions = db.query(func.count(PracticeSession.id)).filter(
        PracticeSession.user_id == user_id
    ).scalar()
    total_progress = db.query(func.coalesce(func.sum(Project.progress), 0)).filter(
        Project.user_id == user_id
    ).scalar()

    return {
        "activeProjects": active_projects or 0,
        "skillsMastered": skills_mastered or 0,
        "practiceSessions": practice_sessions or 0,
        "hoursInvested": round(float(total_progress or 0) * HOURS_PER_PROGRESS_POINT),
    }


@router.get("/recent-projects")
def get_recent_projects(
    limit: int = Query(3, ge=1, le=50),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    projects = (
        db.query(Project)
        .filter(Project.user_id == user_id)
        .order_by(Project.updated_at.desc(), Project.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "projects": [
            {
                "id": project.id,
                "name": project.name,
                "progress": project.progress,
                "status": project.status,
                "lastUpdated": format_last_updated(project.updated_at),
            }
            for project in projects
        ]
    }


@router.get("/notifications")
def get_notifications(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Latest mentor replies, truncated for the notification list"""
    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id, ChatMessage.role == "mentor")
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(5)
        .all()
    )
    notifications = []
    for index, message in enumerate(messages, start=1):
        text = message.content
        if len(text) > 100:
            text = text[:100] + "..."
        notifications.append({
            "id": index,
            "type": "mentor",
            "message": text,
            "time": format_last_updated(message.created_at),
        })
    return {"notifications": notifications}


@router.get("/skill-gaps")
def get_skill_gaps(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Five weakest skills below the mastery level"""
    skills = (
        db.query(Skill)
        .filter(Skill.user_id == user_id, Skill.level < MASTERY_LEVEL)
        .order_by(Skill.level.asc())
        .limit(5)
        .all()
    )
    return {"skillGaps": [{"skill": skill.name, "level": skill.level} for skill in skills]}
