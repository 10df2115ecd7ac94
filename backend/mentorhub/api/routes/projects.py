from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.api.schemas import CamelModel
from mentorhub.core.database import get_db
from mentorhub.models.project import Milestone, Project
from mentorhub.models.skill import Skill
from mentorhub.services.llm_service import llm_service

router = APIRouter(prefix="/projects", tags=["projects"])

PROJECT_NOT_FOUND_MESSAGE = "Project not found"

ProjectStatus = Literal["planning", "in-progress", "completed"]


class MilestoneCreate(CamelModel):
    title: str = Field(min_length=1)
    completed: bool = False


class MilestoneUpdate(CamelModel):
    completed: bool


class MilestoneResponse(CamelModel):
    id: int
    title: str
    completed: bool


class ProjectCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    tech_stack: List[str] = Field(default_factory=list)
    status: ProjectStatus = "planning"
    progress: int = Field(0, ge=0, le=100)


class ProjectUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    tech_stack: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


class ProjectResponse(CamelModel):
    id: int
    name: str
    description: Optional[str]
    tech_stack: List[str]
    progress: int
    status: str
    milestones: List[MilestoneResponse]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ProjectList(CamelModel):
    projects: List[ProjectResponse]


def _get_owned_project(db: Session, project_id: int, user_id: int) -> Project:
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.user_id == user_id
    ).first()
    if not project:
        raise HTTPException(status_code=404, detail=PROJECT_NOT_FOUND_MESSAGE)
    return project


@router.get("", response_model=ProjectList)
def list_projects(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List all projects for current user, most recently updated first"""
    projects = (
        db.query(Project)
        .filter(Project.user_id == user_id)
        .order_by(Project.updated_at.desc(), Project.id.desc())
        .all()
    )
    return {"projects": projects}


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return _get_owned_project(db, project_id, user_id)


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    project: ProjectCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a new project"""
    db_project = Project(
        user_id=user_id,
        name=project.name,
        description=project.description,
        tech_stack=project.tech_stack,
        status=project.status,
        progress=project.progress,
    )
    db.add(db_project)
    db.commit()
    db.refresh(db_project)
    return db_project


@router.put("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    project_update: ProjectUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update the fields that were sent; others keep their values"""
    project = _get_owned_project(db, project_id, user_id)

    for field, value in project_update.model_dump(exclude_unset=True).items():
        setattr(project, field, value)

    db.commit()
    db.refresh(project)
    return project


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a project and its milestones"""
    project = _get_owned_project(db, project_id, user_id)
    db.delete(project)
    db.commit()
    return {"message": "Project deleted successfully"}


@router.post("/{project_id}/milestones", response_model=MilestoneResponse, status_code=201)
def add_milestone(
    project_id: int,
    milestone: MilestoneCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    project = _get_owned_project(db, project_id, user_id)
    db_milestone = Milestone(project_id=project.id, title=milestone.title, completed=milestone.completed)
    db.add(db_milestone)
    db.commit()
    db.refresh(db_milestone)
    return db_milestone


@router.put("/{project_id}/milestones/{milestone_id}", response_model=MilestoneResponse)
def update_milestone(
    project_id: int,
    milestone_id: int,
    milestone_update: MilestoneUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Mark a milestone done or not done"""
    project = _get_owned_project(db, project_id, user_id)
    milestone = db.query(Milestone).filter(
        Milestone.id == milestone_id,
        Milestone.project_id == project.id
    ).first()
    if not milestone:
        raise HTTPException(status_code=404, detail="Milestone not found")

    milestone.completed = milestone_update.completed
    db.commit()
    db.refresh(milestone)
    return milestone


@router.get("/{project_id}/recommendations")
def get_recommendations(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Ask the mentor for next steps on a project, given the user's skills"""
    project = _get_owned_project(db, project_id, user_id)
    skills = (
        db.query(Skill)
        .filter(Skill.user_id == user_id)
        .order_by(Skill.level.desc())
        .all()
    )

    open_milestones = [m.title for m in project.milestones if not m.completed]
    skill_summary = ", ".join(f"{s.name} ({s.level}%)" for s in skills) or "none recorded"
    prompt = (
        f"Project: {project.name}\n"
        f"Description: {project.description or 'n/a'}\n"
        f"Tech stack: {', '.join(project.tech_stack or []) or 'n/a'}\n"
        f"Status: {project.status}, progress {project.progress}%\n"
        f"Open milestones: {', '.join(open_milestones) or 'none'}\n"
        f"Skills: {skill_summary}\n"
        'Reply with JSON: {"recommendations": [{"title": string, "description": string, "priority": string}]}'
    )
    data = llm_service.complete_json(
        [
            {"role": "system", "content": "You are a senior engineer suggesting next steps on a portfolio project."},
            {"role": "user", "content": prompt},
        ],
        max_tokens=1500,
    )
    recommendations = data.get("recommendations")
    return {"recommendations": recommendations if isinstance(recommendations, list) else []}
