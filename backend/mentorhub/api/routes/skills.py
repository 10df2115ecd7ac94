from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.api.schemas import CamelModel
from mentorhub.core.database import get_db
from mentorhub.models.skill import Skill


router = APIRouter(prefix="/skills", tags=["skills"])

SKILL_NOT_FOUND_MESSAGE = "Skill not found"


class SkillCreate(CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    level: int = Field(0, ge=0, le=100)
    progress: int = Field(0, ge=0, le=100)
    projects_count: int = Field(0, ge=0)


class SkillUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    level: Optional[int] = Field(None, ge=0, le=100)
    progress: Optional[int] = Field(None, ge=0, le=100)
    projects_count: Optional[int] = Field(None, ge=0)


class SkillResponse(CamelModel):
    id: int
    name: str
    category: str
    level: int
    progress: int
    projects_count: int
    updated_at: Optional[datetime]


class SkillList(CamelModel):
    skills: List[SkillResponse]


def _apply(skill: Skill, data: dict) -> None:
    for field, value in data.items():
        setattr(skill, field, value)


@router.get("", response_model=SkillList)
def list_skills(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    skills = (
        db.query(Skill)
        .filter(Skill.user_id == user_id)
        .order_by(Skill.category, Skill.name)
        .all()
    )
    return {"skills": skills}


@router.post("", response_model=SkillResponse, status_code=201)
def upsert_skill(
    skill: SkillCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a skill, or update the existing one with the same name"""
    data = skill.model_dump()
    existing = db.query(Skill).filter(
        Skill.user_id == user_id,
        Skill.name == skill.name
    ).first()
    if existing:
        _apply(existing, data)
        db.commit()
        db.refresh(existing)
        return existing

    db_skill = Skill(user_id=user_id, **data)
    db.add(db_skill)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request inserted the same name first; update that row instead
        db.rollback()
        existing = db.query(Skill).filter(
            Skill.user_id == user_id,
            Skill.name == skill.name
        ).one()
        _apply(existing, data)
        db.commit()
        db_skill = existing
    db.refresh(db_skill)
    return db_skill


@router.put("/{skill_id}", response_model=SkillResponse)
def update_skill(
    skill_id: int,
    skill_update: SkillUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    skill = db.query(Skill).filter(
        Skill.id == skill_id,
        Skill.user_id == user_id
    ).first()
    if not skill:
        raise HTTPException(status_code=404, detail=SKILL_NOT_FOUND_MESSAGE)

    _apply(skill, skill_update.model_dump(exclude_unset=True))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="A skill with this name already exists")
    db.refresh(skill)
    return skill


@router.delete("/{skill_id}")
def delete_skill(
    skill_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    skill = db.query(Skill).filter(
        Skill.id == skill_id,
        Skill.user_id == user_id
    ).first()
    if not skill:
        raise HTTPException(status_code=404, detail=SKILL_NOT_FOUND_MESSAGE)

    db.delete(skill)
    db.commit()
    return {"message": "Skill deleted successfully"}
