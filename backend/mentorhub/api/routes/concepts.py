from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.api.schemas import CamelModel
from mentorhub.core.database import get_db
from mentorhub.models.concept import Concept
from mentorhub.services.llm_service import llm_service

router = APIRouter(prefix="/concepts", tags=["concepts"])

CONCEPT_NOT_FOUND_MESSAGE = "Concept not found"

EDUCATOR_SYSTEM_PROMPT = (
    "You are a technical educator. Explain the requested concept as a JSON object "
    "with keys: title, category, description, problemItSolves, howItWorks, "
    "commonJuniorMistakes (list), seniorEngineerPerspective, keyPoints (list), "
    "example, relatedConcepts (list)."
)


class ConceptBase(CamelModel):
    description: str = ""
    problem_it_solves: str = ""
    how_it_works: str = ""
    common_junior_mistakes: List[str] = Field(default_factory=list)
    senior_engineer_perspective: str = ""
    key_points: List[str] = Field(default_factory=list)
    example: Optional[str] = ""
    related_concepts: List[str] = Field(default_factory=list)


class ConceptCreate(ConceptBase):
    title: str = Field(min_length=1)
    category: str = "General"


class ConceptUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    problem_it_solves: Optional[str] = None
    how_it_works: Optional[str] = None
    common_junior_mistakes: Optional[List[str]] = None
    senior_engineer_perspective: Optional[str] = None
    key_points: Optional[List[str]] = None
    example: Optional[str] = None
    related_concepts: Optional[List[str]] = None


class ConceptResponse(ConceptBase):
    id: int
    title: str
    category: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ConceptEnvelope(CamelModel):
    concept: ConceptResponse


class ConceptList(CamelModel):
    concepts: List[ConceptResponse]


class GenerateConceptRequest(CamelModel):
    topic: str = Field(min_length=1)
    category: Optional[str] = None


def _get_owned_concept(db: Session, concept_id: int, user_id: int) -> Concept:
    concept = db.query(Concept).filter(
        Concept.id == concept_id,
        Concept.user_id == user_id
    ).first()
    if not concept:
        raise HTTPException(status_code=404, detail=CONCEPT_NOT_FOUND_MESSAGE)
    return concept


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


@router.get("", response_model=ConceptList)
def list_concepts(
    category: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    query = db.query(Concept).filter(Concept.user_id == user_id)
    if category:
        query = query.filter(Concept.category == category)
    return {"concepts": query.order_by(Concept.created_at.desc(), Concept.id.desc()).all()}


@router.get("/{concept_id}", response_model=ConceptEnvelope)
def get_concept(
    concept_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return {"concept": _get_owned_concept(db, concept_id, user_id)}


@router.post("/generate", response_model=ConceptEnvelope, status_code=201)
def generate_concept(
    request: GenerateConceptRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Have the mentor explain a topic and save the explanation"""
    prompt = f'Explain the concept "{request.topic}"'
    if request.category:
        prompt += f' in the category "{request.category}"'
    data = llm_service.complete_json(
        [
            {"role": "system", "content": EDUCATOR_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        max_tokens=3000,
    )

    concept = Concept(
        user_id=user_id,
        title=data.get("title") or request.topic,
        category=data.get("category") or request.category or "General",
        description=data.get("description") or "",
        problem_it_solves=data.get("problemItSolves") or "",
        how_it_works=data.get("howItWorks") or data.get("howItWorksUnderHood") or "",
        common_junior_mistakes=_string_list(data.get("commonJuniorMistakes")),
        senior_engineer_perspective=data.get("seniorEngineerPerspective") or "",
        key_points=_string_list(data.get("keyPoints")),
        example=data.get("example") or "",
        related_concepts=_string_list(data.get("relatedConcepts")),
    )
    db.add(concept)
    db.commit()
    db.refresh(concept)
    return {"concept": concept}


@router.post("", response_model=ConceptEnvelope, status_code=201)
def create_concept(
    concept: ConceptCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    db_concept = Concept(user_id=user_id, **concept.model_dump())
    db.add(db_concept)
    db.commit()
    db.refresh(db_concept)
    return {"concept": db_concept}


@router.put("/{concept_id}", response_model=ConceptEnvelope)
def update_concept(
    concept_id: int,
    concept_update: ConceptUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    concept = _get_owned_concept(db, concept_id, user_id)
    for field, value in concept_update.model_dump(exclude_unset=True).items():
        setattr(concept, field, value)
    db.commit()
    db.refresh(concept)
    return {"concept": concept}


@router.delete("/{concept_id}")
def delete_concept(
    concept_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    concept = _get_owned_concept(db, concept_id, user_id)
    db.delete(concept)
    db.commit()
    return {"message": "Concept deleted successfully"}
