import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id
from mentorhub.core.database import classify_database_error, get_db
from mentorhub.models.chat_message import ChatMessage
from mentorhub.services.llm_service import llm_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

# Messages sent to the model as conversation context
CONTEXT_WINDOW = 10
FALLBACK_REPLY = "I apologize, but I could not generate a response."

MENTOR_SYSTEM_PROMPT = (
    "You are an AI mentor helping engineers learn and grow: explain concepts, "
    "review code, prepare interviews and advise on careers and architecture."
)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)


class ChatReply(BaseModel):
    message: str
    role: str = "mentor"


class MessageOut(BaseModel):
    id: int
    role: str
    content: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class MessageHistory(BaseModel):
    messages: List[MessageOut]


def _recent_messages(db: Session, user_id: int, limit: int) -> List[ChatMessage]:
    """Last `limit` messages for a user, oldest first"""
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.user_id == user_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def _save_exchange(db: Session, user_id: int, question: str, reply: str) -> None:
    """Store a question and its reply together; ids keep them in order"""
    db.add(ChatMessage(user_id=user_id, role="user", content=question))
    db.add(ChatMessage(user_id=user_id, role="mentor", content=reply))
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise classify_database_error(exc, "Saving chat messages")


@router.get("/model")
def get_model_info(user_id: int = Depends(get_current_user_id)):
    """Report which model the mentor is using"""
    return llm_service.model_info()


@router.get("/messages", response_model=MessageHistory)
def get_messages(
    limit: int = Query(50, ge=1, le=500),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Chat history, oldest first"""
    try:
        messages = _recent_messages(db, user_id, limit)
    except SQLAlchemyError as exc:
        raise classify_database_error(exc, "Fetching chat messages")
    return {"messages": messages}


@router.post("/chat", response_model=ChatReply)
def chat(
    request: ChatRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Ask the mentor with recent history as context, then store both turns.

    Nothing is stored when the mentor call fails, so history never holds a
    question without its reply.
    """
    try:
        history = _recent_messages(db, user_id, CONTEXT_WINDOW - 1)
    except SQLAlchemyError as exc:
        raise classify_database_error(exc, "Loading chat context")

    conversation = [
        {"role": "assistant" if msg.role == "mentor" else "user", "content": msg.content}
        for msg in history
    ]
    conversation.append({"role": "user", "content": request.message})
    reply = llm_service.complete(
        [{"role": "system", "content": MENTOR_SYSTEM_PROMPT}, *conversation],
        temperature=0.7,
        max_tokens=1000,
    )
    reply = reply or FALLBACK_REPLY

    _save_exchange(db, user_id, request.message, reply)
    return {"message": reply, "role": "mentor"}
