from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func
from mentorhub.core.database import Base


class ChatMessage(Base):
    """
    One turn of a user's conversation with the AI mentor.

    Append-only. Ordering is by (created_at, id) so messages written within
    the same timestamp tick keep their insertion order.
    """
    __tablename__ = "ai_messages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # "user" or "mentor"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
