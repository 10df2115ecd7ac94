from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func
from mentorhub.core.database import Base

# Skills at or above this level count as mastered; below it they are gaps
MASTERY_LEVEL = 70


class Skill(Base):
    __tablename__ = "skills"
    # One row per skill name per user - POST upserts on this pair
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_skills_user_name"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    level = Column(Integer, nullable=False, default=0)
    progress = Column(Integer, nullable=False, default=0)
    projects_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
