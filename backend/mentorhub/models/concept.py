from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.sql import func
from mentorhub.core.database import Base


class Concept(Base):
    __tablename__ = "concepts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    problem_it_solves = Column(Text, nullable=False, default="")
    how_it_works = Column(Text, nullable=False, default="")
    common_junior_mistakes = Column(JSON, nullable=False, default=list)
    senior_engineer_perspective = Column(Text, nullable=False, default="")
    key_points = Column(JSON, nullable=False, default=list)
    example = Column(Text, nullable=True)
    related_concepts = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
