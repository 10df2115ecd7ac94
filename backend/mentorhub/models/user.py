from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from mentorhub.core.database import Base


class User(Base):
    """
    User model representing application users.

    Stores authentication credentials and profile information.
    Passwords are stored as bcrypt hashes (never plaintext).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Unique constraint is the final arbiter for concurrent registrations
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)  # Optional display name
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
