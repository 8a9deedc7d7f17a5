"""
Operator account model.
"""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from monitor_api.core.database import Base


class User(Base):
    """Operator login; ``password`` holds a bcrypt hash."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    password = Column(String(255), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"
