"""Resource model - endpoints being monitored."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class Resource(Base):
    """A monitored endpoint - static page, mailer pair, or Telegram JSON API."""

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    url = Column(String, nullable=False)
    type = Column(String, nullable=False)  # static, mailer, telegram
    interval = Column(Integer, nullable=False)  # minutes
    user_id = Column(String, nullable=False, index=True)  # Telegram ID of the owner
    headers = Column(String, nullable=True)  # JSON: custom request headers
    frequency = Column(Integer, nullable=True)
    period = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    logs = relationship("Log", back_populates="resource", cascade="all, delete-orphan")
