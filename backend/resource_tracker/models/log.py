"""Log model - one immutable record per probe execution."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from ..database import Base


class Log(Base):
    """Outcome of a single check of a resource."""

    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)  # success, error
    response = Column(String, nullable=True)  # Body or error text, max 1000 chars
    endpoint = Column(String, nullable=False)
    duration = Column(Integer, nullable=False)  # milliseconds
    result = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationship
    resource = relationship("Resource", back_populates="logs")
