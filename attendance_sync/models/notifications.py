from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func

from attendance_sync.core.database import Base


class Notification(Base):
    """In-app notification shown on the user's dashboard."""
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    topic = Column(String(255), nullable=False, index=True)

    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
