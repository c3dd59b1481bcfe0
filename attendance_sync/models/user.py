from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from attendance_sync.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_id = Column(String(64), unique=True, index=True, nullable=False)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)

    # Provider credential, AES-256-GCM encrypted
    provider_token = Column(String(2048), nullable=True)
    provider_iv = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_synced_at = Column(DateTime(timezone=True), nullable=True, index=True)
