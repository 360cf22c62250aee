"""
Per-user preferences and content automations.
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from postmeeting.models.base import Base, utcnow


class UserSettings(Base):
    """Bot scheduling preferences for a user."""

    __tablename__ = 'user_settings'

    user_id = Column(String(255), primary_key=True)
    bot_join_minutes_before = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserSettings(user_id='{self.user_id}', bot_join_minutes_before={self.bot_join_minutes_before})>"


class Automation(Base):
    """User-defined template driving generated emails and posts."""

    __tablename__ = 'automations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False)  # email, linkedin, facebook
    platform = Column(String(32), nullable=False)  # linkedin, facebook, both
    tone = Column(String(255), nullable=False)
    hashtag_count = Column(Integer, nullable=False, default=3)
    prompt_template = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Automation(id={self.id}, name='{self.name}', type='{self.type}')>"
