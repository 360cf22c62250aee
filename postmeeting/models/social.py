"""
Log of content successfully published to social networks.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from postmeeting.models.base import Base, utcnow


class PostedContent(Base):
    """A post the provider confirmed; never written for failed attempts."""

    __tablename__ = 'posted_social_content'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    platform = Column(String(32), nullable=False)  # linkedin, facebook
    content = Column(Text, nullable=False)
    post_id = Column(String(255), nullable=True)
    meeting_id = Column(Integer, ForeignKey('meetings.id', ondelete='SET NULL'), nullable=True)
    automation_id = Column(Integer, ForeignKey('automations.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PostedContent(id={self.id}, platform='{self.platform}', post_id='{self.post_id}')>"
