"""
OAuth credential model.
"""
import enum

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text, UniqueConstraint

from postmeeting.models.base import Base, utcnow


class Provider(str, enum.Enum):
    """OAuth providers whose grants are stored per user."""

    GOOGLE = "google"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


class Credential(Base):
    """One provider grant for one user; tokens are stored encrypted."""

    __tablename__ = 'credentials'
    __table_args__ = (
        UniqueConstraint('user_id', 'provider', name='uq_credentials_user_provider'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    access_token = Column(String(4096), nullable=False)  # Encrypted
    refresh_token = Column(String(4096), nullable=True)  # Encrypted
    expires_at = Column(BigInteger, nullable=True)  # ms since epoch, NULL = treat as expired
    provider_account_id = Column(String(255), nullable=True)
    scope = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Credential(user_id='{self.user_id}', provider='{self.provider}')>"
