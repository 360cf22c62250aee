"""
Database models package.
Import all models here for easy access and metadata registration.
"""
from postmeeting.models.base import Base
from postmeeting.models.credential import Credential, Provider
from postmeeting.models.meeting import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BotJob,
    BotStatus,
    Meeting,
    Transcript,
)
from postmeeting.models.social import PostedContent
from postmeeting.models.user import Automation, UserSettings

__all__ = [
    'Base',
    'Credential',
    'Provider',
    'Meeting',
    'BotJob',
    'BotStatus',
    'Transcript',
    'ACTIVE_STATUSES',
    'TERMINAL_STATUSES',
    'PostedContent',
    'Automation',
    'UserSettings',
]
