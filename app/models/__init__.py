"""Database models for the café insights service"""

from app.models.user import User, UserPreference

from app.models.cafe import (
    Cafe,
    Review,
    CompetitorSnapshot
)

from app.models.digest import (
    DigestRun,
    DigestRecipient,
    DigestInsight
)
