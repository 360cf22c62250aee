"""
Credential persistence: one encrypted OAuth grant per (user, provider).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select, update

from postmeeting.database import Database
from postmeeting.logging_config import get_logger
from postmeeting.models import Credential
from postmeeting.models.base import utcnow
from postmeeting.services.encryption import TokenCipher

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredCredential:
    """Decrypted view of a Credential row."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    provider_account_id: Optional[str] = None
    scope: Optional[str] = None
    updated_at: Optional[datetime] = None


class CredentialStore:
    """Single source of truth for stored credentials."""

    def __init__(self, database: Database, cipher: TokenCipher):
        self.database = database
        self.cipher = cipher

    def _to_stored(self, row: Credential) -> StoredCredential:
        return StoredCredential(
            user_id=row.user_id,
            provider=row.provider,
            access_token=self.cipher.decrypt(row.access_token),
            refresh_token=self.cipher.decrypt(row.refresh_token) if row.refresh_token else None,
            expires_at=row.expires_at,
            provider_account_id=row.provider_account_id,
            scope=row.scope,
            updated_at=row.updated_at,
        )

    async def get(self, user_id: str, provider: str) -> Optional[StoredCredential]:
        """
        Retrieve a credential.

        Args:
            user_id: Unique user identifier
            provider: Provider name

        Returns:
            Decrypted credential, or None if not found
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(Credential).where(
                    Credential.user_id == user_id,
                    Credential.provider == provider,
                )
            )
            row = result.scalar_one_or_none()
            return self._to_stored(row) if row else None

    async def upsert(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
        provider_account_id: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> None:
        """
        Save or replace the credential for (user, provider).

        A re-authorization that carries no refresh token keeps the one already stored.

        Args:
            user_id: Unique user identifier
            provider: Provider name
            access_token: OAuth access token
            refresh_token: OAuth refresh token (optional)
            expires_at: Expiry in ms since epoch (optional)
            provider_account_id: Account id issued by the provider
            scope: Granted scope string
        """
        now = utcnow()
        stmt = self.database.upsert(Credential).values(
            user_id=user_id,
            provider=provider,
            access_token=self.cipher.encrypt(access_token),
            refresh_token=self.cipher.encrypt(refresh_token) if refresh_token else None,
            expires_at=expires_at,
            provider_account_id=provider_account_id,
            scope=scope,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Credential.user_id, Credential.provider],
            set_={
                "access_token": stmt.excluded.access_token,
                "refresh_token": func.coalesce(stmt.excluded.refresh_token, Credential.refresh_token),
                "expires_at": stmt.excluded.expires_at,
                "provider_account_id": func.coalesce(
                    stmt.excluded.provider_account_id, Credential.provider_account_id
                ),
                "scope": stmt.excluded.scope,
                "updated_at": now,
            },
        )
        async with self.database.session() as session:
            await session.execute(stmt)

        logger.info(
            "credential_saved",
            user_id=user_id,
            provider=provider,
            has_refresh_token=bool(refresh_token),
        )

    async def update_access_token(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        expires_at: Optional[int],
    ) -> bool:
        """
        Replace access token and expiry together in one statement.

        Args:
            user_id: Unique user identifier
            provider: Provider name
            access_token: New access token
            expires_at: New expiry in ms since epoch

        Returns:
            True if a row was updated
        """
        async with self.database.session() as session:
            result = await session.execute(
                update(Credential)
                .where(
                    Credential.user_id == user_id,
                    Credential.provider == provider,
                )
                .values(
                    access_token=self.cipher.encrypt(access_token),
                    expires_at=expires_at,
                    updated_at=utcnow(),
                )
            )
            return result.rowcount > 0

    async def delete(self, user_id: str, provider: str) -> bool:
        """
        Delete a credential.

        Returns:
            True if deleted, False if not found
        """
        async with self.database.session() as session:
            result = await session.execute(
                delete(Credential).where(
                    Credential.user_id == user_id,
                    Credential.provider == provider,
                )
            )
            deleted = result.rowcount > 0

        if deleted:
            logger.info("credential_deleted", user_id=user_id, provider=provider)
        return deleted

    async def list_for_user(self, user_id: str) -> List[StoredCredential]:
        """All credentials stored for a user."""
        async with self.database.session() as session:
            result = await session.execute(
                select(Credential)
                .where(Credential.user_id == user_id)
                .order_by(Credential.provider)
            )
            return [self._to_stored(row) for row in result.scalars().all()]
