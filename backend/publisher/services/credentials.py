# backend/publisher/services/credentials.py
"""
🔑 SCHEDULED PUBLISHER - Credential Store
Per-user platform tokens with an atomic refresh-if-expired.
"""

import asyncio
import weakref
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional, Tuple
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import CredentialError, PublishError
from ..models import SocialAccount, Platform, utcnow

logger = logging.getLogger(__name__)

PLATFORM_LABELS = {
    Platform.INSTAGRAM: "Instagram",
    Platform.YOUTUBE: "YouTube",
}

# refresh_token -> {"access_token": ..., "expires_in": seconds}
TokenRefresher = Callable[[str], Awaitable[Dict]]


class CredentialStore:
    """Resolves a usable access token for (user, platform)"""

    def __init__(self, refreshers: Optional[Dict[Platform, TokenRefresher]] = None):
        self.refreshers = refreshers or {}
        # One lock per (user, platform), scoped to the running event loop
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Tuple[int, Platform], asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )

    def _lock_for(self, user_id: int, platform: Platform) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        locks = self._locks.setdefault(loop, {})
        return locks.setdefault((user_id, platform), asyncio.Lock())

    async def get_account(self, db: AsyncSession, user_id: int, platform: Platform) -> Optional[SocialAccount]:
        result = await db.execute(
            select(SocialAccount).where(
                SocialAccount.user_id == user_id,
                SocialAccount.platform == platform,
                SocialAccount.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def refresh_if_expired(self, db: AsyncSession, user_id: int, platform) -> SocialAccount:
        """Return the connected account with a valid access token, refreshing it when expired"""

        try:
            platform = Platform(platform)
        except ValueError:
            raise CredentialError(f"Unsupported platform: {platform}")

        label = PLATFORM_LABELS[platform]
        account = await self.get_account(db, user_id, platform)
        if account is None or not account.access_token:
            raise CredentialError(f"{label} account not connected")

        if not account.is_token_expired:
            return account

        refresher = self.refreshers.get(platform)
        if refresher is None or not account.refresh_token:
            raise CredentialError(f"{label} token expired. Please reconnect your account.")

        async with self._lock_for(user_id, platform):
            # Another coroutine may have refreshed while we waited
            await db.refresh(account)
            if not account.is_token_expired:
                return account

            version = account.token_version
            try:
                tokens = await refresher(account.refresh_token)
            except Exception as e:
                logger.error(f"💥 {label} token refresh failed for user {user_id}: {e}")
                raise CredentialError(f"{label} token expired and refresh failed")

            expires_at = utcnow() + timedelta(seconds=int(tokens.get('expires_in') or 3600))
            result = await db.execute(
                update(SocialAccount)
                .where(
                    SocialAccount.id == account.id,
                    SocialAccount.token_version == version,
                )
                .values(
                    access_token=tokens['access_token'],
                    token_expires_at=expires_at,
                    token_version=version + 1,
                    updated_at=utcnow(),
                )
            )
            await db.commit()

            if result.rowcount == 0:
                logger.info(f"{label} token for user {user_id} was refreshed concurrently; reloading")

            await db.refresh(account)
            if account.is_token_expired:
                raise CredentialError(f"{label} token expired and refresh failed")

            logger.info(f"🔄 Refreshed {label} token for user {user_id}")
            return account

    # ========================================================================
    # INSTAGRAM LONG-LIVED TOKEN MAINTENANCE
    # ========================================================================

    async def refresh_expiring_instagram_tokens(self, db: AsyncSession, instagram, now=None) -> Dict:
        """Extend Instagram tokens that expire inside the refresh window"""

        now = now or utcnow()
        window_end = now + timedelta(days=settings.INSTAGRAM_TOKEN_REFRESH_WINDOW_DAYS)

        result = await db.execute(
            select(SocialAccount).where(
                SocialAccount.platform == Platform.INSTAGRAM,
                SocialAccount.is_active == True,  # noqa: E712
                SocialAccount.token_expires_at <= window_end,
            )
        )
        accounts = result.scalars().all()
        logger.info(f"Found {len(accounts)} Instagram accounts needing token refresh")

        summary = {'total': len(accounts), 'refreshed': 0, 'failed': 0, 'errors': []}

        for account in accounts:
            name = account.username or account.platform_user_id or account.id

            if account.token_expires_at < now:
                # Expired long-lived tokens cannot be refreshed; user must reconnect
                account.is_active = False
                await db.commit()
                summary['failed'] += 1
                summary['errors'].append(f"{name}: Token expired, marked as inactive")
                continue

            try:
                tokens = await instagram.refresh_long_lived_token(account.access_token)
            except PublishError as e:
                status = e.details.get('status')
                if status in (400, 401):
                    account.is_active = False
                    await db.commit()
                summary['failed'] += 1
                summary['errors'].append(f"{name}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"💥 Instagram token refresh failed for {name}: {e}")
                summary['failed'] += 1
                summary['errors'].append(f"{name}: {e}")
                continue

            account.access_token = tokens['access_token']
            account.token_expires_at = now + timedelta(seconds=int(tokens.get('expires_in') or 0))
            account.token_version = (account.token_version or 0) + 1
            await db.commit()
            summary['refreshed'] += 1
            logger.info(f"🔄 Refreshed Instagram token for {name}")

        return summary
