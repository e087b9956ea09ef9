"""
Mirrors identity-provider user lifecycle events (created/updated/deleted) into local users.
"""

import asyncio
from typing import Any, Dict, Optional

from api.repositories.base import UserRepository
from api.schemas.sync_schemas import IdentityUser
from api.services.email_service import EmailSender
from api.utils.logger import configure_logging

logger = configure_logging()


def _new_user_fields(identity: IdentityUser) -> Dict[str, Any]:
    return {
        "external_id": identity.id,
        "email": identity.primary_email or "",
        "firstname": identity.first_name or "",
        "lastname": identity.last_name or "",
        "username": identity.username or f"user_{identity.id[:8]}",
        "onboarding_status": "not_started",
        "level": "beginner",
        "total_xp": 0,
        "current_level": 1,
        "total_study_minutes": 0,
        "average_session_minutes": 0,
        "study_streak": 0,
    }


class UserSyncService:
    def __init__(self, users: UserRepository, emails: Optional[EmailSender] = None):
        self.users = users
        self.emails = emails

    async def user_created(self, identity: IdentityUser) -> Dict[str, Any]:
        existing = await asyncio.to_thread(self.users.get_by_external_id, identity.id)
        if existing is not None:
            logger.info("event=user_sync_skipped external_id=%s reason=exists", identity.id)
            return {"success": True, "message": "User already exists"}

        user = await asyncio.to_thread(lambda: self.users.create(**_new_user_fields(identity)))
        logger.info("event=user_created user_id=%s external_id=%s", user.id, identity.id)

        if self.emails is not None:
            try:
                await self.emails.send_welcome(user)
            except Exception as e:
                # the user exists either way
                logger.warning("event=welcome_email_failed user_id=%s error=%s", user.id, e)

        return {"success": True, "message": "User created", "userId": user.id}

    async def user_updated(self, identity: IdentityUser) -> Dict[str, Any]:
        existing = await asyncio.to_thread(self.users.get_by_external_id, identity.id)
        if existing is None:
            logger.info("event=user_sync_create_on_update external_id=%s", identity.id)
            user = await asyncio.to_thread(lambda: self.users.create(**_new_user_fields(identity)))
            return {"success": True, "message": "User created from update event", "userId": user.id}

        await asyncio.to_thread(
            lambda: self.users.update(
                existing.id,
                email=identity.primary_email,
                firstname=identity.first_name,
                lastname=identity.last_name,
                username=identity.username,
            )
        )
        return {"success": True, "message": "User updated", "userId": existing.id}

    async def user_deleted(self, identity: IdentityUser) -> Dict[str, Any]:
        existing = await asyncio.to_thread(self.users.get_by_external_id, identity.id)
        if existing is None:
            return {"success": True, "message": "User not found, nothing to delete"}

        # chat history and other user content stay; only identifying fields are cleared
        await asyncio.to_thread(self.users.anonymize, existing.id)
        logger.info("event=user_anonymized user_id=%s", existing.id)
        return {"success": True, "message": "User anonymized", "userId": existing.id}
