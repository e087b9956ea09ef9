"""
Lifecycle emails. Delivery is an interface; the default sender only logs what it would send.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from textwrap import dedent

from api.utils.common import display_name
from api.utils.logger import configure_logging

logger = configure_logging()


@dataclass(frozen=True)
class Email:
    to: str
    subject: str
    body: str


def welcome_email(user) -> Email:
    name = display_name(user)
    return Email(
        to=user.email,
        subject=f"Welcome to Genii, {name}!",
        body=dedent(
            f"""
            Hi {name},

            Welcome aboard. Pick a course and start your first lesson; your tutor is ready
            whenever you are.
            """
        ).strip(),
    )


def level_up_email(user, old_level: int, new_level: int) -> Email:
    name = display_name(user)
    return Email(
        to=user.email,
        subject=f"You reached level {new_level}!",
        body=dedent(
            f"""
            Congratulations {name},

            You went from level {old_level} to level {new_level}. Keep the streak going.
            """
        ).strip(),
    )


class EmailSender(ABC):
    @abstractmethod
    async def deliver(self, email: Email) -> None:
        raise NotImplementedError

    async def send_welcome(self, user) -> bool:
        prefs = user.email_preferences or {}
        if prefs.get("welcome_email") is False:
            logger.info("event=email_skipped kind=welcome user_id=%s reason=opted_out", user.id)
            return False
        await self.deliver(welcome_email(user))
        return True

    async def send_level_up(self, user, old_level: int, new_level: int) -> bool:
        prefs = user.email_preferences or {}
        if prefs.get("achievement_email") is False:
            logger.info("event=email_skipped kind=level_up user_id=%s reason=opted_out", user.id)
            return False
        await self.deliver(level_up_email(user, old_level, new_level))
        return True


class LoggingEmailSender(EmailSender):
    async def deliver(self, email: Email) -> None:
        logger.info("event=email_sent to=%s subject=%r", email.to, email.subject)
