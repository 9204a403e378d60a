"""
Use Case Workflow Core Service
Handoff notification.

After a step is completed the party that has to act next is told so:

    review-team step completed  →  use case owner (mail + language from the
                                   user directory)
    requestor step completed    →  review team distribution list
                                   (REVIEW_TEAM_RECIPIENTS), English
"""

from __future__ import annotations

import logging

from flask import current_app

from core_service.core.exceptions import NotificationError, NotFoundError
from core_service.integrations.http_gateway import GatewayError
from core_service.integrations.user_directory import user_directory_gateway
from core_service.models.workflow import Step, is_review_step
from core_service.services.email_service import DEFAULT_LOCALE, EmailService

logger = logging.getLogger(__name__)


def use_case_detail_url(use_case_id: str) -> str:
    base = (current_app.config.get("FRONTEND_USE_CASE_DETAIL_URL") or "").rstrip("/")
    return f"{base}/{use_case_id}"


def resolve_handoff_recipients(
    step: Step, owner_id: str, auth_headers: dict | None = None,
) -> tuple[list[str], str]:
    """Return (recipients, locale) for the party that acts after ``step``.

    Raises:
        NotificationError: the owner could not be resolved.
    """
    if is_review_step(step):
        try:
            user = user_directory_gateway.get_user_by_id(owner_id, auth_headers)
        except (NotFoundError, GatewayError) as exc:
            raise NotificationError(f"Cannot resolve owner {owner_id}: {exc}") from exc
        return [user["mail"]], user["language"]

    return list(current_app.config.get("REVIEW_TEAM_RECIPIENTS") or []), DEFAULT_LOCALE


def notify_step_handoff(
    *,
    use_case_id: str,
    use_case_name: str,
    owner_id: str,
    step: Step,
    auth_headers: dict | None = None,
) -> list[str]:
    """Send the handoff mail for a just-completed step.

    Returns:
        The recipient list the mail went to.

    Raises:
        NotificationError: recipient resolution or delivery failed.
    """
    recipients, locale = resolve_handoff_recipients(step, owner_id, auth_headers)
    EmailService.send_step_handoff_email(
        recipients,
        use_case_name,
        locale,
        use_case_detail_url(use_case_id),
        step,
    )
    logger.info(
        "Handoff notification sent",
        extra={"use_case_id": use_case_id, "step": step.value, "recipients": len(recipients)},
    )
    return recipients
