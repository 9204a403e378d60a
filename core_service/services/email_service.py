"""
Use Case Workflow Core Service
Email Service — step handoff mails.

Sends the "your turn" e-mail after a workflow step is completed.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Configuration (app config / env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app
from markupsafe import escape

from core_service.core.exceptions import NotificationError
from core_service.models.workflow import Step

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"


# ═══════════════════════════════════════════════════════════════════════════
#  Templates (per locale)
# ═══════════════════════════════════════════════════════════════════════════

_STEP_LABELS: dict[str, dict[Step, str]] = {
    "en": {
        Step.INITIAL_REQUEST: "Initial request",
        Step.INITIAL_FEASIBILITY_CHECK: "Initial feasibility check",
        Step.DETAILED_REQUEST: "Detailed request",
        Step.OFFER: "Offer",
        Step.ORDER: "Order",
    },
    "de": {
        Step.INITIAL_REQUEST: "Erstanfrage",
        Step.INITIAL_FEASIBILITY_CHECK: "Erste Machbarkeitsprüfung",
        Step.DETAILED_REQUEST: "Detaillierte Anfrage",
        Step.OFFER: "Angebot",
        Step.ORDER: "Bestellung",
    },
}

_HANDOFF_TEMPLATES: dict[str, dict[str, str]] = {
    "en": {
        "subject": "[Use Cases] {use_case_name}: step '{step_label}' completed",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #1e293b;">{use_case_name}</h2>
            <p>The step <strong>{step_label}</strong> has been completed.
               The use case is now waiting for your input.</p>
            <p><a href="{detail_url}">Open the use case</a></p>
        </div>
        """,
    },
    "de": {
        "subject": "[Use Cases] {use_case_name}: Schritt '{step_label}' abgeschlossen",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #1e293b;">{use_case_name}</h2>
            <p>Der Schritt <strong>{step_label}</strong> wurde abgeschlossen.
               Der Use Case wartet jetzt auf Ihre Eingabe.</p>
            <p><a href="{detail_url}">Use Case öffnen</a></p>
        </div>
        """,
    },
}


def _resolve_locale(locale: str | None) -> str:
    """Map "de-DE" / "DE" / None onto a supported template locale."""
    short = (locale or DEFAULT_LOCALE).split("-")[0].split("_")[0].lower()
    return short if short in _HANDOFF_TEMPLATES else DEFAULT_LOCALE


class EmailService:
    """Stateless email sender (SMTP or log-only)."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def render_step_handoff(
        cls, use_case_name: str, locale: str | None, detail_url: str, step: Step,
    ) -> tuple[str, str]:
        """Return (subject, html_body) for a handoff mail.

        The subject is plain text; values in the HTML body are escaped.
        """
        lang = _resolve_locale(locale)
        template = _HANDOFF_TEMPLATES[lang]
        context = {
            "use_case_name": use_case_name,
            "step_label": _STEP_LABELS[lang][step],
            "detail_url": detail_url,
        }
        html_context = {key: escape(value) for key, value in context.items()}
        return template["subject"].format(**context), template["html"].format(**html_context)

    @classmethod
    def send_step_handoff_email(
        cls,
        recipients: list[str],
        use_case_name: str,
        locale: str | None,
        detail_url: str,
        step: Step,
    ) -> None:
        """Send the handoff mail to every recipient in one message.

        Raises:
            NotificationError: no recipients, or SMTP delivery failed.
        """
        if not recipients:
            raise NotificationError("No recipients configured for handoff mail")

        subject, html_body = cls.render_step_handoff(use_case_name, locale, detail_url, step)

        if not cls.is_configured():
            logger.info(
                "Email (dev mode): to=%s subject='%s'",
                ", ".join(recipients), subject,
            )
            return

        try:
            cls._send_smtp(recipients=recipients, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP delivery failed: {exc}") from exc
        logger.info("Email sent: to=%s subject='%s'", ", ".join(recipients), subject)

    @staticmethod
    def _send_smtp(*, recipients: list[str], subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
