"""
Client notifications (email).

Each NotificationType maps to one template; `render_notification` is the
only place that picks a template. Delivery failures are recorded on the
NotificationLog row and logged, never raised to the caller.
"""

import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.mime.text import MIMEText
from typing import Callable, Dict, Optional, Tuple

from barbershop.config import Settings
from barbershop.models import Appointment, NotificationLog, NotificationType
from barbershop.store import CalendarStore

logger = logging.getLogger(__name__)

EMAIL_CHANNEL = "EMAIL"


@dataclass(frozen=True)
class NotificationContext:
    client_name: str
    service_name: str
    barber_name: str
    start_time: datetime
    business_name: str
    business_address: str = ""
    business_phone: str = ""


def _details(ctx: NotificationContext, label: str) -> str:
    lines = [
        f"{label}:",
        f"- Service: {ctx.service_name}",
        f"- Date: {ctx.start_time:%d/%m/%Y}",
        f"- Time: {ctx.start_time:%H:%M}",
        f"- Barber: {ctx.barber_name}",
    ]
    if ctx.business_address:
        lines.append(f"- Location: {ctx.business_address}")
    return "\n".join(lines)


def _letter(ctx: NotificationContext, opening: str, label: str, manage_hint: bool = False) -> str:
    parts = [f"Hello {ctx.client_name},", opening, _details(ctx, label)]
    if manage_hint:
        parts.append("To cancel or reschedule, use the link sent with your confirmation.")
    signature = f"Best regards,\n{ctx.business_name}"
    if ctx.business_phone:
        signature += f"\nPhone: {ctx.business_phone}"
    parts.append(signature)
    return "\n\n".join(parts)


def _confirmation(ctx: NotificationContext) -> str:
    return _letter(ctx, "Your appointment is confirmed!", "Details", manage_hint=True)


def _reminder_24h(ctx: NotificationContext) -> str:
    return _letter(ctx, "Reminder: your appointment is tomorrow!", "Details")


def _reminder_2h(ctx: NotificationContext) -> str:
    return _letter(ctx, "Reminder: your appointment is in 2 hours!", "Details")


def _cancellation(ctx: NotificationContext) -> str:
    return _letter(ctx, "Your appointment has been cancelled.", "Cancelled appointment")


def _reschedule(ctx: NotificationContext) -> str:
    return _letter(ctx, "Your appointment has been rescheduled!", "New details", manage_hint=True)


@dataclass(frozen=True)
class NotificationTemplate:
    subject: str
    render: Callable[[NotificationContext], str]


TEMPLATES: Dict[NotificationType, NotificationTemplate] = {
    NotificationType.CONFIRMATION: NotificationTemplate("Appointment confirmed", _confirmation),
    NotificationType.REMINDER_24H: NotificationTemplate("Reminder: appointment tomorrow", _reminder_24h),
    NotificationType.REMINDER_2H: NotificationTemplate("Reminder: appointment in 2 hours", _reminder_2h),
    NotificationType.CANCELLATION: NotificationTemplate("Appointment cancelled", _cancellation),
    NotificationType.RESCHEDULE: NotificationTemplate("Appointment rescheduled", _reschedule),
}


def notification_subject(type: NotificationType, business_name: str) -> str:
    return f"{business_name} - {TEMPLATES[type].subject}"


def render_notification(type: NotificationType, ctx: NotificationContext) -> Tuple[str, str]:
    template = TEMPLATES[type]
    return notification_subject(type, ctx.business_name), template.render(ctx)


class EmailSender(ABC):
    @abstractmethod
    def send(self, recipient: str, subject: str, body: str):
        ...


class SmtpEmailSender(EmailSender):

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, recipient: str, subject: str, body: str):
        s = self.settings
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = s.mail_from
        message["To"] = recipient

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
            if s.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if s.smtp_username and s.smtp_password:
                server.login(s.smtp_username, s.smtp_password)
            server.sendmail(s.mail_from, [recipient], message.as_string())


class LoggingEmailSender(EmailSender):
    """Used when no SMTP host is configured (local development)."""

    def send(self, recipient: str, subject: str, body: str):
        logger.info("Email to %s: %s\n%s", recipient, subject, body)


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.smtp_host:
        return SmtpEmailSender(settings)
    return LoggingEmailSender()


class NotificationService:

    def __init__(
        self,
        store: CalendarStore,
        settings: Settings,
        sender: EmailSender,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings = settings
        self.sender = sender
        self.clock = clock

    def send(self, appointment: Appointment, type: NotificationType) -> Optional[NotificationLog]:
        if not self.settings.notifications_enabled:
            logger.debug("Notifications disabled, skipping")
            return None

        recipient = appointment.client_email
        if not recipient or not recipient.strip():
            logger.debug("No email for appointment %s, skipping notification", appointment.id)
            return None

        ctx = self._context(appointment)
        subject, content = render_notification(type, ctx)

        notification = self.store.save_notification(NotificationLog(
            appointment_id=appointment.id,
            type=type,
            channel=EMAIL_CHANNEL,
            recipient=recipient,
            content=content,
            created_at=self.clock(),
        ))
        self._deliver(notification, subject, "Failed to send email")
        return notification

    def resend(self, notification_id: int) -> NotificationLog:
        logger.info("Resending notification: %s", notification_id)
        notification = self.store.get_notification(notification_id)
        subject = notification_subject(notification.type, self.settings.business_name)
        self._deliver(notification, subject, "Failed to resend email")
        return notification

    def has_sent(self, appointment_id: int, type: NotificationType) -> bool:
        return self.store.has_notification(appointment_id, type)

    def _deliver(self, notification: NotificationLog, subject: str, failure: str):
        try:
            self.sender.send(notification.recipient, subject, notification.content)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Failed to send email to %s for appointment %s: %s",
                notification.recipient, notification.appointment_id, e,
            )
            notification.mark_as_failed(failure)
        except Exception:
            # a PENDING row counts as sent, so it must never be left behind
            logger.exception(
                "Unexpected error sending email for appointment %s", notification.appointment_id
            )
            notification.mark_as_failed(failure)
        else:
            logger.info(
                "Email sent to %s for appointment %s", notification.recipient, notification.appointment_id
            )
            notification.mark_as_sent(self.clock())
        self.store.save_notification(notification)

    def _context(self, appointment: Appointment) -> NotificationContext:
        service = self.store.get_service(appointment.service_id)
        barber = self.store.get_user(appointment.barber_id)
        return NotificationContext(
            client_name=appointment.client_name,
            service_name=service.name,
            barber_name=barber.name if barber else "",
            start_time=appointment.start_time,
            business_name=self.settings.business_name,
            business_address=self.settings.business_address,
            business_phone=self.settings.business_phone,
        )
