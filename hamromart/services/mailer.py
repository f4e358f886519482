import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr

import structlog

from hamromart.core.config import settings
from hamromart.core.errors import ExternalServiceError

logger = structlog.get_logger(__name__)


class SmtpMailer:
    """Email sink: ``send(to, subject, html_body)`` over SMTP."""

    def send(self, to: str, subject: str, html_body: str):
        msg = MIMEText(html_body, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((settings.FROM_NAME, settings.FROM_EMAIL))
        msg["To"] = to
        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as s:
                if settings.SMTP_STARTTLS:
                    s.starttls()
                if settings.SMTP_USERNAME:
                    s.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                s.sendmail(settings.FROM_EMAIL, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError("email", f"Failed to send email: {exc}") from exc


def _layout(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style='font-family: Arial, sans-serif;'>"
        "<div style='max-width: 600px; margin: 0 auto; padding: 20px;'>"
        f"<div style='background: #28a745; color: white; padding: 20px; text-align: center;'><h1>HamroMart</h1><p>{title}</p></div>"
        f"<div style='padding: 20px; background: #f9f9f9;'>{body}</div>"
        "<div style='text-align: center; padding: 20px; color: #666;'><p>&copy; HamroMart. All rights reserved.</p></div>"
        "</div></body></html>"
    )


def format_amount(cents: int, currency: str) -> str:
    return f"{currency} {cents / 100:,.2f}"


def send_otp(mailer, email: str, code: str):
    """Deliver a registration OTP. Failures propagate: the caller cannot finish without it."""
    body = (
        "<h3>Hello!</h3>"
        "<p>Thank you for registering with HamroMart. Use the following OTP to verify your email address:</p>"
        f"<div style='font-size: 32px; font-weight: bold; color: #28a745; text-align: center; margin: 20px 0;'>{code}</div>"
        f"<p>This OTP will expire in {settings.OTP_EXPIRY_MINUTES} minutes.</p>"
        "<p>If you didn't request this, please ignore this email.</p>"
    )
    mailer.send(email, "HamroMart - Email Verification OTP", _layout("Email Verification", body))


def notify(mailer, to: str, subject: str, body: str) -> bool:
    """Best-effort customer notice; a delivery failure is logged, never raised."""
    try:
        mailer.send(to, subject, _layout(subject, body))
        return True
    except ExternalServiceError:
        logger.warning("notification_failed", to=to, subject=subject, exc_info=True)
        return False


def notify_order_received(mailer, to: str, order):
    notify(mailer, to, "Order received",
           f"<p>We received your order <b>{order.order_number}</b> for "
           f"{format_amount(order.total_cents, order.currency)}.</p>")


def notify_payment_received(mailer, to: str, order):
    notify(mailer, to, "Payment received",
           f"<p>Payment for order <b>{order.order_number}</b> succeeded.</p>")


def notify_order_dispatched(mailer, to: str, order):
    notify(mailer, to, "Order dispatched",
           f"<p>Your order <b>{order.order_number}</b> has been dispatched.</p>")
