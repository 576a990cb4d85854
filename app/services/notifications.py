"""Email notification adapters and message templates."""

from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape
from typing import Optional, Tuple
import smtplib

from pydantic import BaseModel

from app.core.config import Settings
from app.core.constants import ClaimStatus
from app.core.exceptions import DeliveryError
from app.core.logging import get_logger

logger = get_logger(__name__)


class DeliveryResult(BaseModel):
    success: bool
    service: str
    message_id: Optional[str] = None


# ===================
# Templates
# ===================

class NotificationTemplates:
    """Subjects and bodies for every message the service sends."""

    def __init__(self, product_name: str = "AutoClaim"):
        self.product_name = product_name

    def claim_submitted(self, claim_number: str, user_name: str) -> Tuple[str, str]:
        subject = f"Claim Submitted Successfully - {claim_number}"
        body = (
            f"Dear {user_name},\n\n"
            f"Your insurance claim {claim_number} has been submitted and is under review.\n\n"
            f"Best regards,\n{self.product_name} Team"
        )
        return subject, body

    def status_changed(
        self,
        claim_number: str,
        status: ClaimStatus,
        user_name: str,
        review_notes: Optional[str] = None,
        final_amount: Optional[float] = None
    ) -> Tuple[str, str]:
        if status == ClaimStatus.UNDER_REVIEW:
            headline = "Your claim is now under review by our team."
        elif status == ClaimStatus.APPROVED:
            amount = f" for ${final_amount:,.2f}" if final_amount is not None else ""
            headline = f"Congratulations! Your claim has been approved{amount}."
        elif status == ClaimStatus.REJECTED:
            headline = (
                "Unfortunately, your claim has been rejected. "
                "Please check the review notes for details."
            )
        else:
            headline = f"Your claim status is now {status.value}."

        subject = f"Claim {claim_number} Status Update"
        body = f"Dear {user_name},\n\n{headline}\n\n"
        if review_notes:
            body += f"Notes: {review_notes}\n\n"
        body += f"Best regards,\n{self.product_name} Team"
        return subject, body

    def admin_new_claim(self, claim_number: str, user_email: str) -> Tuple[str, str]:
        subject = f"New Claim Requires Review - {claim_number}"
        body = (
            f"A new insurance claim {claim_number} has been submitted by {user_email} "
            "and requires admin review."
        )
        return subject, body


# ===================
# Adapters
# ===================

class Notifier(ABC):
    """Base class for notification transports."""

    @abstractmethod
    def send(self, address: str, subject: str, body: str) -> DeliveryResult:
        """Deliver one message. Raises DeliveryError on failure."""
        pass


class LogNotifier(Notifier):
    """Used when no email service is configured; messages only go to the log."""

    def send(self, address: str, subject: str, body: str) -> DeliveryResult:
        logger.info(f"EMAIL NOTIFICATION (no service configured) to={address} subject={subject!r}")
        logger.debug(body)
        return DeliveryResult(success=True, service="logged")


class SmtpNotifier(Notifier):
    """Plain SMTP relay, text plus a minimal HTML alternative."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str = "noreply@autoclaim.local",
        from_name: str = "AutoClaim",
        timeout: float = 10.0
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def _build_message(self, address: str, subject: str, body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = address
        message.attach(MIMEText(body, "plain", "utf-8"))
        html_body = "<br>".join(escape(line) for line in body.splitlines())
        message.attach(MIMEText(f"<html><body><p>{html_body}</p></body></html>", "html", "utf-8"))
        return message

    def send(self, address: str, subject: str, body: str) -> DeliveryResult:
        message = self._build_message(address, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.from_email, [address], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(str(e), address=address) from e

        logger.info(f"Email sent via SMTP to {address}")
        return DeliveryResult(success=True, service="smtp", message_id=message.get("Message-ID"))


def build_notifier(config: Settings) -> Notifier:
    """Pick the transport named by NOTIFIER."""
    name = config.NOTIFIER.lower()
    if name == "smtp":
        if not config.is_smtp_configured:
            raise ValueError("NOTIFIER=smtp requires SMTP_HOST")
        return SmtpNotifier(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            from_email=config.FROM_EMAIL,
            from_name=config.FROM_NAME,
        )
    if name == "log":
        return LogNotifier()
    raise ValueError(f"Unknown notifier: {name}")
