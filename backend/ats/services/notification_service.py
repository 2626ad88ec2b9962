import logging
from html import escape

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger("ats.notifications")


class NotificationService:
    """Applicant e-mail through SendGrid.

    Delivery is best effort. Without an API key every message is logged and
    skipped, which is the normal mode for local runs and tests.
    """

    def __init__(self, api_key: str | None, mail_from: str, mail_from_name: str):
        self.api_key = api_key
        self.mail_from = mail_from
        self.mail_from_name = mail_from_name

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, to_email: str, subject: str, html: str) -> int | None:
        if not self.enabled:
            logger.info("Mail disabled, skipping %r to %s", subject, to_email)
            return None
        sg = SendGridAPIClient(api_key=self.api_key)
        message = Mail(
            from_email=(self.mail_from, self.mail_from_name),
            to_emails=to_email,
            subject=subject,
            html_content=html,
        )
        resp = sg.send(message)
        logger.info("Sent %r to %s (status %s)", subject, to_email, resp.status_code)
        return resp.status_code

    def notify_application_received(self, email: str, name: str, job_title: str) -> int | None:
        subject = f"Application received: {job_title}"
        html = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Thank you for applying for <strong>{escape(job_title)}</strong>. "
            "We have received your application and will be in touch.</p>"
        )
        return self.send(email, subject, html)
