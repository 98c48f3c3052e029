# utils/sendgrid_client.py

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Cc, Content, From, Mail

from birthday_mailer.models import OutboundMessage
from birthday_mailer.utils.logger import get_logger
from birthday_mailer.utils.secrets import get_secret

logger = get_logger("sendgrid_client")


class SendGridSender:
    """
    Thin wrapper over the SendGrid v3 mail API.

    send() returns the HTTP status code. SendGrid answers 202 when a
    message is accepted; HTTP errors from the SDK propagate to the caller.
    """

    def __init__(self, api_key: str, timeout: float = 10.0):
        self._client = SendGridAPIClient(api_key)
        # Propagated to every request built from the root client.
        self._client.client.timeout = timeout
        self.timeout = timeout

    @staticmethod
    def build_mail(message: OutboundMessage) -> Mail:
        mail = Mail(
            from_email=From(message.from_email, message.from_name),
            to_emails=message.to,
            subject=message.subject,
        )
        mail.add_content(Content("text/plain", message.text_body))
        mail.add_content(Content("text/html", message.html_body))
        if message.cc:
            mail.add_cc(Cc(message.cc))
        return mail

    def send(self, message: OutboundMessage) -> int:
        response = self._client.send(self.build_mail(message))
        return response.status_code


def build_sender(settings) -> SendGridSender:
    """
    Build and return a SendGridSender.

    The API key is taken from SENDGRID_API_KEY, or from the Secrets Manager
    secret named by SENDGRID_SECRET_NAME, expected to look like:

        {"api_key": "SG.xxx"}
    """
    api_key = settings.sendgrid_api_key

    if not api_key and settings.sendgrid_secret_name:
        secret = get_secret(settings.sendgrid_secret_name)
        api_key = secret.get("api_key")

    if not api_key:
        logger.error("sendgrid_client.missing_api_key")
        raise RuntimeError("Missing SendGrid API key")

    sender = SendGridSender(api_key, timeout=settings.send_timeout_seconds)
    logger.info("sendgrid_client.initialized: timeout=%s", settings.send_timeout_seconds)
    return sender
