from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Protocol

from birthday_mailer.models import DeliveryOutcome, DeliveryStatus, OutboundMessage, UserRecord
from birthday_mailer.templates import recipient_name, render
from birthday_mailer.utils.logger import get_logger

logger = get_logger("dispatcher")

ACCEPTED = 202


class EmailSender(Protocol):
    def send(self, message: OutboundMessage) -> int: ...


class DeliveryDispatcher:
    """
    Sends one birthday message per celebrant.

    Sends are independent: a failed send is recorded as an outcome and
    never stops the others. Nothing is retried.
    """

    def __init__(
        self,
        sender: Optional[EmailSender],
        from_email: str,
        from_name: str,
        subject_template: str,
        body_template: str,
        cc_recipient: Optional[str] = None,
        simulation_mode: bool = False,
        max_workers: int = 10,
    ):
        if sender is None and not simulation_mode:
            raise ValueError("sender is required unless simulation mode is enabled")
        self.sender = sender
        self.from_email = from_email
        self.from_name = from_name
        self.subject_template = subject_template
        self.body_template = body_template
        self.cc_recipient = cc_recipient or None
        self.simulation_mode = simulation_mode
        self.max_workers = max(1, max_workers)

    def build_message(self, user: UserRecord) -> OutboundMessage:
        rendered = render(self.subject_template, self.body_template, recipient_name(user))
        return OutboundMessage(
            from_email=self.from_email,
            from_name=self.from_name,
            to=user.email_address.strip(),
            cc=self.cc_recipient,
            subject=rendered.subject,
            html_body=rendered.html_body,
            text_body=rendered.text_body,
        )

    def _send(self, user: UserRecord, message: OutboundMessage) -> DeliveryOutcome:
        try:
            status_code = self.sender.send(message)
        except Exception as e:
            logger.error(
                "dispatcher.send_error: to=%s account=%s error=%s",
                message.to,
                user.account_name,
                str(e),
            )
            return DeliveryOutcome(
                recipient=message.to,
                account_name=user.account_name,
                status=DeliveryStatus.FAILED,
                status_code=getattr(e, "status_code", None),
                error=str(e),
            )

        if status_code != ACCEPTED:
            logger.error(
                "dispatcher.send_rejected: to=%s account=%s status_code=%s",
                message.to,
                user.account_name,
                status_code,
            )
            return DeliveryOutcome(
                recipient=message.to,
                account_name=user.account_name,
                status=DeliveryStatus.FAILED,
                status_code=status_code,
                error=f"unexpected status code {status_code}",
            )

        logger.info("dispatcher.sent: to=%s account=%s", message.to, user.account_name)
        return DeliveryOutcome(
            recipient=message.to,
            account_name=user.account_name,
            status=DeliveryStatus.SENT,
            status_code=status_code,
        )

    def dispatch(self, celebrants: Iterable[UserRecord]) -> List[DeliveryOutcome]:
        """Send to every celebrant and return one outcome per celebrant, in input order."""
        outcomes: List[Optional[DeliveryOutcome]] = []
        pending = []

        for user in celebrants:
            if not user.email_address or not user.email_address.strip():
                logger.warning(
                    "dispatcher.missing_email: account=%s email=%s",
                    user.account_name,
                    user.email_address,
                )
                outcomes.append(
                    DeliveryOutcome(
                        recipient=user.account_name,
                        account_name=user.account_name,
                        status=DeliveryStatus.NO_ADDRESS,
                        error="no email address",
                    )
                )
                continue

            message = self.build_message(user)

            if self.simulation_mode:
                logger.info("dispatcher.simulated: to=%s account=%s", message.to, user.account_name)
                outcomes.append(
                    DeliveryOutcome(
                        recipient=message.to,
                        account_name=user.account_name,
                        status=DeliveryStatus.SIMULATED,
                    )
                )
                continue

            pending.append((len(outcomes), user, message))
            outcomes.append(None)

        if pending:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
                futures = [
                    (index, executor.submit(self._send, user, message))
                    for index, user, message in pending
                ]
                for index, future in futures:
                    outcomes[index] = future.result()

        return outcomes


def summarize(outcomes: Iterable[DeliveryOutcome]) -> Dict[str, int]:
    counts = {status.value: 0 for status in DeliveryStatus}
    for outcome in outcomes:
        counts[outcome.status.value] += 1
    return counts
