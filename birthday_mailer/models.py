from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class UserRecord:
    """One enabled directory account, as read for a single run."""

    account_name: str
    display_name: Optional[str] = None
    email_address: Optional[str] = None
    birth_attribute: Optional[str] = None


@dataclass(frozen=True)
class OutboundMessage:
    from_email: str
    from_name: str
    to: str
    subject: str
    html_body: str
    text_body: str
    cc: Optional[str] = None


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SIMULATED = "simulated"
    NO_ADDRESS = "no_address"


@dataclass(frozen=True)
class DeliveryOutcome:
    recipient: str
    account_name: str
    status: DeliveryStatus
    status_code: Optional[int] = None
    error: Optional[str] = None
