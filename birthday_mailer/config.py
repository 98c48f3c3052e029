import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from email_validator import EmailNotValidError, validate_email

from birthday_mailer.birthdays import DEFAULT_DATE_FORMAT
from birthday_mailer.directory import search_base_for_domain
from birthday_mailer.utils.logger import get_logger

logger = get_logger("config")

DEFAULT_SUBJECT = "Happy birthday, {{name}}!"
DEFAULT_ATTRIBUTE = "extensionAttribute3"


class ConfigError(RuntimeError):
    """One or more settings are missing or invalid."""


@dataclass(frozen=True)
class Settings:
    sender_email: str
    sender_name: str
    simulation_mode: bool
    mail_subject: str
    mail_template_path: str
    directory_server: str
    directory_search_base: str
    cc_recipient: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    sendgrid_secret_name: Optional[str] = None
    directory_bind_user: Optional[str] = None
    directory_bind_password: Optional[str] = None
    directory_secret_name: Optional[str] = None
    birthday_attribute: str = DEFAULT_ATTRIBUTE
    date_format: str = DEFAULT_DATE_FORMAT
    timezone: str = "UTC"
    max_parallel_sends: int = 10
    send_timeout_seconds: float = 10.0


def is_valid_email(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_valid_date_format(date_format: str) -> bool:
    """The format must round-trip a leap day, month and day included."""
    sample = date(2000, 2, 29)
    try:
        parsed = datetime.strptime(sample.strftime(date_format), date_format).date()
    except ValueError:
        return False
    return (parsed.month, parsed.day) == (sample.month, sample.day)


def parse_bool(value: Optional[str]) -> Optional[bool]:
    """Parse 'true'/'false' (any case). Anything else is None."""
    if value is None:
        return None
    cleaned = value.strip().lower()
    if cleaned == "true":
        return True
    if cleaned == "false":
        return False
    return None


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Load and validate job settings from environment variables.

    Every problem is logged on its own line; a single ConfigError listing
    the failed settings is raised afterwards. Nothing is contacted before
    validation succeeds.
    """
    env = os.environ if env is None else env
    errors: List[str] = []

    def fail(setting: str, msg: str) -> None:
        logger.error("config.invalid: setting=%s reason=%s", setting, msg)
        errors.append(setting)

    sender_email = _get(env, "SENDER_EMAIL")
    sender_name = _get(env, "SENDER_NAME")
    if not sender_email:
        fail("SENDER_EMAIL", "must be provided")
    elif not is_valid_email(sender_email):
        fail("SENDER_EMAIL", f"must be a valid email address, got '{sender_email}'")
    if not sender_name:
        fail("SENDER_NAME", "must be provided")

    simulation_raw = _get(env, "SIMULATION_MODE_ENABLED")
    simulation_mode = parse_bool(simulation_raw)
    if simulation_mode is None:
        fail("SIMULATION_MODE_ENABLED", f"must be 'true' or 'false', got '{simulation_raw}'")

    cc_recipient = _get(env, "CC_RECIPIENT")
    if cc_recipient and not is_valid_email(cc_recipient):
        fail("CC_RECIPIENT", f"must be empty or a valid email address, got '{cc_recipient}'")

    template_path = _get(env, "MAIL_TEMPLATE_HTML")
    if not template_path:
        fail("MAIL_TEMPLATE_HTML", "must be provided")
    elif not os.path.isfile(template_path):
        fail("MAIL_TEMPLATE_HTML", f"template file '{template_path}' does not exist")

    sendgrid_api_key = _get(env, "SENDGRID_API_KEY")
    sendgrid_secret_name = _get(env, "SENDGRID_SECRET_NAME")
    if simulation_mode is False and not (sendgrid_api_key or sendgrid_secret_name):
        fail("SENDGRID_API_KEY", "SENDGRID_API_KEY or SENDGRID_SECRET_NAME must be provided")

    directory_server = _get(env, "DIRECTORY_SERVER")
    if not directory_server:
        fail("DIRECTORY_SERVER", "must be provided")

    search_base = _get(env, "DIRECTORY_SEARCH_BASE")
    domain = _get(env, "DIRECTORY_DOMAIN")
    if not search_base:
        if domain:
            search_base = search_base_for_domain(domain)
        else:
            fail("DIRECTORY_DOMAIN", "DIRECTORY_DOMAIN or DIRECTORY_SEARCH_BASE must be provided")

    date_format = _get(env, "BIRTHDAY_DATE_FORMAT") or DEFAULT_DATE_FORMAT
    if not is_valid_date_format(date_format):
        fail("BIRTHDAY_DATE_FORMAT", f"must be a strptime format with month and day, got '{date_format}'")

    timezone = _get(env, "BIRTHDAY_TIMEZONE") or "UTC"
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        fail("BIRTHDAY_TIMEZONE", f"unknown time zone '{timezone}'")

    max_parallel_raw = _get(env, "MAX_PARALLEL_SENDS") or "10"
    try:
        max_parallel_sends = int(max_parallel_raw)
        if max_parallel_sends < 1:
            raise ValueError
    except ValueError:
        max_parallel_sends = 0
        fail("MAX_PARALLEL_SENDS", f"must be a positive integer, got '{max_parallel_raw}'")

    timeout_raw = _get(env, "SEND_TIMEOUT_SECONDS") or "10"
    try:
        send_timeout_seconds = float(timeout_raw)
        if send_timeout_seconds <= 0:
            raise ValueError
    except ValueError:
        send_timeout_seconds = 0.0
        fail("SEND_TIMEOUT_SECONDS", f"must be a positive number, got '{timeout_raw}'")

    if errors:
        raise ConfigError(
            f"Invalid configuration: {', '.join(errors)}. Please check the log for details."
        )

    return Settings(
        sender_email=sender_email,
        sender_name=sender_name,
        simulation_mode=simulation_mode,
        mail_subject=_get(env, "MAIL_SUBJECT") or DEFAULT_SUBJECT,
        mail_template_path=template_path,
        directory_server=directory_server,
        directory_search_base=search_base,
        cc_recipient=cc_recipient,
        sendgrid_api_key=sendgrid_api_key,
        sendgrid_secret_name=sendgrid_secret_name,
        directory_bind_user=_get(env, "DIRECTORY_BIND_USER"),
        directory_bind_password=_get(env, "DIRECTORY_BIND_PASSWORD"),
        directory_secret_name=_get(env, "DIRECTORY_SECRET_NAME"),
        birthday_attribute=_get(env, "BIRTHDAY_ATTRIBUTE") or DEFAULT_ATTRIBUTE,
        date_format=date_format,
        timezone=timezone,
        max_parallel_sends=max_parallel_sends,
        send_timeout_seconds=send_timeout_seconds,
    )
