import html
from typing import NamedTuple

from birthday_mailer.models import UserRecord
from birthday_mailer.utils.logger import get_logger

logger = get_logger("templates")

NAME_PLACEHOLDER = "{{name}}"


class TemplateError(RuntimeError):
    """The mail template could not be read."""


class RenderedTemplate(NamedTuple):
    subject: str
    html_body: str
    text_body: str


def load_template(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        logger.error("templates.read_error: path=%s error=%s", path, str(e))
        raise TemplateError(f"Unable to read mail template file '{path}': {e}") from e


def recipient_name(user: UserRecord) -> str:
    """
    Name used in the greeting. Some accounts have no display name;
    the account name always exists.
    """
    if user.display_name and user.display_name.strip():
        return user.display_name.strip()

    logger.warning(
        "templates.display_name_missing: account=%s falling back to account name",
        user.account_name,
    )
    return user.account_name


def render(subject_template: str, body_template: str, name: str) -> RenderedTemplate:
    """The HTML variant gets the name escaped; subject and plain text keep it as is."""
    return RenderedTemplate(
        subject=subject_template.replace(NAME_PLACEHOLDER, name),
        html_body=body_template.replace(NAME_PLACEHOLDER, html.escape(name)),
        text_body=body_template.replace(NAME_PLACEHOLDER, name),
    )
