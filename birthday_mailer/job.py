import json
import sys
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from birthday_mailer.birthdays import find_celebrants
from birthday_mailer.config import ConfigError, Settings, load_settings
from birthday_mailer.directory import DirectoryClient, build_directory
from birthday_mailer.dispatcher import DeliveryDispatcher, EmailSender, summarize
from birthday_mailer.models import DeliveryOutcome
from birthday_mailer.templates import TemplateError, load_template
from birthday_mailer.utils.logger import get_logger, log
from birthday_mailer.utils.sendgrid_client import build_sender

logger = get_logger("job")


@dataclass
class JobResult:
    today: date
    users: int
    celebrants: int
    outcomes: List[DeliveryOutcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def summary(self) -> Dict[str, int]:
        return summarize(self.outcomes)

    def to_dict(self) -> dict:
        return {
            "today": self.today.isoformat(),
            "users": self.users,
            "celebrants": self.celebrants,
            "summary": self.summary,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


def today_in(timezone: str) -> date:
    return datetime.now(ZoneInfo(timezone)).date()


def run(
    settings: Settings,
    today: Optional[date] = None,
    directory: Optional[DirectoryClient] = None,
    sender: Optional[EmailSender] = None,
) -> JobResult:
    """
    One birthday run: read the template, scan the directory, pick today's
    celebrants and mail them.

    Raises TemplateError before anything is sent if the template cannot be read.
    """
    started = time.monotonic()
    today = today or today_in(settings.timezone)
    logger.info("job.start: today=%s simulation_mode=%s", today.isoformat(), settings.simulation_mode)

    # Fail fast: no directory query and no send without a template.
    body_template = load_template(settings.mail_template_path)

    if settings.simulation_mode:
        logger.info(
            "job.simulation_mode: turned ON, no email will be sent. "
            "Set SIMULATION_MODE_ENABLED=false to send."
        )

    directory = directory or build_directory(settings)
    users = directory.get_enabled_users()

    logger.info("job.filter: users=%d", len(users))
    celebrants = list(find_celebrants(users, today, settings.date_format))
    logger.info("job.celebrants: count=%d", len(celebrants))

    outcomes: List[DeliveryOutcome] = []
    if celebrants:
        if sender is None and not settings.simulation_mode:
            sender = build_sender(settings)

        dispatcher = DeliveryDispatcher(
            sender=sender,
            from_email=settings.sender_email,
            from_name=settings.sender_name,
            subject_template=settings.mail_subject,
            body_template=body_template,
            cc_recipient=settings.cc_recipient,
            simulation_mode=settings.simulation_mode,
            max_workers=settings.max_parallel_sends,
        )
        outcomes = dispatcher.dispatch(celebrants)

    result = JobResult(
        today=today,
        users=len(users),
        celebrants=len(celebrants),
        outcomes=outcomes,
        elapsed_seconds=time.monotonic() - started,
    )
    logger.info(
        "job.finished: summary=%s running_time=%.2fs",
        json.dumps(result.summary),
        result.elapsed_seconds,
    )
    return result


def _parse_today(value) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(str(value))


def lambda_handler(event, context):
    """Entry point for a scheduled (EventBridge) invocation."""
    event = event or {}
    logger.info(
        "job.lambda_start: request_id=%s",
        getattr(context, "aws_request_id", None),
    )

    try:
        today = _parse_today(event.get("today"))
    except ValueError:
        logger.warning("job.invalid_today: value=%s", event.get("today"))
        return {"statusCode": 400, "body": json.dumps({"error": "invalid_today"})}

    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("job.config_error: error=%s", str(e))
        return {"statusCode": 500, "body": json.dumps({"error": "server_misconfigured"})}

    try:
        result = run(settings, today=today)
    except TemplateError as e:
        logger.error("job.template_error: error=%s", str(e))
        return {"statusCode": 500, "body": json.dumps({"error": "template_unreadable"})}
    except Exception as e:
        logger.error("job.failed: error=%s", str(e), exc_info=True)
        return {"statusCode": 500, "body": json.dumps({"error": "job_failed"})}

    log("job.lambda_finished", **result.to_dict())
    return {"statusCode": 200, "body": json.dumps(result.to_dict())}


def main() -> int:
    """Run once from the command line. Returns the process exit code."""
    try:
        settings = load_settings()
        run(settings)
    except (ConfigError, TemplateError) as e:
        logger.error("job.aborted: error=%s", str(e))
        return 1
    except Exception as e:
        logger.error("job.failed: error=%s", str(e), exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
