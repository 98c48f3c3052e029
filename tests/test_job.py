import json
import threading
from datetime import date

import pytest

from birthday_mailer import job
from birthday_mailer.config import Settings
from birthday_mailer.models import DeliveryStatus, UserRecord
from birthday_mailer.templates import TemplateError

# Target under test: birthday_mailer.job
# We stub:
#  - the directory client (no LDAP)
#  - the email sender (no SendGrid)


class StubDirectory:
    def __init__(self, users):
        self.users = users
        self.calls = 0

    def get_enabled_users(self):
        self.calls += 1
        return list(self.users)


class StubSender:
    def __init__(self, responses=None):
        self.responses = responses or {}
        self.sent = []
        self._lock = threading.Lock()

    def send(self, message):
        with self._lock:
            self.sent.append(message)
        response = self.responses.get(message.to, 202)
        if isinstance(response, Exception):
            raise response
        return response


USERS = [
    UserRecord("asmith", "Alice Smith", "alice@example.com", '{"DOB":"04/07/1990"}'),
    UserRecord("bbad", "Bob Bad", "bob@example.com", '{"DOB":"13/13/1990"}'),
    UserRecord("cjones", None, "carol@example.com", '{"DOB":"4/7/1985"}'),
    UserRecord("dnomail", "Dan", None, '{"DOB":"04/07/1970"}'),
    UserRecord("eother", "Eve", "eve@example.com", '{"DOB":"05/07/1990"}'),
    UserRecord("fnone", "Frank", "frank@example.com", None),
]


def _settings(template_path, **overrides):
    values = dict(
        sender_email="hr@example.com",
        sender_name="HR Team",
        simulation_mode=False,
        mail_subject="Happy birthday, {{name}}!",
        mail_template_path=template_path,
        directory_server="ldaps://dc01",
        directory_search_base="DC=corp",
        sendgrid_api_key="SG.test",
        max_parallel_sends=4,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def template(tmp_path):
    path = tmp_path / "birthday.html"
    path.write_text("<h2>Happy birthday, {{name}}!</h2>", encoding="utf-8")
    return str(path)


def test_run_end_to_end(template):
    sender = StubSender()
    directory = StubDirectory(USERS)

    result = job.run(_settings(template), today=date(2024, 7, 4), directory=directory, sender=sender)

    assert result.users == 6
    assert result.celebrants == 3
    assert {m.to for m in sender.sent} == {"alice@example.com", "carol@example.com"}
    bodies = {m.to: m.html_body for m in sender.sent}
    assert bodies["alice@example.com"] == "<h2>Happy birthday, Alice Smith!</h2>"
    assert bodies["carol@example.com"] == "<h2>Happy birthday, cjones!</h2>"
    assert [o.status for o in result.outcomes] == [
        DeliveryStatus.SENT,
        DeliveryStatus.SENT,
        DeliveryStatus.NO_ADDRESS,
    ]
    assert result.summary == {"sent": 2, "failed": 0, "simulated": 0, "no_address": 1}


def test_run_with_cc_and_failure(template):
    sender = StubSender({"alice@example.com": RuntimeError("timed out")})

    result = job.run(
        _settings(template, cc_recipient="boss@example.com"),
        today=date(2024, 7, 4),
        directory=StubDirectory(USERS),
        sender=sender,
    )

    assert {m.cc for m in sender.sent} == {"boss@example.com"}
    assert result.summary["failed"] == 1
    assert result.summary["sent"] == 1


def test_run_simulation_mode_sends_nothing(template):
    result = job.run(
        _settings(template, simulation_mode=True, sendgrid_api_key=None),
        today=date(2024, 7, 4),
        directory=StubDirectory(USERS),
    )

    assert result.summary == {"sent": 0, "failed": 0, "simulated": 2, "no_address": 1}


def test_run_without_celebrants_builds_no_sender(template, monkeypatch):
    def fail_build_sender(settings):
        raise AssertionError("sender should not be built")

    monkeypatch.setattr(job, "build_sender", fail_build_sender, raising=True)

    result = job.run(_settings(template), today=date(2024, 1, 1), directory=StubDirectory(USERS))

    assert result.celebrants == 0
    assert result.outcomes == []


def test_run_builds_sender_when_needed(template, monkeypatch):
    sender = StubSender()
    monkeypatch.setattr(job, "build_sender", lambda settings: sender, raising=True)

    job.run(_settings(template), today=date(2024, 7, 4), directory=StubDirectory(USERS))

    assert len(sender.sent) == 2


def test_unreadable_template_aborts_before_any_send(tmp_path):
    sender = StubSender()
    directory = StubDirectory(USERS)
    settings = _settings(str(tmp_path / "gone.html"))

    with pytest.raises(TemplateError):
        job.run(settings, today=date(2024, 7, 4), directory=directory, sender=sender)

    assert sender.sent == []
    assert directory.calls == 0


def test_leap_day_run(template):
    users = [UserRecord("leap", "Leap", "leap@example.com", '{"DOB":"29/02/2000"}')]

    on_feb_28 = job.run(_settings(template), today=date(2023, 2, 28), directory=StubDirectory(users), sender=StubSender())
    in_leap_year = job.run(_settings(template), today=date(2024, 2, 28), directory=StubDirectory(users), sender=StubSender())

    assert on_feb_28.celebrants == 1
    assert in_leap_year.celebrants == 0


def test_today_defaults_to_configured_timezone(template, monkeypatch):
    monkeypatch.setattr(job, "today_in", lambda tz: date(2024, 7, 4))

    result = job.run(_settings(template, timezone="Europe/Vilnius"), directory=StubDirectory(USERS), sender=StubSender())

    assert result.today == date(2024, 7, 4)
    assert result.celebrants == 3


def _set_env(monkeypatch, template, **extra):
    values = {
        "SENDER_EMAIL": "hr@example.com",
        "SENDER_NAME": "HR Team",
        "SIMULATION_MODE_ENABLED": "true",
        "MAIL_TEMPLATE_HTML": template,
        "DIRECTORY_SERVER": "ldaps://dc01",
        "DIRECTORY_DOMAIN": "corp.example.com",
    }
    values.update(extra)
    for key in ("SENDGRID_API_KEY", "SENDGRID_SECRET_NAME", "CC_RECIPIENT", "DIRECTORY_SEARCH_BASE"):
        monkeypatch.delenv(key, raising=False)
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_lambda_handler_success(monkeypatch, template):
    _set_env(monkeypatch, template)
    directory = StubDirectory(USERS)
    monkeypatch.setattr(job, "build_directory", lambda settings: directory, raising=True)

    resp = job.lambda_handler({"today": "2024-07-04"}, None)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["today"] == "2024-07-04"
    assert body["celebrants"] == 3
    assert body["summary"]["simulated"] == 2


def test_lambda_handler_invalid_today(monkeypatch, template):
    _set_env(monkeypatch, template)

    resp = job.lambda_handler({"today": "July 4th"}, None)

    assert resp["statusCode"] == 400


def test_lambda_handler_config_error_contacts_nothing(monkeypatch, template):
    _set_env(monkeypatch, template, SENDER_EMAIL="nope")

    def fail_build_directory(settings):
        raise AssertionError("directory must not be contacted")

    monkeypatch.setattr(job, "build_directory", fail_build_directory, raising=True)

    resp = job.lambda_handler({}, None)

    assert resp["statusCode"] == 500
    assert json.loads(resp["body"]) == {"error": "server_misconfigured"}


def test_lambda_handler_directory_failure(monkeypatch, template):
    _set_env(monkeypatch, template)

    class BrokenDirectory:
        def get_enabled_users(self):
            raise RuntimeError("LDAP bind failed")

    monkeypatch.setattr(job, "build_directory", lambda settings: BrokenDirectory(), raising=True)

    resp = job.lambda_handler({"today": "2024-07-04"}, None)

    assert resp["statusCode"] == 500
    assert json.loads(resp["body"]) == {"error": "job_failed"}


def test_main_exit_codes(monkeypatch, template):
    _set_env(monkeypatch, template)
    monkeypatch.setattr(job, "build_directory", lambda settings: StubDirectory(USERS), raising=True)
    assert job.main() == 0

    monkeypatch.setenv("SIMULATION_MODE_ENABLED", "sometimes")
    assert job.main() == 1

