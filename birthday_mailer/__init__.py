"""
Birthday Mailer
===============

Scheduled batch job that congratulates colleagues on their birthday.
It scans Active Directory for enabled accounts, reads each account's date of
birth from a custom attribute holding JSON (``{"DOB": "04/07/1990"}``), and
sends a templated email through SendGrid to everyone born on today's date.

Modules under this package:
- birthdays.py   → date-of-birth parsing and celebrant filtering
- templates.py   → mail template loading and {{name}} substitution
- dispatcher.py  → parallel, failure-isolated delivery with simulation mode
- directory.py   → Active Directory (LDAP) user scan
- config.py      → environment-based settings and validation
- job.py         → run orchestration, CLI and Lambda entry points
- utils/         → shared helpers (logging, secrets, SendGrid client)

Environment variables expected:
  • SENDER_EMAIL / SENDER_NAME   - From address and display name
  • SIMULATION_MODE_ENABLED      - 'true' to log instead of sending
  • MAIL_SUBJECT                 - Subject template (default: "Happy birthday, {{name}}!")
  • MAIL_TEMPLATE_HTML           - Path to the HTML body template
  • CC_RECIPIENT                 - Optional address copied on every mail
  • SENDGRID_API_KEY             - or SENDGRID_SECRET_NAME (AWS Secrets Manager)
  • DIRECTORY_SERVER             - LDAP server URL
  • DIRECTORY_DOMAIN             - or DIRECTORY_SEARCH_BASE
  • LOG_LEVEL / LOG_FILE         - Log verbosity and optional daily log file

Re-running the job on the same day sends the messages again; nothing records
who was already congratulated.
"""

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = ["__version__"]
