"""
Birthday Mailer Utilities
=========================

Shared helper modules for the birthday mailer job:

- logger.py           → structured JSON logging (console + optional daily file)
- secrets.py          → AWS Secrets Manager integration
- sendgrid_client.py  → SendGrid sender builder

All functions in this package are stateless and thread-safe; the SendGrid
sender is shared by the dispatcher's worker threads.
"""

from birthday_mailer.utils.logger import get_logger, log

# ---------------------------------------------------------------------------
# Public exports
# ---------------------------------------------------------------------------
__all__ = [
    "get_logger",
    "log",
]
