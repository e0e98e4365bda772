"""
Runtime settings. Everything here can be overridden from the environment.
"""
import logging
import os


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Paid to each pilot of a no-show flight, booked as a ticket payment
NO_SHOW_COMPENSATION = float(os.getenv("NO_SHOW_COMPENSATION", "-103"))

# Non-admins lose edit rights this long after the booking day ends
EDIT_LOCK_HOURS = int(os.getenv("EDIT_LOCK_HOURS", "24"))

EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "30"))


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
