"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_time_format(value: Optional[str]) -> bool:
    """Check a wall-clock time in HH:MM (24h) format"""
    return bool(value) and bool(TIME_PATTERN.match(value))


def validate_time(value: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a time of day to zero-padded HH:MM.

    Args:
        value: Time string such as "9:00" or "09:00"

    Returns:
        Normalized time string ("09:00")

    Raises:
        ValueError: If the time is not HH:MM
    """
    if value is None:
        return value

    value = value.strip()
    if not is_valid_time_format(value):
        raise ValueError("Invalid time format. Use HH:MM format")

    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def validate_date(value) -> date:
    """
    Accept a date, a datetime or a YYYY-MM-DD string and return a date.

    Raises:
        ValueError: If the string is not an ISO calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as e:
        raise ValueError("Invalid date format. Use YYYY-MM-DD format") from e


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email
