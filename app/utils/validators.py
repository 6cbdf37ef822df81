import re
from typing import Optional

ISBN_PATTERN = re.compile(r"^\d{13}$", re.ASCII)
DNI_PATTERN = re.compile(r"^\d{7,8}$", re.ASCII)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MEMBER_NUMBER_PATTERN = re.compile(r"^SOC(\d+)$", re.ASCII)
MEMBER_NUMBER_PREFIX = "SOC"


def is_valid_isbn(value: Optional[str]) -> bool:
    """ISBN as stored in the catalog: exactly 13 digits, no separators."""
    return bool(value) and ISBN_PATTERN.fullmatch(value) is not None


def is_valid_dni(value: Optional[str]) -> bool:
    return bool(value) and DNI_PATTERN.fullmatch(value) is not None


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.fullmatch(value) is not None


def is_valid_member_number(value: Optional[str]) -> bool:
    if not value:
        return False
    match = MEMBER_NUMBER_PATTERN.fullmatch(value)
    return match is not None and len(match.group(1)) >= 3


def member_number_suffix(value: Optional[str]) -> Optional[int]:
    """Integer part of a member number, or None when it is not of the SOC form."""
    if not value:
        return None
    match = MEMBER_NUMBER_PATTERN.fullmatch(value)
    return int(match.group(1)) if match else None


def format_member_number(sequence: int) -> str:
    return f"{MEMBER_NUMBER_PREFIX}{sequence:03d}"
