"""Contact data normalisation used for customer matching."""
import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email

PHONE_PATTERN = re.compile(r"^\+\d{8,15}$")
_PHONE_NOISE = re.compile(r"[\s\-\.\(\)]")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def normalize_phone(phone: Optional[str], country_code: str = "+34") -> Optional[str]:
    """
    Normalise a phone number to "+<country><number>".
    "600 000 000" -> "+34600000000", "0034600000000" -> "+34600000000".
    """
    if phone is None:
        return None
    phone = _PHONE_NOISE.sub("", phone)
    if not phone:
        return None
    if phone.startswith("00"):
        phone = "+" + phone[2:]
    if not phone.startswith("+"):
        phone = f"{country_code}{phone}"
    return phone


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone))


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
