"""Input rules for account fields (phone numbers, passwords, emails)."""

import re

COUNTRY_CODE_RE = re.compile(r"^\+[0-9]{1,4}$")
MOBILE_RE = re.compile(r"^[0-9]{7,15}$")
PASSWORD_RE = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#])")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MOBILE_PATTERNS = {
    '+91': r'^[6-9][0-9]{9}$',
    '+1': r'^[2-9][0-9]{9}$',
    '+44': r'^[1-9][0-9]{9,10}$',
    '+61': r'^[4-5][0-9]{8}$',
    '+971': r'^[5][0-9]{8}$',
    '+65': r'^[8-9][0-9]{7}$',
    '+60': r'^[1][0-9]{8,9}$',
    '+86': r'^[1][0-9]{10}$',
    '+81': r'^[7-9][0-9]{9}$',
    '+82': r'^[1][0-9]{9}$',
    '+49': r'^[1][0-9]{9,10}$',
    '+33': r'^[6-7][0-9]{8}$',
    '+39': r'^[3][0-9]{8,9}$',
    '+34': r'^[6-7][0-9]{8}$',
    '+7': r'^[9][0-9]{9}$',
    '+55': r'^[1-9][0-9]{10}$',
    '+52': r'^[1-9][0-9]{9}$',
    '+27': r'^[6-8][0-9]{8}$',
    '+234': r'^[7-9][0-9]{9}$',
    '+20': r'^[1][0-9]{9}$',
}


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email) or len(email) > 255:
        raise ValueError("The email must be a valid email address.")
    return email


def validate_mobile(country_code: str, mobile: str) -> None:
    """Check the generic format and, where known, the country pattern."""
    if not COUNTRY_CODE_RE.match(country_code or ""):
        raise ValueError("The country code format is invalid.")
    if not MOBILE_RE.match(mobile or ""):
        raise ValueError("The mobile number must be 7 to 15 digits.")
    pattern = MOBILE_PATTERNS.get(country_code)
    if pattern and not re.match(pattern, mobile):
        raise ValueError(f"Invalid mobile number format for {country_code}.")


def validate_password(password: str, confirmation=None, strong: bool = True) -> None:
    if not password or len(password) < 8:
        raise ValueError("The password must be at least 8 characters.")
    if strong and not PASSWORD_RE.match(password):
        raise ValueError(
            "The password must contain uppercase and lowercase letters, a number and a special character (@$!%*?&#)."
        )
    if confirmation is not None and confirmation != password:
        raise ValueError("The password confirmation does not match.")
