"""Shared validation utilities"""

import re
from dataclasses import dataclass, field
from typing import Optional

NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000
PASSWORD_MIN_LENGTH = 6

SIGNUP_ROLES = ("customer", "stylist", "tenant_admin")


@dataclass
class ValidationResult:
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase, stripped email address

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


def _is_positive(value) -> bool:
    return value is not None and value != "" and value > 0


def _is_non_negative(value) -> bool:
    return value is not None and value != "" and value >= 0


def _validate_pricing(data: dict, errors: dict[str, str]) -> None:
    """Duration and price rules shared by services and options"""
    time_varies = bool(data.get("time_varies"))
    price_varies = bool(data.get("price_varies"))

    if not time_varies and not _is_positive(data.get("duration_minutes")):
        errors["duration_minutes"] = "Duration must be greater than 0"

    if not price_varies and not _is_non_negative(data.get("price")):
        errors["price"] = "Price must be 0 or greater"

    if time_varies:
        min_duration = data.get("min_duration")
        max_duration = data.get("max_duration")
        if not _is_positive(min_duration):
            errors["min_duration"] = "Minimum duration is required when time varies"
        if not _is_positive(max_duration):
            errors["max_duration"] = "Maximum duration is required when time varies"
        if _is_positive(min_duration) and _is_positive(max_duration) and min_duration > max_duration:
            errors["max_duration"] = "Maximum duration must be greater than minimum duration"

    if price_varies:
        min_price = data.get("min_price")
        max_price = data.get("max_price")
        if not _is_non_negative(min_price):
            errors["min_price"] = "Minimum price is required when price varies"
        if not _is_non_negative(max_price):
            errors["max_price"] = "Maximum price is required when price varies"
        if _is_non_negative(min_price) and _is_non_negative(max_price) and min_price > max_price:
            errors["max_price"] = "Maximum price must be greater than minimum price"


def _validate_text(data: dict, errors: dict[str, str], label: str) -> None:
    name = data.get("name") or ""
    if not name.strip():
        errors["name"] = f"{label} name is required"
    if len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"{label} name must be less than {NAME_MAX_LENGTH} characters"

    description = data.get("description") or ""
    if len(description) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters"


def validate_service(data: dict) -> ValidationResult:
    """
    Validate service form data.

    A service with has_options set takes its price and duration from its options,
    so only the text fields are checked.
    """
    errors: dict[str, str] = {}
    _validate_text(data, errors, "Service")
    if not data.get("has_options"):
        _validate_pricing(data, errors)
    return ValidationResult(errors)


def validate_service_option(data: dict) -> ValidationResult:
    """Validate service option form data"""
    errors: dict[str, str] = {}
    _validate_text(data, errors, "Option")
    _validate_pricing(data, errors)
    return ValidationResult(errors)


def validate_signup(data: dict) -> Optional[str]:
    """Return the first signup form error, or None when the form is complete"""
    role = data.get("role")
    if role not in SIGNUP_ROLES:
        return "Please select your role"

    password = data.get("password") or ""
    if not data.get("email") or not password:
        return "Email and password are required"
    if password != data.get("confirm_password"):
        return "Passwords do not match"
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"

    if role in ("customer", "stylist"):
        if not data.get("first_name") or not data.get("last_name"):
            return "First name and last name are required"

    if role == "tenant_admin":
        required = [
            ("business_name", "Business name is required"),
            ("address", "Street address is required"),
            ("city", "City is required"),
            ("state", "State/Province is required"),
            ("country", "Country is required"),
            ("postal_code", "Postal code is required"),
        ]
        for key, message in required:
            if not data.get(key):
                return message

    return None
