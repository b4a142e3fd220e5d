"""
Form state for creating and editing services and service options.

Validation only runs once a submit was attempted; after that every change re-validates
so the errors shown always match the current values.
"""

from typing import Optional

from ...shared.validators import ValidationResult, validate_service, validate_service_option

# Base values stored for a service priced through its options
OPTIONS_BASE_PRICE = 0
OPTIONS_BASE_DURATION = 30


def _options_pricing() -> dict:
    return {
        "price": OPTIONS_BASE_PRICE,
        "duration_minutes": OPTIONS_BASE_DURATION,
        "time_varies": False,
        "price_varies": False,
        "min_duration": None,
        "max_duration": None,
        "min_price": None,
        "max_price": None,
    }


class FormValidationError(Exception):
    def __init__(self, errors: dict[str, str]):
        super().__init__("Form has validation errors")
        self.errors = errors


def _pricing_defaults() -> dict:
    return {
        "name": "",
        "description": "",
        "duration_minutes": 30,
        "price": 0,
        "time_varies": False,
        "price_varies": False,
        "min_duration": None,
        "max_duration": None,
        "min_price": None,
        "max_price": None,
        "is_active": True,
    }


class _PricingForm:
    def __init__(self, existing: Optional[dict] = None):
        self.existing = existing
        self.errors: dict[str, str] = {}
        self.submit_attempted = False
        self.data = self.defaults()
        if existing:
            self.data.update(self.from_existing(existing))

    @classmethod
    def from_submission(cls, values: dict, existing: Optional[dict] = None):
        """Form holding submitted values on top of the defaults or an existing row"""
        form = cls(existing)
        form.data.update({key: value for key, value in values.items() if key in form.data})
        return form

    @staticmethod
    def defaults() -> dict:
        return _pricing_defaults()

    @staticmethod
    def from_existing(row: dict) -> dict:
        return {
            "name": row.get("name") or "",
            "description": row.get("description") or "",
            "duration_minutes": row.get("duration_minutes") or 30,
            "price": row.get("price") or 0,
            "time_varies": row.get("time_varies") or False,
            "price_varies": row.get("price_varies") or False,
            "min_duration": row.get("min_duration") or None,
            "max_duration": row.get("max_duration") or None,
            "min_price": row.get("min_price") or None,
            "max_price": row.get("max_price") or None,
            "is_active": True if row.get("is_active") is None else row["is_active"],
        }

    @property
    def is_edit(self) -> bool:
        return self.existing is not None

    def validate(self) -> ValidationResult:
        raise NotImplementedError

    def set_field(self, field: str, value) -> None:
        self.data[field] = value

        # Switching a value back to fixed clears its range
        if field == "time_varies" and not value:
            self.data["min_duration"] = None
            self.data["max_duration"] = None
        if field == "price_varies" and not value:
            self.data["min_price"] = None
            self.data["max_price"] = None

        if self.submit_attempted:
            self.errors = self.validate().errors

    def submit_data(self) -> dict:
        return dict(self.data)

    def submit(self) -> dict:
        """Validate and return the payload to send; raises FormValidationError when invalid"""
        self.submit_attempted = True
        result = self.validate()
        self.errors = result.errors
        if not result.is_valid:
            raise FormValidationError(result.errors)
        return self.submit_data()

    def reset(self) -> None:
        """Clear a create form after a successful submit"""
        self.data = self.defaults()
        self.errors = {}
        self.submit_attempted = False


class ServiceForm(_PricingForm):
    @staticmethod
    def defaults() -> dict:
        return {**_pricing_defaults(), "has_options": False}

    @staticmethod
    def from_existing(row: dict) -> dict:
        return {**_PricingForm.from_existing(row), "has_options": row.get("has_options") or False}

    def validate(self) -> ValidationResult:
        return validate_service(self.data)

    def set_field(self, field: str, value) -> None:
        if field == "has_options" and value:
            # Options carry the price and duration, keep the service's own values minimal
            self.data.update(_options_pricing())
        super().set_field(field, value)

    def submit_data(self) -> dict:
        data = dict(self.data)
        if data.get("has_options"):
            data.update(_options_pricing())
        return data


class ServiceOptionForm(_PricingForm):
    @staticmethod
    def defaults() -> dict:
        return {**_pricing_defaults(), "display_order": 0}

    @staticmethod
    def from_existing(row: dict) -> dict:
        return {**_PricingForm.from_existing(row), "display_order": row.get("display_order") or 0}

    def validate(self) -> ValidationResult:
        return validate_service_option(self.data)
