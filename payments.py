"""
Payment records and the rules that decide whether a submitted form is acceptable.

- Every field except the database id is required.
- Account category and payment method are closed sets; anything else is rejected.
- All rules run for every submission, so one bad form reports every fault at once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Mapping


class AccountCategory(str, Enum):
    ADMINISTRATIVE_EXPENSE = "administrative expense"
    VARIABLE_COST = "variable cost"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank transfer"
    CREDIT_CARD = "credit card"
    DIRECT_DEBIT = "direct debit"

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self]


_CATEGORY_LABELS = {
    AccountCategory.ADMINISTRATIVE_EXPENSE: "販管費",
    AccountCategory.VARIABLE_COST: "変動費",
}
_METHOD_LABELS = {
    PaymentMethod.BANK_TRANSFER: "振込",
    PaymentMethod.CREDIT_CARD: "クレジットカード",
    PaymentMethod.DIRECT_DEBIT: "口座振替",
}

FIELDS = ("account_category", "payee", "amount", "payment_month", "payment_method")

_DECIMAL_RE = re.compile(r"[-+]?([0-9]+)?(\.[0-9]+)?")
_DECIMAL_BLACKLIST = {"", "+", "-", "."}
_MONTH_RE = re.compile(r"([0-9]{4})-([0-9]{2})")

# Matches the NUMERIC(14, 2) amount column.
AMOUNT_INTEGER_DIGITS = 12
AMOUNT_FRACTION_DIGITS = 2
AMOUNT_SIZE_MSG = (
    f"amount must have at most {AMOUNT_INTEGER_DIGITS} digits before "
    f"and {AMOUNT_FRACTION_DIGITS} after the decimal point"
)


class PaymentsError(Exception):
    """Base class for every error raised by the payments layer."""


class ValidationError(PaymentsError):
    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(e.msg for e in self.errors))


@dataclass(frozen=True)
class FieldError:
    field: str
    value: str
    msg: str

    def to_dict(self) -> dict:
        return {
            "type": "field",
            "path": self.field,
            "value": self.value,
            "msg": self.msg,
            "location": "body",
        }


@dataclass(frozen=True)
class PaymentRecord:
    account_category: AccountCategory
    payee: str
    amount: Decimal
    payment_month: str
    payment_method: PaymentMethod

    def as_params(self) -> dict:
        """Bind parameters for an INSERT/UPDATE statement."""
        return {
            "account_category": self.account_category.value,
            "payee": self.payee,
            "amount": str(self.amount),
            "payment_month": self.payment_month,
            "payment_method": self.payment_method.value,
        }

    def as_form(self) -> dict:
        """Raw string values, as they would come back from the form."""
        return {k: str(v) for k, v in self.as_params().items()}


@dataclass(frozen=True)
class Payment(PaymentRecord):
    id: int

    @property
    def record(self) -> PaymentRecord:
        return PaymentRecord(
            account_category=self.account_category,
            payee=self.payee,
            amount=self.amount,
            payment_month=self.payment_month,
            payment_method=self.payment_method,
        )


@dataclass
class ValidationResult:
    record: PaymentRecord | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors


def is_decimal(value: str) -> bool:
    if value in _DECIMAL_BLACKLIST:
        return False
    return _DECIMAL_RE.fullmatch(value) is not None


def fits_amount_column(value: str) -> bool:
    m = _DECIMAL_RE.fullmatch(value)
    if m is None:
        return False
    integer = (m.group(1) or "").lstrip("0")
    fraction = (m.group(2) or ".")[1:]
    return len(integer) <= AMOUNT_INTEGER_DIGITS and len(fraction) <= AMOUNT_FRACTION_DIGITS


def is_payment_month(value: str) -> bool:
    m = _MONTH_RE.fullmatch(value)
    return bool(m) and 1 <= int(m.group(2)) <= 12


def _enum_value(enum_cls, value: str):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def validate(raw: Mapping[str, object]) -> ValidationResult:
    """Check a submitted payment against every field rule.

    Values are stripped before checking and missing keys count as empty. The
    returned errors follow field order with one entry per failed rule; an empty
    field fails both its "required" rule and its value rule.
    """
    values = {}
    for name in FIELDS:
        v = raw.get(name)
        values[name] = "" if v is None else str(v).strip()
    errors: list[FieldError] = []

    def fail(name: str, msg: str) -> None:
        errors.append(FieldError(name, values[name], msg))

    category = _enum_value(AccountCategory, values["account_category"])
    if not values["account_category"]:
        fail("account_category", "account_category is required")
    if category is None:
        fail("account_category", "account_category has an invalid value")

    if not values["payee"]:
        fail("payee", "payee is required")

    amount = None
    if not values["amount"]:
        fail("amount", "amount is required")
    if is_decimal(values["amount"]):
        try:
            amount = Decimal(values["amount"])
        except InvalidOperation:
            amount = None
    if amount is None:
        fail("amount", "amount must be numeric")
    elif not fits_amount_column(values["amount"]):
        fail("amount", AMOUNT_SIZE_MSG)

    if not values["payment_month"]:
        fail("payment_month", "payment_month is required")
    if not is_payment_month(values["payment_month"]):
        fail("payment_month", "payment_month must be in YYYY-MM format")

    method = _enum_value(PaymentMethod, values["payment_method"])
    if not values["payment_method"]:
        fail("payment_method", "payment_method is required")
    if method is None:
        fail("payment_method", "payment_method has an invalid value")

    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(
        record=PaymentRecord(
            account_category=category,
            payee=values["payee"],
            amount=amount,
            payment_month=values["payment_month"],
            payment_method=method,
        )
    )


def validate_or_raise(raw: Mapping[str, object]) -> PaymentRecord:
    result = validate(raw)
    if not result.ok:
        raise ValidationError(result.errors)
    return result.record
