# capital/schemas.py
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from capital.models import RETURN, SUBMISSION_STATUSES, TRANSACTION_TYPES
from utils.errors import ValidationError
from utils.money import money, to_decimal


def parse_id(value, field, required=False):
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id", field=field)
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", field=field)
    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive id", field=field)
    return parsed


def parse_amount(value, field="amount") -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    try:
        amount = money(to_decimal(value))
    except ValueError:
        raise ValidationError(f"{field} must be a number", field=field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return amount


def parse_choice(value, field, default=""):
    """Lower-cased keyword from a JSON field; anything but a string is rejected."""
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value.strip().lower()


def _text(value, limit):
    if value is None:
        return None
    text = str(value).strip()
    return text[:limit] if text else None


@dataclass(frozen=True)
class CapitalTransactionRequest:
    transaction_type: str
    amount: Decimal
    description: str
    investor_id: int | None = None
    project_id: int | None = None
    contractor_id: int | None = None
    purchase_request_id: int | None = None
    reference_number: str | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        transaction_type = parse_choice(data.get("transaction_type"), "transaction_type")
        if not transaction_type:
            raise ValidationError("transaction_type is required", field="transaction_type")
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(
                f"transaction_type must be one of {', '.join(TRANSACTION_TYPES)}",
                field="transaction_type",
            )

        description = _text(data.get("description"), 255)
        if not description:
            raise ValidationError("description is required", field="description")

        # returns are split across the funding investors, everything else names one
        investor_id = parse_id(data.get("investor_id"), "investor_id",
                               required=transaction_type != RETURN)
        purchase_request_id = parse_id(data.get("purchase_request_id"), "purchase_request_id",
                                       required=transaction_type == RETURN)

        return cls(
            transaction_type=transaction_type,
            amount=parse_amount(data.get("amount")),
            description=description,
            investor_id=investor_id,
            project_id=parse_id(data.get("project_id"), "project_id"),
            contractor_id=parse_id(data.get("contractor_id"), "contractor_id"),
            purchase_request_id=purchase_request_id,
            reference_number=_text(data.get("reference_number"), 100),
        )


@dataclass(frozen=True)
class ListTransactionsQuery:
    page: int = 1
    limit: int = 20
    investor_id: int | None = None
    transaction_type: str | None = None
    search: str | None = None

    MAX_LIMIT = 100

    @classmethod
    def from_args(cls, args):
        try:
            page = int(args.get("page", 1))
            limit = int(args.get("limit", 20))
        except (TypeError, ValueError):
            raise ValidationError("page and limit must be integers")
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        transaction_type = (args.get("transaction_type") or "").strip().lower() or None
        if transaction_type and transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction_type '{transaction_type}'",
                                  field="transaction_type")

        return cls(
            page=page,
            limit=min(limit, cls.MAX_LIMIT),
            investor_id=parse_id(args.get("investor_id"), "investor_id"),
            transaction_type=transaction_type,
            search=_text(args.get("search"), 100),
        )


REVIEW_ACTIONS = ("approve", "reject")


def parse_date(value, field):
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field=field)


@dataclass(frozen=True)
class PaymentSubmissionDraft:
    investor_id: int
    amount: Decimal
    payment_date: date
    payment_method: str = "bank_transfer"
    payment_reference: str | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return cls(
            investor_id=parse_id(data.get("investor_id"), "investor_id", required=True),
            amount=parse_amount(data.get("amount")),
            payment_date=parse_date(data.get("payment_date"), "payment_date"),
            payment_method=parse_choice(data.get("payment_method"), "payment_method",
                                        default="bank_transfer")[:30],
            payment_reference=_text(data.get("payment_reference"), 100),
            notes=_text(data.get("notes"), 500),
        )


@dataclass(frozen=True)
class PaymentReview:
    submission_id: int
    action: str
    review_notes: str | None = None
    description: str | None = None
    reference_number: str | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        action = parse_choice(data.get("action"), "action")
        if action not in REVIEW_ACTIONS:
            raise ValidationError("action must be 'approve' or 'reject'", field="action")
        return cls(
            submission_id=parse_id(data.get("id"), "id", required=True),
            action=action,
            review_notes=_text(data.get("review_notes"), 500),
            description=_text(data.get("description"), 255),
            reference_number=_text(data.get("reference_number"), 100),
        )


@dataclass(frozen=True)
class ListPaymentSubmissionsQuery:
    status: str | None = "pending"
    investor_id: int | None = None

    @classmethod
    def from_args(cls, args):
        status = parse_choice(args.get("status"), "status", default="pending")
        if status == "all":
            status = None
        elif status not in SUBMISSION_STATUSES:
            raise ValidationError(f"Unknown status '{status}'", field="status")
        return cls(status=status, investor_id=parse_id(args.get("investor_id"), "investor_id"))
