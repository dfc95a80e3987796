# purchases/schemas.py
from dataclasses import dataclass, field
from decimal import Decimal

from capital.schemas import parse_choice, parse_id
from purchases import state_machine as sm
from utils.errors import ValidationError
from utils.money import to_decimal

ACTIONS = ("approve_for_purchase", "approve_for_funding", "reject", "assign_vendor")


def _number(value, name, required=True, allow_zero=False):
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required", field=name)
        return None
    try:
        number = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number", field=name)
    if number < 0 or (number == 0 and not allow_zero):
        raise ValidationError(f"{name} must be positive", field=name)
    return number


@dataclass(frozen=True)
class PurchaseRequestAction:
    purchase_request_id: int
    action: str
    admin_notes: str | None = None
    vendor_id: int | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        action = parse_choice(data.get("action"), "action")
        if action not in ACTIONS:
            raise ValidationError(f"action must be one of {', '.join(ACTIONS)}", field="action")

        vendor_id = parse_id(data.get("vendor_id"), "vendor_id",
                             required=action == "assign_vendor")
        notes = data.get("admin_notes")
        return cls(
            purchase_request_id=parse_id(data.get("purchase_request_id"), "purchase_request_id",
                                         required=True),
            action=action,
            admin_notes=str(notes).strip()[:500] if notes else None,
            vendor_id=vendor_id,
        )


@dataclass(frozen=True)
class ItemDraft:
    item_description: str
    requested_qty: Decimal
    unit_rate: Decimal
    tax_percent: Decimal = Decimal("0")

    @classmethod
    def from_json(cls, data, index):
        if not isinstance(data, dict):
            raise ValidationError(f"items[{index}] must be an object")
        raw = data.get("item_description")
        description = str(raw).strip() if raw is not None else ""
        if not description:
            raise ValidationError(f"items[{index}].item_description is required")
        return cls(
            item_description=description[:255],
            requested_qty=_number(data.get("requested_qty"), f"items[{index}].requested_qty"),
            unit_rate=_number(data.get("unit_rate"), f"items[{index}].unit_rate"),
            tax_percent=_number(data.get("tax_percent"), f"items[{index}].tax_percent",
                                required=False, allow_zero=True) or Decimal("0"),
        )


@dataclass(frozen=True)
class PurchaseRequestDraft:
    contractor_id: int
    items: tuple = field(default_factory=tuple)
    project_id: int | None = None
    vendor_id: int | None = None
    remarks: str | None = None
    status: str = sm.DRAFT

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item is required", field="items")

        status = parse_choice(data.get("status"), "status", default=sm.DRAFT)
        if status not in (sm.DRAFT, sm.SUBMITTED):
            raise ValidationError("status must be 'draft' or 'submitted'", field="status")

        remarks = data.get("remarks")
        return cls(
            contractor_id=parse_id(data.get("contractor_id"), "contractor_id", required=True),
            items=tuple(ItemDraft.from_json(item, i) for i, item in enumerate(raw_items)),
            project_id=parse_id(data.get("project_id"), "project_id"),
            vendor_id=parse_id(data.get("vendor_id"), "vendor_id"),
            remarks=str(remarks).strip()[:500] if remarks else None,
            status=status,
        )


@dataclass(frozen=True)
class DispatchRequest:
    purchase_request_id: int
    dispute_window_hours: int | None = None

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        hours = data.get("dispute_window_hours")
        if hours is not None:
            try:
                hours = int(hours)
            except (TypeError, ValueError):
                raise ValidationError("dispute_window_hours must be an integer",
                                      field="dispute_window_hours")
        return cls(
            purchase_request_id=parse_id(data.get("purchase_request_id"), "purchase_request_id",
                                         required=True),
            dispute_window_hours=hours,
        )


@dataclass(frozen=True)
class ListPurchaseRequestsQuery:
    status: str | None = None
    limit: int = 50
    offset: int = 0

    @classmethod
    def from_args(cls, args):
        status = (args.get("status") or "").strip().lower() or None
        if status and status not in sm.STATUSES:
            raise ValidationError(f"Unknown status '{status}'", field="status")
        try:
            limit = int(args.get("limit", 50))
            offset = int(args.get("offset", 0))
        except (TypeError, ValueError):
            raise ValidationError("limit and offset must be integers")
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        return cls(status=status, limit=min(limit, 200), offset=offset)
