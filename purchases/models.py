# purchases/models.py
from datetime import datetime
from decimal import Decimal
from extensions import db
from sqlalchemy import Numeric

from utils.money import as_float, money, to_decimal


def _ts(value):
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else None


class PurchaseRequest(db.Model):
    __tablename__ = "purchase_requests"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    contractor_id = db.Column(db.Integer, db.ForeignKey("contractors.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    # draft|submitted|approved|funded|po_generated|completed|rejected
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    approval_notes = db.Column(db.String(500), nullable=True)
    remarks = db.Column(db.String(500), nullable=True)

    # delivery sub-state: not_dispatched|dispatched|delivered (+ dispute flag)
    delivery_status = db.Column(db.String(20), nullable=False, default="not_dispatched", index=True)
    dispatched_at = db.Column(db.DateTime, nullable=True)
    dispute_deadline = db.Column(db.DateTime, nullable=True, index=True)
    dispute_raised_at = db.Column(db.DateTime, nullable=True)
    dispute_reason = db.Column(db.String(500), nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    deemed_delivery = db.Column(db.Boolean, nullable=False, default=False)

    submitted_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    funded_at = db.Column(db.DateTime, nullable=True)
    po_generated_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "PurchaseRequestItem",
        backref="purchase_request",
        cascade="all, delete-orphan",
        order_by="PurchaseRequestItem.id",
    )
    vendor = db.relationship("Vendor", lazy="select")

    @property
    def is_disputed(self):
        return self.dispute_raised_at is not None

    def to_dict(self, with_items=True):
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "contractor_id": self.contractor_id,
            "vendor_id": self.vendor_id,
            "status": self.status,
            "approval_notes": self.approval_notes,
            "remarks": self.remarks,
            "delivery_status": self.delivery_status,
            "disputed": self.is_disputed,
            "dispute_reason": self.dispute_reason,
            "dispatched_at": _ts(self.dispatched_at),
            "dispute_deadline": _ts(self.dispute_deadline),
            "dispute_raised_at": _ts(self.dispute_raised_at),
            "delivered_at": _ts(self.delivered_at),
            "deemed_delivery": bool(self.deemed_delivery),
            "submitted_at": _ts(self.submitted_at),
            "approved_at": _ts(self.approved_at),
            "funded_at": _ts(self.funded_at),
            "po_generated_at": _ts(self.po_generated_at),
            "completed_at": _ts(self.completed_at),
            "created_at": _ts(self.created_at),
        }
        if with_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseRequestItem(db.Model):
    __tablename__ = "purchase_request_items"

    id = db.Column(db.Integer, primary_key=True)
    purchase_request_id = db.Column(db.Integer, db.ForeignKey("purchase_requests.id"), nullable=False, index=True)
    item_description = db.Column(db.String(255), nullable=True)
    requested_qty = db.Column(Numeric(18, 3), nullable=False)
    approved_qty = db.Column(Numeric(18, 3), nullable=True)
    unit_rate = db.Column(Numeric(18, 2), nullable=True)
    tax_percent = db.Column(Numeric(6, 2), nullable=True, default=0)
    status = db.Column(db.String(20), nullable=False, default="pending")  # pending|approved|ordered|rejected
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def line_total(self) -> Decimal:
        qty = to_decimal(self.requested_qty or 0)
        rate = to_decimal(self.unit_rate or 0)
        tax = to_decimal(self.tax_percent or 0)
        base = qty * rate
        return base + base * tax / Decimal(100)

    def to_dict(self):
        return {
            "id": self.id,
            "item_description": self.item_description,
            "requested_qty": as_float(self.requested_qty),
            "approved_qty": as_float(self.approved_qty),
            "unit_rate": as_float(self.unit_rate),
            "tax_percent": as_float(self.tax_percent),
            "status": self.status,
            "line_total": float(money(self.line_total)),
        }
