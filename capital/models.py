# capital/models.py
from datetime import datetime
from extensions import db
from sqlalchemy import Numeric, event

from utils.money import as_float

INFLOW = "inflow"
DEPLOYMENT = "deployment"
RETURN = "return"
WITHDRAWAL = "withdrawal"

TRANSACTION_TYPES = (INFLOW, DEPLOYMENT, RETURN, WITHDRAWAL)
CREDIT_TYPES = frozenset({INFLOW, RETURN})
DEBIT_TYPES = frozenset({DEPLOYMENT, WITHDRAWAL})

STATUS_COMPLETED = "completed"


# --------------------
# Capital Ledger (append-only)
# --------------------
class CapitalTransaction(db.Model):
    __tablename__ = "capital_transactions"

    id = db.Column(db.Integer, primary_key=True)
    investor_id = db.Column(db.Integer, db.ForeignKey("investors.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(20), nullable=False, index=True)  # inflow|deployment|return|withdrawal
    amount = db.Column(Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_COMPLETED)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    contractor_id = db.Column(db.Integer, db.ForeignKey("contractors.id"), nullable=True, index=True)
    purchase_request_id = db.Column(db.Integer, db.ForeignKey("purchase_requests.id"), nullable=True, index=True)

    reference_number = db.Column(db.String(100), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    admin_user_id = db.Column(db.String(64), nullable=True)   # operator identity when known

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    investor = db.relationship("Investor", lazy="select")
    project = db.relationship("Project", lazy="select")

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_capital_transactions_amount_positive"),
    )

    def to_dict(self, with_summaries=False):
        data = {
            "id": self.id,
            "investor_id": self.investor_id,
            "transaction_type": self.transaction_type,
            "amount": as_float(self.amount),
            "status": self.status,
            "project_id": self.project_id,
            "contractor_id": self.contractor_id,
            "purchase_request_id": self.purchase_request_id,
            "reference_number": self.reference_number,
            "description": self.description,
            "admin_user_id": self.admin_user_id,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else None,
        }
        if with_summaries:
            data["investor"] = self.investor.summary() if self.investor else None
            data["project_name"] = self.project.project_name if self.project else None
        return data


@event.listens_for(CapitalTransaction, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise RuntimeError(f"capital transaction {target.id} is immutable")


@event.listens_for(CapitalTransaction, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise RuntimeError(f"capital transaction {target.id} cannot be deleted")


# --------------------
# Investor Account (materialized running balance)
# --------------------
class InvestorAccount(db.Model):
    __tablename__ = "investor_accounts"

    id = db.Column(db.Integer, primary_key=True)
    investor_id = db.Column(db.Integer, db.ForeignKey("investors.id"), nullable=False, unique=True, index=True)
    available_balance = db.Column(Numeric(18, 2), nullable=False, default=0)
    # bumped on every balance write, used for compare-and-swap debits
    version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    investor = db.relationship("Investor", lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "investor_id": self.investor_id,
            "available_balance": as_float(self.available_balance),
            "version": self.version,
            "investor": self.investor.summary() if self.investor else None,
            "updated_at": self.updated_at.strftime("%Y-%m-%d %H:%M:%S") if self.updated_at else None,
        }


# --------------------
# Project Deployment (audit trail for deployments tied to a project)
# --------------------
class ProjectDeployment(db.Model):
    __tablename__ = "project_deployments"

    id = db.Column(db.Integer, primary_key=True)
    investor_id = db.Column(db.Integer, db.ForeignKey("investors.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    purchase_request_id = db.Column(db.Integer, db.ForeignKey("purchase_requests.id"), nullable=True, index=True)
    capital_transaction_id = db.Column(db.Integer, db.ForeignKey("capital_transactions.id"), nullable=True)
    amount_deployed = db.Column(Numeric(18, 2), nullable=False)
    deployment_date = db.Column(db.Date, nullable=False)
    admin_deployed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


# --------------------
# Investor Payment Submission (investor-reported transfer awaiting review)
# --------------------
SUBMISSION_PENDING = "pending"
SUBMISSION_APPROVED = "approved"
SUBMISSION_REJECTED = "rejected"
SUBMISSION_STATUSES = (SUBMISSION_PENDING, SUBMISSION_APPROVED, SUBMISSION_REJECTED)


class PaymentSubmission(db.Model):
    __tablename__ = "investor_payment_submissions"

    id = db.Column(db.Integer, primary_key=True)
    investor_id = db.Column(db.Integer, db.ForeignKey("investors.id"), nullable=False, index=True)
    amount = db.Column(Numeric(18, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(30), nullable=False, default="bank_transfer")
    payment_reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=SUBMISSION_PENDING, index=True)
    review_notes = db.Column(db.String(500), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by = db.Column(db.String(64), nullable=True)
    # set only when the submission is approved
    capital_transaction_id = db.Column(db.Integer, db.ForeignKey("capital_transactions.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    investor = db.relationship("Investor", lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "investor_id": self.investor_id,
            "investor": self.investor.summary() if self.investor else None,
            "amount": as_float(self.amount),
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "notes": self.notes,
            "status": self.status,
            "review_notes": self.review_notes,
            "reviewed_at": self.reviewed_at.strftime("%Y-%m-%d %H:%M:%S") if self.reviewed_at else None,
            "reviewed_by": self.reviewed_by,
            "capital_transaction_id": self.capital_transaction_id,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else None,
        }
