# capital/repository.py
import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from capital.ledger import build_snapshot, build_snapshots, replay_balance
from capital.models import (
    CapitalTransaction, InvestorAccount, PaymentSubmission, ProjectDeployment, STATUS_COMPLETED,
)
from purchases.models import PurchaseRequest
from purchases.state_machine import DISPATCHED
from utils.errors import Conflict, FundingError, InfrastructureError, InsufficientBalance
from utils.money import ZERO, money

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SqlAlchemyFundingRepository:
    """
    Persistence for the funding engine on top of the Flask-SQLAlchemy session.

    Everything staged inside `unit_of_work()` is committed together or not at all.
    Balance debits and credits are conditional writes on InvestorAccount.version.
    """

    def __init__(self, session=None, cas_retries=3):
        self.session = session or db.session
        self.cas_retries = max(1, int(cas_retries))

    @contextmanager
    def unit_of_work(self):
        try:
            yield self
            self.session.commit()
        except FundingError:
            self.session.rollback()
            raise
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Funding unit of work failed, changes rolled back")
            raise InfrastructureError()
        except Exception:
            self.session.rollback()
            raise

    def flush(self):
        self.session.flush()

    # --------------------
    # Investor accounts
    # --------------------
    def ensure_account(self, investor_id):
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        now = datetime.utcnow()
        if insert is not None:
            stmt = (
                insert(InvestorAccount)
                .values(investor_id=investor_id, available_balance=ZERO, version=0,
                        created_at=now, updated_at=now)
                .on_conflict_do_nothing(index_elements=["investor_id"])
            )
            self.session.execute(stmt)
            return

        exists = self.session.execute(
            select(InvestorAccount.id).where(InvestorAccount.investor_id == investor_id)
        ).first()
        if exists is None:
            self.session.add(InvestorAccount(investor_id=investor_id, available_balance=ZERO, version=0))
            self.session.flush()

    def _balance_row(self, investor_id):
        return self.session.execute(
            select(InvestorAccount.available_balance, InvestorAccount.version)
            .where(InvestorAccount.investor_id == investor_id)
        ).first()

    def get_available_balance(self, investor_id):
        row = self._balance_row(investor_id)
        return money(row.available_balance) if row is not None else ZERO

    def _apply_delta(self, investor_id, delta):
        for attempt in range(1, self.cas_retries + 1):
            row = self._balance_row(investor_id)
            if row is None:
                self.ensure_account(investor_id)
                continue
            balance = money(row.available_balance)
            new_balance = balance + delta
            if new_balance < 0:
                logger.warning("Debit rejected for investor %s: available %s, required %s",
                               investor_id, balance, -delta)
                raise InsufficientBalance(available=balance, required=-delta)

            result = self.session.execute(
                update(InvestorAccount)
                .where(InvestorAccount.investor_id == investor_id,
                       InvestorAccount.version == row.version)
                .values(available_balance=new_balance,
                        version=InvestorAccount.version + 1,
                        updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return new_balance
            logger.info("Balance version moved for investor %s (attempt %s/%s)",
                        investor_id, attempt, self.cas_retries)
        raise Conflict("Investor balance changed concurrently, please retry", investor_id=investor_id)

    # --------------------
    # Ledger writes
    # --------------------
    def _insert_transaction(self, entry):
        txn = CapitalTransaction(
            investor_id=entry.investor_id,
            transaction_type=entry.transaction_type,
            amount=money(entry.amount),
            status=STATUS_COMPLETED,
            project_id=entry.project_id,
            contractor_id=entry.contractor_id,
            purchase_request_id=entry.purchase_request_id,
            reference_number=entry.reference_number,
            description=entry.description,
            admin_user_id=entry.admin_user_id,
            created_at=datetime.utcnow(),
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def record_credit(self, entry):
        self.ensure_account(entry.investor_id)
        txn = self._insert_transaction(entry)
        self._apply_delta(entry.investor_id, money(entry.amount))
        return txn

    def record_debit(self, entry):
        txn = self._insert_transaction(entry)
        self._apply_delta(entry.investor_id, -money(entry.amount))
        return txn

    def record_returns(self, entries):
        return [self.record_credit(entry) for entry in entries]

    def record_project_deployment(self, txn, project_id, admin_user_id=None, notes=None):
        record = ProjectDeployment(
            investor_id=txn.investor_id,
            project_id=project_id,
            purchase_request_id=txn.purchase_request_id,
            capital_transaction_id=txn.id,
            amount_deployed=txn.amount,
            deployment_date=(txn.created_at or datetime.utcnow()).date(),
            admin_deployed_by=admin_user_id,
            notes=notes,
        )
        self.session.add(record)
        return record

    # --------------------
    # Reads
    # --------------------
    def get_purchase_request(self, purchase_request_id, for_update=False):
        query = self.session.query(PurchaseRequest).filter(PurchaseRequest.id == purchase_request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add_purchase_request(self, request):
        self.session.add(request)
        self.session.flush()
        return request

    def _ledger_rows(self, purchase_request_ids):
        return (
            self.session.query(CapitalTransaction)
            .filter(CapitalTransaction.purchase_request_id.in_(list(purchase_request_ids)),
                    CapitalTransaction.status == STATUS_COMPLETED)
            .order_by(CapitalTransaction.created_at, CapitalTransaction.id)
            .all()
        )

    def ledger_snapshot(self, purchase_request_id):
        return build_snapshot(purchase_request_id, self._ledger_rows([purchase_request_id]))

    def ledger_snapshots(self, purchase_request_ids):
        ids = list(purchase_request_ids)
        if not ids:
            return {}
        return build_snapshots(ids, self._ledger_rows(ids))

    def transactions_for_investor(self, investor_id):
        return (
            self.session.query(CapitalTransaction)
            .filter(CapitalTransaction.investor_id == investor_id)
            .order_by(CapitalTransaction.created_at, CapitalTransaction.id)
            .all()
        )

    def replay_balance(self, investor_id):
        return replay_balance(self.transactions_for_investor(investor_id))

    def list_overdue_dispatches(self, now):
        return (
            self.session.query(PurchaseRequest)
            .filter(PurchaseRequest.delivery_status == DISPATCHED,
                    PurchaseRequest.dispute_raised_at.is_(None),
                    PurchaseRequest.dispute_deadline.isnot(None),
                    PurchaseRequest.dispute_deadline < now)
            .order_by(PurchaseRequest.dispute_deadline)
            .all()
        )

    # --------------------
    # Payment submissions
    # --------------------
    def add_payment_submission(self, submission):
        self.session.add(submission)
        self.session.flush()
        return submission

    def get_payment_submission(self, submission_id, for_update=False):
        query = self.session.query(PaymentSubmission).filter(PaymentSubmission.id == submission_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
