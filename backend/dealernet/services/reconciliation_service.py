# Overview: Service-layer operations for payments; applies payment mutations and keeps order/invoice aggregates consistent.

"""
Payment Reconciliation Engine

WHY: Orders and invoices carry denormalized payment state
(Order.payment_status, Invoice.paid_amount_cents, Invoice.status). Those
fields are written here and nowhere else, recomputed from the linked payments
every time a payment is created, edited, moved or deleted.

DESIGN PRINCIPLES:
- Tenant first: every operation resolves and verifies the owning company
  before it touches any aggregate
- All-or-nothing: each mutation runs in one transaction (see transactions.atomic)
- Serialized recompute: order/invoice rows are locked FOR UPDATE before their
  sums are read and stay locked until commit
- Lock ordering: orders (ascending id) before invoices (ascending id)
- Two-sided recompute: moving a payment leaves both the old and the new
  order/invoice consistent
- Immutable trail: every mutation appends a PaymentEvent in the same transaction

AGGREGATE RULES:
- Order: paid iff sum(payments) >= total, else pending
- Invoice: paid_amount_cents = sum(payments)
    - sum >= total        -> paid
    - 0 < sum < total     -> partially_paid
    - sum == 0            -> explicit status kept, unless a payment just left
                             the invoice (deleted or moved away); then overdue
                             if past due_date, else sent, whatever the status was
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func

from ..errors import ErrorKind, Result, ServiceError
from ..models import Company, Invoice, Order, Payment, PaymentEvent, User
from ..models.commerce import (
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIALLY_PAID,
    INVOICE_STATUS_SENT,
    ORDER_PAYMENT_PAID,
    ORDER_PAYMENT_PENDING,
)
from ..models.payments import RECONCILIATION_UNRECONCILED
from ..roles import ROLE_ADMIN, ROLE_MANAGER
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    PaymentFilters,
    ValidationError,
    clean_optional_text,
    clean_payment_create,
    clean_payment_patch,
    clean_reconciliation_status,
)
from .transactions import atomic, lock_for_update

logger = logging.getLogger(__name__)


EVENT_PAYMENT_CREATED = "payment.created"
EVENT_PAYMENT_UPDATED = "payment.updated"
EVENT_PAYMENT_DELETED = "payment.deleted"
EVENT_PAYMENT_RECONCILED = "payment.reconciled"

RECONCILER_ROLES = (ROLE_ADMIN, ROLE_MANAGER)
PAID_INVOICE_STATUSES = (INVOICE_STATUS_PAID, INVOICE_STATUS_PARTIALLY_PAID)


@dataclass(frozen=True)
class PaymentPage:
    items: list
    page: int
    limit: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "items": [p.to_dict() for p in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total_items": self.total_items,
                "total_pages": self.total_pages,
            },
        }


class ReconciliationEngine:
    """
    session: SQLAlchemy session (one per request / app context)
    clock: returns the current UTC-naive datetime
    """

    def __init__(self, session, clock: Callable[[], object] = utcnow):
        self.session = session
        self.clock = clock

    # =========================================================================
    # PAYMENT CREATION
    # =========================================================================

    def create_payment(self, principal, data: dict) -> Result:
        """
        Record a payment and recompute the linked order/invoice.

        Company context, in order of precedence:
        1. the linked order's company
        2. the linked invoice's company (its creator's company)
        3. the principal's company

        Every linked record must belong to the principal's company.

        Returns Result[Payment].
        """
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        try:
            fields = clean_payment_create(data)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_FAILED, str(exc))

        def _op():
            order_id = fields.get("order_id")
            invoice_id = fields.get("invoice_id")

            orders = self._lock_orders([order_id], principal.company_id)
            invoices = self._lock_invoices([invoice_id], principal.company_id)

            if order_id is not None:
                company_id = orders[order_id].company_id
            elif invoice_id is not None:
                company_id = _invoice_company_id(invoices[invoice_id])
            else:
                company_id = principal.company_id

            self._require_active_company(company_id)

            payment = Payment(
                company_id=company_id,
                recorded_by_id=principal.user_id,
                reconciliation_status=RECONCILIATION_UNRECONCILED,
                **fields,
            )
            self.session.add(payment)
            self.session.flush()

            if payment.order_id is not None:
                self._recompute_order(orders[payment.order_id])
            if payment.invoice_id is not None:
                self._recompute_invoice(invoices[payment.invoice_id])

            self._record_event(payment, EVENT_PAYMENT_CREATED, principal)
            return payment

        result = atomic(
            self.session,
            _op,
            constraint_failure=ErrorKind.RECONCILIATION_FAILED,
            description="create payment",
        )
        if result.ok:
            logger.info(
                "Payment %s recorded for company %s by user %s (%s cents)",
                result.value.id, result.value.company_id, principal.user_id, result.value.amount_cents,
            )
        return result

    # =========================================================================
    # READS
    # =========================================================================

    def get_payments(
        self,
        principal,
        filters: PaymentFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Result:
        """
        List payments of the principal's company.

        The company scope is applied before any filter; filters can only narrow it.
        Returns Result[PaymentPage].
        """
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        filters = filters or PaymentFilters()
        query = self.session.query(Payment).filter(Payment.company_id == principal.company_id)

        if filters.order_id is not None:
            query = query.filter(Payment.order_id == filters.order_id)
        if filters.invoice_id is not None:
            query = query.filter(Payment.invoice_id == filters.invoice_id)
        if filters.customer_id:
            query = query.filter(Payment.customer_id == filters.customer_id)
        if filters.payment_method:
            query = query.filter(Payment.payment_method == filters.payment_method)
        if filters.reconciliation_status:
            query = query.filter(Payment.reconciliation_status == filters.reconciliation_status)
        if filters.start_date is not None:
            query = query.filter(Payment.payment_date >= filters.start_date)
        if filters.end_date is not None:
            query = query.filter(Payment.payment_date <= filters.end_date)

        total_items = query.count()
        items = (
            query.order_by(Payment.payment_date.desc(), Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return Result.success(PaymentPage(items=items, page=page, limit=limit, total_items=total_items))

    def get_payment_by_id(self, principal, payment_id: int) -> Result:
        """Absent and foreign payments are both NotFound."""
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        payment = self._scoped_payment_query(principal, payment_id).first()
        if payment is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Payment not found")
        return Result.success(payment)

    def get_order_summary(self, principal, order_id: int) -> Result:
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        order = (
            self.session.query(Order)
            .filter(Order.id == order_id, Order.company_id == principal.company_id)
            .first()
        )
        if order is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Order not found")

        payments = self._linked_payments(Payment.order_id == order.id)
        paid = sum(p.amount_cents for p in payments)
        return Result.success({
            "order_id": order.id,
            "order_number": order.order_number,
            "total_amount_cents": order.total_amount_cents,
            "paid_amount_cents": paid,
            "remaining_amount_cents": max(order.total_amount_cents - paid, 0),
            "payment_status": order.payment_status,
            "payments": [p.to_dict() for p in payments],
        })

    def get_invoice_summary(self, principal, invoice_id: int) -> Result:
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        invoice = (
            self.session.query(Invoice)
            .join(User, Invoice.created_by_id == User.id)
            .filter(Invoice.id == invoice_id, User.company_id == principal.company_id)
            .first()
        )
        if invoice is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Invoice not found")

        payments = self._linked_payments(Payment.invoice_id == invoice.id)
        return Result.success({
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "total_amount_cents": invoice.total_amount_cents,
            "paid_amount_cents": invoice.paid_amount_cents,
            "remaining_amount_cents": max(invoice.total_amount_cents - invoice.paid_amount_cents, 0),
            "status": invoice.status,
            "payments": [p.to_dict() for p in payments],
        })

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    def update_payment(self, principal, payment_id: int, data: dict) -> Result:
        """
        Patch a payment. Only an admin of the payment's company or the user who
        recorded it may do so.

        order_id / invoice_id present with None unlinks. When the amount or the
        linkage changes, the old order/invoice is recomputed without this
        payment first, then the new one with it.

        Returns Result[Payment].
        """
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        try:
            patch = clean_payment_patch(data)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_FAILED, str(exc))

        def _op():
            payment = self._load_payment_for_mutation(principal, payment_id)

            if not patch:
                return payment

            old_order_id = payment.order_id
            old_invoice_id = payment.invoice_id
            old_amount = payment.amount_cents

            new_order_id = patch.get("order_id", old_order_id)
            new_invoice_id = patch.get("invoice_id", old_invoice_id)
            new_amount = patch.get("amount_cents", old_amount)

            amount_changed = new_amount != old_amount
            order_moved = new_order_id != old_order_id
            invoice_moved = new_invoice_id != old_invoice_id

            order_ids = [old_order_id, new_order_id] if (amount_changed or order_moved) else []
            invoice_ids = [old_invoice_id, new_invoice_id] if (amount_changed or invoice_moved) else []

            # Lock every affected aggregate up front; new targets are tenant-checked here
            orders = self._lock_orders(order_ids, payment.company_id)
            invoices = self._lock_invoices(invoice_ids, payment.company_id)

            for attr, value in patch.items():
                setattr(payment, attr, value)
            self.session.flush()

            if order_ids:
                if order_moved and old_order_id is not None:
                    self._recompute_order(orders[old_order_id], exclude_payment_id=payment.id)
                if new_order_id is not None:
                    self._recompute_order(orders[new_order_id])

            if invoice_ids:
                if invoice_moved and old_invoice_id is not None:
                    self._recompute_invoice(
                        invoices[old_invoice_id], exclude_payment_id=payment.id, payment_left=True
                    )
                if new_invoice_id is not None:
                    self._recompute_invoice(invoices[new_invoice_id])

            self._record_event(payment, EVENT_PAYMENT_UPDATED, principal, note=f"fields: {', '.join(sorted(patch))}")
            return payment

        return atomic(
            self.session,
            _op,
            constraint_failure=ErrorKind.RECONCILIATION_FAILED,
            description="update payment",
        )

    def delete_payment(self, principal, payment_id: int) -> Result:
        """
        Delete a payment after recomputing its order/invoice as if it no longer
        existed. Same authorization as update.

        Returns Result[dict] holding the deleted payment's last state.
        """
        failure = _company_failure(principal)
        if failure is not None:
            return failure

        def _op():
            payment = self._load_payment_for_mutation(principal, payment_id)

            orders = self._lock_orders([payment.order_id], payment.company_id)
            invoices = self._lock_invoices([payment.invoice_id], payment.company_id)

            if payment.order_id is not None:
                self._recompute_order(orders[payment.order_id], exclude_payment_id=payment.id)
            if payment.invoice_id is not None:
                self._recompute_invoice(
                    invoices[payment.invoice_id], exclude_payment_id=payment.id, payment_left=True
                )

            snapshot = payment.to_dict()
            self._record_event(payment, EVENT_PAYMENT_DELETED, principal)
            self.session.delete(payment)
            self.session.flush()
            return snapshot

        result = atomic(
            self.session,
            _op,
            constraint_failure=ErrorKind.RECONCILIATION_FAILED,
            description="delete payment",
        )
        if result.ok:
            logger.info("Payment %s deleted by user %s", payment_id, principal.user_id)
        return result

    # =========================================================================
    # RECONCILIATION STATUS
    # =========================================================================

    def reconcile_payment(self, principal, payment_id: int, new_status: str, notes: str | None = None) -> Result:
        """
        Move a payment to a reconciliation status (admin/manager only).

        Setting the status the payment already has is a no-op: no date, note
        or event is written. Amount aggregates are never touched here.

        Returns Result[Payment].
        """
        if principal.role not in RECONCILER_ROLES:
            return Result.fail(ErrorKind.INSUFFICIENT_ROLE, "Only admins and managers can reconcile payments")

        failure = _company_failure(principal)
        if failure is not None:
            return failure

        try:
            new_status = clean_reconciliation_status(new_status)
            notes = clean_optional_text("notes", notes)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION_FAILED, str(exc))

        def _op():
            payment = lock_for_update(self._scoped_payment_query(principal, payment_id)).first()
            if payment is None:
                raise ServiceError(ErrorKind.NOT_FOUND, "Payment not found")

            self._require_active_company(payment.company_id)

            if payment.reconciliation_status == new_status:
                return payment

            now = self.clock()
            payment.reconciliation_status = new_status
            payment.reconciled_by_id = principal.user_id
            payment.reconciliation_date = now

            if notes:
                entry = f"Reconciliation note ({to_utc_z(now)}): {notes}"
                payment.notes = f"{payment.notes}\n\n{entry}" if payment.notes else entry

            self._record_event(payment, EVENT_PAYMENT_RECONCILED, principal, note=new_status)
            return payment

        return atomic(
            self.session,
            _op,
            constraint_failure=ErrorKind.RECONCILIATION_FAILED,
            description="reconcile payment",
        )

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def recompute_all(self, company_id: int) -> Result:
        """
        Rebuild every order/invoice aggregate of a company from its payments.

        Returns Result[dict] with the number of rows whose derived state changed.
        """
        def _op():
            changed_orders = 0
            changed_invoices = 0

            orders = lock_for_update(
                self.session.query(Order).filter(Order.company_id == company_id).order_by(Order.id)
            ).all()
            for order in orders:
                before = order.payment_status
                self._recompute_order(order)
                changed_orders += int(order.payment_status != before)

            invoice_ids = [
                row.id for row in self.session.query(Invoice.id)
                .join(User, Invoice.created_by_id == User.id)
                .filter(User.company_id == company_id)
                .order_by(Invoice.id)
            ]
            invoices = self._lock_invoices(invoice_ids, company_id)
            for invoice_id in invoice_ids:
                invoice = invoices[invoice_id]
                before = (invoice.paid_amount_cents, invoice.status)
                # Only a stale paid state is repaired; explicit statuses stay
                self._recompute_invoice(invoice, payment_left=before[1] in PAID_INVOICE_STATUSES)
                changed_invoices += int((invoice.paid_amount_cents, invoice.status) != before)

            return {
                "company_id": company_id,
                "orders_checked": len(orders),
                "orders_changed": changed_orders,
                "invoices_checked": len(invoice_ids),
                "invoices_changed": changed_invoices,
            }

        return atomic(
            self.session,
            _op,
            constraint_failure=ErrorKind.RECONCILIATION_FAILED,
            description="recompute aggregates",
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _scoped_payment_query(self, principal, payment_id: int):
        return self.session.query(Payment).filter(
            Payment.id == payment_id,
            Payment.company_id == principal.company_id,
        )

    def _load_payment_for_mutation(self, principal, payment_id: int) -> Payment:
        payment = lock_for_update(self._scoped_payment_query(principal, payment_id)).first()
        if payment is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "Payment not found")

        if principal.role != ROLE_ADMIN and principal.user_id != payment.recorded_by_id:
            raise ServiceError(
                ErrorKind.INSUFFICIENT_PERMISSION,
                "Only the user who recorded this payment or a company admin can modify it",
            )

        self._require_active_company(payment.company_id)
        return payment

    def _require_active_company(self, company_id: int) -> Company:
        company = self.session.get(Company, company_id)
        if company is None or not company.is_active:
            raise ServiceError(ErrorKind.COMPANY_INACTIVE, "Company is not active")
        return company

    def _lock_orders(self, order_ids, company_id: int) -> dict[int, Order]:
        """Lock orders in ascending id order. Missing -> NotFound, foreign -> CrossTenantAccess."""
        locked: dict[int, Order] = {}
        for order_id in sorted({i for i in order_ids if i is not None}):
            order = lock_for_update(self.session.query(Order).filter(Order.id == order_id)).first()
            if order is None:
                raise ServiceError(ErrorKind.NOT_FOUND, f"Order {order_id} not found")
            if order.company_id != company_id:
                raise ServiceError(
                    ErrorKind.CROSS_TENANT_ACCESS,
                    "Access denied: You can only link payments to orders from your own company",
                )
            locked[order_id] = order
        return locked

    def _lock_invoices(self, invoice_ids, company_id: int) -> dict[int, Invoice]:
        """Lock invoices in ascending id order. Missing -> NotFound, foreign -> CrossTenantAccess."""
        locked: dict[int, Invoice] = {}
        for invoice_id in sorted({i for i in invoice_ids if i is not None}):
            invoice = lock_for_update(self.session.query(Invoice).filter(Invoice.id == invoice_id)).first()
            if invoice is None:
                raise ServiceError(ErrorKind.NOT_FOUND, f"Invoice {invoice_id} not found")
            if _invoice_company_id(invoice) != company_id:
                raise ServiceError(
                    ErrorKind.CROSS_TENANT_ACCESS,
                    "Access denied: You can only link payments to invoices from your own company",
                )
            locked[invoice_id] = invoice
        return locked

    def _sum_payments(self, condition, exclude_payment_id: int | None = None) -> int:
        query = self.session.query(func.coalesce(func.sum(Payment.amount_cents), 0)).filter(condition)
        if exclude_payment_id is not None:
            query = query.filter(Payment.id != exclude_payment_id)
        return int(query.scalar() or 0)

    def _linked_payments(self, condition) -> list[Payment]:
        return (
            self.session.query(Payment)
            .filter(condition)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
            .all()
        )

    def _recompute_order(self, order: Order, exclude_payment_id: int | None = None) -> None:
        # Caller holds the row lock
        total = self._sum_payments(Payment.order_id == order.id, exclude_payment_id)
        order.payment_status = ORDER_PAYMENT_PAID if total >= order.total_amount_cents else ORDER_PAYMENT_PENDING

    def _recompute_invoice(
        self,
        invoice: Invoice,
        exclude_payment_id: int | None = None,
        payment_left: bool = False,
    ) -> None:
        # Caller holds the row lock
        total = self._sum_payments(Payment.invoice_id == invoice.id, exclude_payment_id)
        invoice.paid_amount_cents = total

        if total > 0 and total >= invoice.total_amount_cents:
            invoice.status = INVOICE_STATUS_PAID
        elif total > 0:
            invoice.status = INVOICE_STATUS_PARTIALLY_PAID
        elif payment_left:
            past_due = invoice.due_date is not None and invoice.due_date < self.clock().date()
            invoice.status = INVOICE_STATUS_OVERDUE if past_due else INVOICE_STATUS_SENT

    def _record_event(self, payment: Payment, event_type: str, principal, note: str | None = None) -> PaymentEvent:
        event = PaymentEvent(
            company_id=payment.company_id,
            payment_id=payment.id,
            event_type=event_type,
            actor_user_id=principal.user_id,
            amount_cents=payment.amount_cents,
            order_id=payment.order_id,
            invoice_id=payment.invoice_id,
            note=note,
            occurred_at=self.clock(),
        )
        self.session.add(event)
        return event


def _company_failure(principal) -> Result | None:
    if not principal.company_id:
        return Result.fail(ErrorKind.NO_COMPANY_ASSOCIATION, "User not associated with any company")
    return None


def _invoice_company_id(invoice: Invoice) -> int | None:
    return invoice.created_by.company_id if invoice.created_by else None
