from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PAYMENT_METHODS = (
    "credit_card",
    "bank_transfer",
    "cash",
    "check",
    "paypal",
    "stripe",
    "other",
)

PAYMENT_TYPES = (
    "order_payment",
    "invoice_payment",
    "refund",
    "advance_payment",
    "adjustment",
)

RECONCILIATION_UNRECONCILED = "unreconciled"
RECONCILIATION_RECONCILED = "reconciled"
RECONCILIATION_DISPUTED = "disputed"
RECONCILIATION_PENDING_REVIEW = "pending_review"
RECONCILIATION_STATUSES = (
    RECONCILIATION_UNRECONCILED,
    RECONCILIATION_RECONCILED,
    RECONCILIATION_DISPUTED,
    RECONCILIATION_PENDING_REVIEW,
)


class Payment(db.Model):
    """
    Payment recorded against an order, an invoice, both, or neither.

    company_id is resolved from the linked order/invoice (or the recorder's
    company) when the payment is created and never changes afterwards.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_company_date", "company_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    transaction_id = db.Column(db.String(128), nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    customer_id = db.Column(db.String(128), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="bank_transfer")
    payment_type = db.Column(db.String(32), nullable=False, default="invoice_payment")
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)

    external_reference_id = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    reconciliation_status = db.Column(
        db.String(32), nullable=False, default=RECONCILIATION_UNRECONCILED, index=True
    )
    reconciliation_date = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    recorded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))
    recorded_by = db.relationship("User", foreign_keys=[recorded_by_id])
    reconciled_by = db.relationship("User", foreign_keys=[reconciled_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "transaction_id": self.transaction_id,
            "order_id": self.order_id,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_type": self.payment_type,
            "payment_date": to_utc_z(self.payment_date),
            "external_reference_id": self.external_reference_id,
            "notes": self.notes,
            "metadata": self.metadata_json,
            "reconciliation_status": self.reconciliation_status,
            "reconciliation_date": to_utc_z(self.reconciliation_date) if self.reconciliation_date else None,
            "reconciled_by_id": self.reconciled_by_id,
            "recorded_by_id": self.recorded_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentEvent(db.Model):
    """
    Append-only trail of payment mutations.

    payment_id is a plain integer (no foreign key) so the trail outlives a
    deleted payment. Rows are written in the same transaction as the mutation.
    """
    __tablename__ = "payment_events"
    __table_args__ = (
        db.Index("ix_payment_events_company_occurred", "company_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, nullable=False, index=True)

    event_type = db.Column(db.String(32), nullable=False, index=True)  # payment.created, payment.updated, ...
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=True)
    order_id = db.Column(db.Integer, nullable=True)
    invoice_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "payment_id": self.payment_id,
            "event_type": self.event_type,
            "actor_user_id": self.actor_user_id,
            "amount_cents": self.amount_cents,
            "order_id": self.order_id,
            "invoice_id": self.invoice_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
