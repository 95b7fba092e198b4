from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

# Orders only track pending/paid; partial payment leaves an order pending.
ORDER_PAYMENT_PENDING = "pending"
ORDER_PAYMENT_PAID = "paid"

INVOICE_STATUS_DRAFT = "draft"
INVOICE_STATUS_SENT = "sent"
INVOICE_STATUS_VIEWED = "viewed"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_PARTIALLY_PAID = "partially_paid"
INVOICE_STATUS_OVERDUE = "overdue"
INVOICE_STATUS_VOID = "void"
INVOICE_STATUSES = (
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_SENT,
    INVOICE_STATUS_VIEWED,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIALLY_PAID,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_VOID,
)


class Order(db.Model):
    """
    Purchase order placed within a company.

    payment_status is derived from the payments linked to the order and is
    written only by the reconciliation engine.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("company_id", "order_number", name="uq_orders_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=ORDER_PAYMENT_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "order_number": self.order_number,
            "total_amount_cents": self.total_amount_cents,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """
    Invoice issued by a company.

    The owning company is the creator's company. paid_amount_cents and the
    paid/partially_paid statuses are derived from linked payments; draft, sent,
    viewed and void are set explicitly by the invoicing flow.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_DRAFT, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    created_by = db.relationship("User", backref=db.backref("invoices", lazy=True))
    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "created_by_id": self.created_by_id,
            "order_id": self.order_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
