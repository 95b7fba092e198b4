from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

COMPANY_TYPE_DEALER = "dealer"
COMPANY_TYPE_SUPPLIER = "supplier"
COMPANY_TYPES = (COMPANY_TYPE_DEALER, COMPANY_TYPE_SUPPLIER)

COMPANY_STATUS_PENDING = "pending_verification"
COMPANY_STATUS_ACTIVE = "active"
COMPANY_STATUS_SUSPENDED = "suspended"
COMPANY_STATUS_REJECTED = "rejected"
COMPANY_STATUSES = (
    COMPANY_STATUS_PENDING,
    COMPANY_STATUS_ACTIVE,
    COMPANY_STATUS_SUSPENDED,
    COMPANY_STATUS_REJECTED,
)

USER_STATUS_ACTIVE = "active"
USER_STATUS_INACTIVE = "inactive"
USER_STATUS_REMOVED = "removed"
USER_STATUSES = (USER_STATUS_ACTIVE, USER_STATUS_INACTIVE, USER_STATUS_REMOVED)


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company (a dealer or a supplier).

    All users, orders, invoices and payments belong to exactly one company,
    directly or through their creator. No data may cross company boundaries.
    Only an active company's resources are mutable.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default=COMPANY_STATUS_PENDING, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == COMPANY_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    User accounts for authentication and attribution.

    MULTI-TENANT: a user belongs to at most one company (company_id). Role and
    status are changed only through the governance engine; removal is a status
    transition, never a row deletion.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="staff")
    status = db.Column(db.String(16), nullable=False, default=USER_STATUS_ACTIVE)

    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    company = db.relationship("Company", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
