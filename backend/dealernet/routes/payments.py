# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/dealernet/routes/payments.py
"""
Payment Reconciliation API Routes

WHY: Record payments against orders and invoices and keep their payment
state correct through edits, moves and deletions.

DESIGN:
- Every query is scoped to the caller's company by the engine
- Cross-tenant ids answer 404, never the record
- Order/invoice payment summaries for remaining balance

SECURITY:
- Any active company member may record payments
- Only the recorder or a company admin may edit or delete
- Only admins and managers may reconcile
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, authorize
from ..errors import ErrorKind, Failure
from ..policy import COMPANY_ACCESS, PAYMENT_RECONCILER
from ..validation import ValidationError, json_object, parse_payment_query
from .. import get_services


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


def _failure(failure):
    return jsonify(failure.to_dict()), failure.http_status


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/payments")
@require_auth
@authorize(COMPANY_ACCESS)
def create_payment_route(principal):
    """
    Record a payment.

    Request body:
    {
        "transaction_id": "TX-1001",
        "order_id": 12,  (optional)
        "invoice_id": 7,  (optional)
        "customer_id": "CUST-9",  (optional)
        "amount_cents": 6000,
        "payment_method": "bank_transfer",
        "payment_type": "order_payment",
        "payment_date": "2026-01-15T10:00:00Z",
        "external_reference_id": "...",  (optional)
        "notes": "...",  (optional)
        "metadata": {...}  (optional)
    }

    Returns:
        201: Payment recorded
        400: Invalid input
        403: Linked order/invoice belongs to another company, or company inactive
        404: Linked order/invoice not found
        409: Storage constraint violated (e.g. duplicate transaction_id)
    """
    try:
        data = request.get_json(silent=True)
        result = get_services().reconciliation.create_payment(principal, data)

        if not result.ok:
            return _failure(result.failure)

        return jsonify({"payment": result.value.to_dict()}), 201

    except Exception:
        current_app.logger.exception("Failed to create payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/payments")
@require_auth
@authorize(COMPANY_ACCESS)
def list_payments_route(principal):
    """
    List payments of the caller's company.

    Query params:
    - order_id, invoice_id, customer_id, payment_method, reconciliation_status
    - start_date, end_date (ISO-8601)
    - page (default 1), limit (default 20, max 100)
    """
    try:
        try:
            filters, page, limit = parse_payment_query(request.args)
        except ValidationError as e:
            return _failure(Failure(ErrorKind.VALIDATION_FAILED, str(e)))

        result = get_services().reconciliation.get_payments(principal, filters, page=page, limit=limit)
        if not result.ok:
            return _failure(result.failure)

        return jsonify(result.value.to_dict()), 200

    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/payments/<int:payment_id>")
@require_auth
@authorize(COMPANY_ACCESS)
def get_payment_route(payment_id: int, principal):
    try:
        result = get_services().reconciliation.get_payment_by_id(principal, payment_id)
        if not result.ok:
            return _failure(result.failure)

        return jsonify({"payment": result.value.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/orders/<int:order_id>/payment-summary")
@require_auth
@authorize(COMPANY_ACCESS)
def order_payment_summary_route(order_id: int, principal):
    """Total, paid, remaining and the payments linked to an order."""
    try:
        result = get_services().reconciliation.get_order_summary(principal, order_id)
        if not result.ok:
            return _failure(result.failure)

        return jsonify(result.value), 200

    except Exception:
        current_app.logger.exception("Failed to get order payment summary")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/invoices/<int:invoice_id>/payment-summary")
@require_auth
@authorize(COMPANY_ACCESS)
def invoice_payment_summary_route(invoice_id: int, principal):
    """Total, paid, remaining and the payments linked to an invoice."""
    try:
        result = get_services().reconciliation.get_invoice_summary(principal, invoice_id)
        if not result.ok:
            return _failure(result.failure)

        return jsonify(result.value), 200

    except Exception:
        current_app.logger.exception("Failed to get invoice payment summary")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT UPDATE / DELETE
# =============================================================================

@payments_bp.put("/payments/<int:payment_id>")
@require_auth
@authorize(COMPANY_ACCESS)
def update_payment_route(payment_id: int, principal):
    """
    Update a payment (recorder or company admin only).

    "order_id": null or "invoice_id": null unlinks the payment.
    Moving a payment recomputes both the old and the new order/invoice.
    """
    try:
        data = request.get_json(silent=True)
        result = get_services().reconciliation.update_payment(principal, payment_id, data)

        if not result.ok:
            return _failure(result.failure)

        return jsonify({"payment": result.value.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/payments/<int:payment_id>")
@require_auth
@authorize(COMPANY_ACCESS)
def delete_payment_route(payment_id: int, principal):
    try:
        result = get_services().reconciliation.delete_payment(principal, payment_id)
        if not result.ok:
            return _failure(result.failure)

        return jsonify({"message": "Payment deleted", "payment": result.value}), 200

    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RECONCILIATION
# =============================================================================

@payments_bp.post("/payments/<int:payment_id>/reconcile")
@require_auth
@authorize(PAYMENT_RECONCILER)
def reconcile_payment_route(payment_id: int, principal):
    """
    Set a payment's reconciliation status.

    Request body:
    {
        "reconciliation_status": "reconciled" | "disputed" | "pending_review" | "unreconciled",
        "notes": "Matched against bank statement"  (optional)
    }
    """
    try:
        try:
            data = json_object(request.get_json(silent=True))
        except ValidationError as e:
            return _failure(Failure(ErrorKind.VALIDATION_FAILED, str(e)))

        result = get_services().reconciliation.reconcile_payment(
            principal,
            payment_id,
            data.get("reconciliation_status"),
            notes=data.get("notes"),
        )

        if not result.ok:
            return _failure(result.failure)

        return jsonify({"payment": result.value.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to reconcile payment")
        return jsonify({"error": "Internal server error"}), 500
