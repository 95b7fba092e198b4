from .tenancy import Company, User
from .auth import SessionToken
from .security import SecurityEvent
from .commerce import Order, Invoice
from .payments import Payment, PaymentEvent
from .audit import UserAuditLog

__all__ = [
    'Company', 'User',
    'SessionToken', 'SecurityEvent',
    'Order', 'Invoice',
    'Payment', 'PaymentEvent',
    'UserAuditLog',
]
