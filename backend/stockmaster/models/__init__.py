from .auth import User, RefreshToken
from .inventory import Category, Item, RestockEntry
from .sales import Sale, SaleLine
from .alerts import Alert, AlertReadReceipt
from .audit import AuditLog
from .documents import DocumentSequence
from .security import RateLimitHit

__all__ = [
    'User', 'RefreshToken',
    'Category', 'Item', 'RestockEntry',
    'Sale', 'SaleLine',
    'Alert', 'AlertReadReceipt',
    'AuditLog',
    'DocumentSequence',
    'RateLimitHit',
]
