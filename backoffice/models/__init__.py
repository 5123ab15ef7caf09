from backoffice.models.tenant import Tenant
from backoffice.models.user import User
from backoffice.models.audit_log import AuditLog
from backoffice.models.supplier import Supplier
from backoffice.models.inventory import InventoryItem, MovementType, StockLedger
from backoffice.models.invoice_counter import InvoiceCounter
from backoffice.models.purchase import (
    PaymentMethod,
    Purchase,
    PurchaseItem,
    PurchasePayment,
    PurchaseStatus,
)
from backoffice.models.sales import Sale, SaleItem
from backoffice.models.purchase_return import (
    PurchaseReturn,
    PurchaseReturnItem,
    ReturnStatus,
)
