from .tenancy import TenantProfile
from .sales import SaleFact, SaleFactLine
from .customers import Customer
from .invoices import Invoice, InvoiceItem
from .expenses import Expense, ExpenseCategory
from .sync import SyncRecord

__all__ = [
    'TenantProfile',
    'SaleFact', 'SaleFactLine',
    'Customer',
    'Invoice', 'InvoiceItem',
    'Expense', 'ExpenseCategory',
    'SyncRecord',
]
