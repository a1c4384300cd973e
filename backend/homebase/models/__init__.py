from .documents import Invoice, Estimate, InvoiceShare

__all__ = [
    'Invoice', 'Estimate', 'InvoiceShare',
]
