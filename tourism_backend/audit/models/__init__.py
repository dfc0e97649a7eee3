from .order_audit_entry import OrderAuditEntry

__all__ = ["OrderAuditEntry"]
