"""Mapping from adapter type tags onto tuning buckets."""

from __future__ import annotations

from ..models.policies import AdapterCategory

# Adapter type tag to tuning bucket mapping
ADAPTER_TYPE_CATEGORIES: dict[str, AdapterCategory] = {
    # Request/response protocols and SaaS collaboration APIs
    "http": AdapterCategory.HTTP,
    "https": AdapterCategory.HTTP,
    "rest": AdapterCategory.HTTP,
    "soap": AdapterCategory.HTTP,
    "odata": AdapterCategory.HTTP,
    "webhook": AdapterCategory.HTTP,
    "slack": AdapterCategory.HTTP,
    "discord": AdapterCategory.HTTP,
    "teams": AdapterCategory.HTTP,
    # Connection-pool bound persistence
    "database": AdapterCategory.DATABASE,
    "jdbc": AdapterCategory.DATABASE,
    "sql": AdapterCategory.DATABASE,
    "postgres": AdapterCategory.DATABASE,
    "mysql": AdapterCategory.DATABASE,
    "oracle": AdapterCategory.DATABASE,
    # Brokers and store-and-forward channels
    "messaging": AdapterCategory.MESSAGING,
    "kafka": AdapterCategory.MESSAGING,
    "rabbitmq": AdapterCategory.MESSAGING,
    "amqp": AdapterCategory.MESSAGING,
    "jms": AdapterCategory.MESSAGING,
    "ibmmq": AdapterCategory.MESSAGING,
    "mail": AdapterCategory.MESSAGING,
    "sms": AdapterCategory.MESSAGING,
    # Large, slow transfers
    "file": AdapterCategory.FILE,
    "ftp": AdapterCategory.FILE,
    "sftp": AdapterCategory.FILE,
    # Critical ERP endpoints
    "sap": AdapterCategory.CRITICAL_SYSTEM,
    "sap-like": AdapterCategory.CRITICAL_SYSTEM,
    "rfc": AdapterCategory.CRITICAL_SYSTEM,
    "idoc": AdapterCategory.CRITICAL_SYSTEM,
}


def classify_adapter_type(adapter_type: str) -> AdapterCategory:
    """
    Resolve the tuning bucket for an adapter type tag.

    Unknown tags resolve to ``AdapterCategory.DEFAULT``.

    Args:
        adapter_type: Adapter type tag, case-insensitive

    Returns:
        Tuning bucket
    """
    return ADAPTER_TYPE_CATEGORIES.get(
        adapter_type.strip().lower(),
        AdapterCategory.DEFAULT,
    )
