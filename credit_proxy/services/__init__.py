"""
Service layer for the credit proxy.

Services own all network I/O to the balance store and the provider
upstreams.
"""
from credit_proxy.services.credit_ledger import CreditLedger, CreditStatus, UsageOutcome
from credit_proxy.services.forwarding import ForwardError, ForwardingEngine, UpstreamResponse
from credit_proxy.services.store_client import BalanceStoreClient

__all__ = [
    "BalanceStoreClient",
    "CreditLedger",
    "CreditStatus",
    "ForwardError",
    "ForwardingEngine",
    "UpstreamResponse",
    "UsageOutcome",
]
