"""
Execution layer: allowance checks, in-flight guard and transaction submission.
"""
from execution.authorization import AllowanceCheck, AllowanceStatus, check_allowance
from execution.inflight import InFlightGuard
from execution.nonce import NonceManager
from execution.submitter import TransactionSubmitter
from execution.tx_state import SubmissionOutcome, SubmissionResult

__all__ = [
    "AllowanceCheck",
    "AllowanceStatus",
    "check_allowance",
    "InFlightGuard",
    "NonceManager",
    "TransactionSubmitter",
    "SubmissionOutcome",
    "SubmissionResult",
]


def create_submitter(chain, gas_limit: int, receipt_timeout: float, inflight_ttl: float) -> TransactionSubmitter:
    """
    Factory function to create the submitter with its own in-flight guard.

    Args:
        chain: ChainClient
        gas_limit: Gas ceiling per transaction
        receipt_timeout: Seconds to wait for a receipt within a cycle
        inflight_ttl: Seconds after which a stuck in-flight marker is dropped

    Returns:
        TransactionSubmitter instance
    """
    guard = InFlightGuard(ttl_seconds=inflight_ttl)
    return TransactionSubmitter(chain, guard, gas_limit=gas_limit, receipt_timeout=receipt_timeout)
