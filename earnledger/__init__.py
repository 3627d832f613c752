"""
Account Ledger & Approval Engine for an earning platform

This module provides:
- Accounts with hashed credentials, plans and referral codes
- Deposit and withdrawal requests (withdrawals escrowed at submission)
- Task catalog, proof submissions and timed ad-view rewards
- Review state machine: pending → approved / rejected, never re-opened
- Referral team projection
- Exact JSON snapshots of the whole engine state
"""

from .engine import ApprovalEngine
from .errors import (
    AlreadyDecidedError,
    AmountOutOfRangeError,
    BannedError,
    DuplicateEmailError,
    InsufficientFundsError,
    InvalidCredentialError,
    InvalidRequestError,
    LedgerError,
    MissingProofError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    Account,
    DepositRequest,
    EngineSettings,
    EngineSnapshot,
    Outcome,
    RecordKind,
    RequestStatus,
    Task,
    TaskCategory,
    TaskSubmission,
    TimedTaskToken,
    WithdrawalRequest,
)

__all__ = [
    "ApprovalEngine",
    "Account",
    "DepositRequest",
    "WithdrawalRequest",
    "TaskSubmission",
    "Task",
    "TaskCategory",
    "TimedTaskToken",
    "EngineSettings",
    "EngineSnapshot",
    "Outcome",
    "RecordKind",
    "RequestStatus",
    "LedgerError",
    "DuplicateEmailError",
    "InvalidCredentialError",
    "BannedError",
    "AmountOutOfRangeError",
    "InsufficientFundsError",
    "AlreadyDecidedError",
    "NotFoundError",
    "MissingProofError",
    "UnauthorizedError",
    "InvalidRequestError",
]
