import logging
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid4

from .accounts import AccountStore
from .errors import AmountOutOfRangeError, InsufficientFundsError, InvalidRequestError, NotFoundError
from .models import (
    DepositRequest,
    EngineSettings,
    Outcome,
    RecordKind,
    RequestStatus,
    WithdrawalRequest,
    utcnow,
)
from .states import apply_outcome, opening_history
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)

MoneyRequest = Union[DepositRequest, WithdrawalRequest]


def _check_bounds(amount: Decimal, low: Decimal, high: Decimal, label: str) -> None:
    if amount < low or amount > high:
        raise AmountOutOfRangeError(f"{label} must be between {low} and {high}, got {amount}")


class RequestLedger:
    """Deposit and withdrawal requests.

    Deposits touch the balance only when approved. Withdrawals escrow their
    amount at submission; rejection refunds it, approval finalizes it.
    """

    def __init__(self, storage: InMemoryStorage, accounts: AccountStore):
        self.storage = storage
        self.accounts = accounts

    @property
    def settings(self) -> EngineSettings:
        return EngineSettings(**self.storage.settings)

    def submit_deposit(self, account_id: UUID, amount: Decimal, reference: str) -> DepositRequest:
        self.accounts.get(account_id)
        settings = self.settings
        _check_bounds(amount, settings.min_deposit, settings.max_deposit, "Deposit")
        reference = reference.strip()
        if not reference:
            raise InvalidRequestError("Deposit reference is required")

        request_id = uuid4()
        request_data = {
            "kind": RecordKind.DEPOSIT.value,
            "id": request_id,
            "account_id": account_id,
            "amount": amount,
            "reference": reference,
            "status": RequestStatus.PENDING,
            "created_at": utcnow(),
            "history": opening_history(),
        }
        self.storage.deposits[request_id] = request_data
        logger.info("Deposit %s of %s submitted by %s", request_id, amount, account_id)
        return DepositRequest(**request_data)

    def submit_withdrawal(self, account_id: UUID, amount: Decimal, destination: str) -> WithdrawalRequest:
        account = self.accounts.get(account_id)
        settings = self.settings
        _check_bounds(amount, settings.min_withdraw, settings.max_withdraw, "Withdrawal")
        destination = destination.strip()
        if not destination:
            raise InvalidRequestError("Withdrawal destination is required")
        if amount > account.balance:
            raise InsufficientFundsError(f"Balance {account.balance} cannot cover withdrawal of {amount}")

        self.accounts.adjust_balance(account_id, -amount)
        request_id = uuid4()
        request_data = {
            "kind": RecordKind.WITHDRAWAL.value,
            "id": request_id,
            "account_id": account_id,
            "amount": amount,
            "destination": destination,
            "status": RequestStatus.PENDING,
            "created_at": utcnow(),
            "history": opening_history(),
        }
        self.storage.withdrawals[request_id] = request_data
        logger.info("Withdrawal %s of %s escrowed for %s", request_id, amount, account_id)
        return WithdrawalRequest(**request_data)

    def decide(
        self, request_id: UUID, kind: RecordKind, outcome: Outcome, actor: Optional[str] = None
    ) -> MoneyRequest:
        kind = RecordKind(kind)
        if kind is RecordKind.DEPOSIT:
            request_data = self._get_data(self.storage.deposits, request_id, "Deposit")
            status = apply_outcome(request_data, outcome, "Deposit", actor)
            if status is RequestStatus.APPROVED:
                self.accounts.adjust_balance(request_data["account_id"], request_data["amount"])
            logger.info("Deposit %s %s by %s", request_id, status.value, actor)
            return DepositRequest(**request_data)

        if kind is RecordKind.WITHDRAWAL:
            request_data = self._get_data(self.storage.withdrawals, request_id, "Withdrawal")
            status = apply_outcome(request_data, outcome, "Withdrawal", actor)
            if status is RequestStatus.REJECTED:
                self.accounts.adjust_balance(request_data["account_id"], request_data["amount"])
            logger.info("Withdrawal %s %s by %s", request_id, status.value, actor)
            return WithdrawalRequest(**request_data)

        raise InvalidRequestError(f"Request ledger does not hold {kind.value} records")

    def get_deposit(self, request_id: UUID) -> DepositRequest:
        return DepositRequest(**self._get_data(self.storage.deposits, request_id, "Deposit"))

    def get_withdrawal(self, request_id: UUID) -> WithdrawalRequest:
        return WithdrawalRequest(**self._get_data(self.storage.withdrawals, request_id, "Withdrawal"))

    def list_deposits(self, status: Optional[RequestStatus] = None) -> list[DepositRequest]:
        return [DepositRequest(**d) for d in self._filtered(self.storage.deposits, status)]

    def list_withdrawals(self, status: Optional[RequestStatus] = None) -> list[WithdrawalRequest]:
        return [WithdrawalRequest(**w) for w in self._filtered(self.storage.withdrawals, status)]

    def history_of(self, account_id: UUID) -> list[MoneyRequest]:
        records: list[MoneyRequest] = [
            DepositRequest(**d) for d in self.storage.deposits.values() if d["account_id"] == account_id
        ]
        records.extend(
            WithdrawalRequest(**w) for w in self.storage.withdrawals.values() if w["account_id"] == account_id
        )
        records.sort(key=lambda r: r.created_at)
        records.reverse()
        return records

    @staticmethod
    def _filtered(table: dict, status: Optional[RequestStatus]) -> list[dict]:
        rows = [r for r in table.values() if status is None or r["status"] == status]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows

    @staticmethod
    def _get_data(table: dict, request_id: UUID, label: str) -> dict:
        request_data = table.get(request_id)
        if request_data is None:
            raise NotFoundError(f"{label} {request_id} not found")
        return request_data
