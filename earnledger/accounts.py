import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from .errors import (
    BannedError,
    DuplicateEmailError,
    InsufficientFundsError,
    InvalidCredentialError,
    InvalidRequestError,
    NotFoundError,
)
from .models import Account, AccountView, Plan, utcnow
from .security import (
    MIN_PASSWORD_LENGTH,
    generate_referral_code,
    hash_credential,
    verify_credential,
)
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)


class AccountStore:
    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def create_account(
        self, name: str, email: str, credential: str, referral_code: Optional[str] = None
    ) -> Account:
        if self.storage.find_account_by_email(email) is not None:
            raise DuplicateEmailError(f"Email {email} is already registered")

        referred_by = (referral_code or "").strip() or None
        account_id = uuid4()
        account_data = {
            "id": account_id,
            "name": name.strip(),
            "email": email,
            "credential_hash": hash_credential(credential),
            "balance": Decimal("0"),
            "plan_id": self.storage.default_plan_id,
            "referral_code": generate_referral_code(self.storage.referral_codes()),
            "referred_by": referred_by,
            "stats": {"tasks_completed": 0},
            "is_banned": False,
            "created_at": utcnow(),
        }
        self.storage.accounts[account_id] = account_data
        logger.info("Registered account %s (referred_by=%s)", account_id, referred_by)
        return Account(**account_data)

    def authenticate(self, email: str, credential: str) -> Account:
        account_data = self.storage.find_account_by_email(email)
        if account_data is None or not verify_credential(account_data["credential_hash"], credential):
            raise InvalidCredentialError("Invalid email or password")
        if account_data["is_banned"]:
            logger.warning("Login refused for banned account %s", account_data["id"])
            raise BannedError("Account banned")
        return Account(**account_data)

    def get(self, account_id: UUID) -> Account:
        return Account(**self._get_data(account_id))

    def require_active(self, account_id: UUID) -> Account:
        account = self.get(account_id)
        if account.is_banned:
            raise BannedError(f"Account {account_id} is banned")
        return account

    def all(self) -> list[Account]:
        accounts = [Account(**a) for a in self.storage.accounts.values()]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    def adjust_balance(self, account_id: UUID, delta: Decimal) -> Account:
        account_data = self._get_data(account_id)
        new_balance = account_data["balance"] + delta
        if new_balance < 0:
            raise InsufficientFundsError(
                f"Balance {account_data['balance']} cannot cover {-delta}"
            )
        account_data["balance"] = new_balance
        return Account(**account_data)

    def increment_task_stat(self, account_id: UUID) -> Account:
        account_data = self._get_data(account_id)
        account_data["stats"]["tasks_completed"] += 1
        return Account(**account_data)

    def change_credential(self, account_id: UUID, current: str, new: str) -> Account:
        account_data = self._get_data(account_id)
        if not verify_credential(account_data["credential_hash"], current):
            raise InvalidCredentialError("Current password is incorrect")
        return self.set_credential(account_id, new)

    def set_credential(self, account_id: UUID, new: str) -> Account:
        if len(new) < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        account_data = self._get_data(account_id)
        account_data["credential_hash"] = hash_credential(new)
        return Account(**account_data)

    def set_balance(self, account_id: UUID, balance: Decimal) -> Account:
        if balance < 0:
            raise InvalidRequestError("Balance cannot be negative")
        account_data = self._get_data(account_id)
        account_data["balance"] = balance
        return Account(**account_data)

    def set_banned(self, account_id: UUID, banned: bool) -> Account:
        account_data = self._get_data(account_id)
        account_data["is_banned"] = banned
        return Account(**account_data)

    def plan_of(self, account: Account) -> Plan:
        plan_data = self.storage.plans.get(account.plan_id)
        if plan_data is None:
            raise NotFoundError(f"Plan {account.plan_id} not found")
        return Plan(**plan_data)

    def view(self, account: Account) -> AccountView:
        return AccountView(
            id=account.id,
            name=account.name,
            email=account.email,
            balance=account.balance,
            plan=self.plan_of(account),
            referral_code=account.referral_code,
            referred_by=account.referred_by,
            stats=account.stats,
            is_banned=account.is_banned,
            created_at=account.created_at,
        )

    def _get_data(self, account_id: UUID) -> dict:
        account_data = self.storage.accounts.get(account_id)
        if account_data is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account_data
