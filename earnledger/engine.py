import logging
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from pydantic import ValidationError

from .accounts import AccountStore
from .config import EngineConfig
from .errors import InvalidRequestError, NotFoundError, UnauthorizedError
from .ledger import RequestLedger
from .models import (
    AccountOverride,
    AccountSummary,
    AccountView,
    AdminLoginCommand,
    AdminSession,
    ChangePasswordCommand,
    CreateTaskCommand,
    DashboardStats,
    DecisionCommand,
    DepositCommand,
    DepositRequest,
    EngineSettings,
    EngineSnapshot,
    LoginCommand,
    Plan,
    ProofCommand,
    RecordKind,
    RecordResponse,
    RegisterCommand,
    RequestStatus,
    SettingsUpdate,
    Task,
    TaskCategory,
    TaskSubmission,
    TeamStats,
    TimedTaskResponse,
    TimedTaskToken,
    UpdateTaskCommand,
    UserSession,
    WithdrawalCommand,
    WithdrawalRequest,
    utcnow,
)
from .referrals import ReferralGraph
from .security import generate_session_token, verify_credential
from .snapshot import JsonFileSnapshotStore, SnapshotStore
from .storage import InMemoryStorage
from .tasks import SubmissionTracker, TaskCatalog

logger = logging.getLogger(__name__)

AdminCredential = Union[AdminSession, str]


class ApprovalEngine:
    """Single owner of accounts, requests, submissions and tasks.

    Every mutating command runs under one re-entrant lock inside a storage
    transaction: validation happens first, the status write and its balance
    write land together, and the snapshot store sees the result before the
    command returns. If anything raises, including the snapshot save, the
    in-memory state is rolled back and nothing is observable.
    """

    def __init__(self, config: Optional[EngineConfig] = None, snapshot_store: Optional[SnapshotStore] = None):
        self.config = config or EngineConfig()
        self.snapshot_store = snapshot_store
        snapshot = snapshot_store.load() if snapshot_store else None
        self.storage = InMemoryStorage.from_snapshot(snapshot) if snapshot else InMemoryStorage()
        self.accounts = AccountStore(self.storage)
        self.ledger = RequestLedger(self.storage, self.accounts)
        self.catalog = TaskCatalog(self.storage)
        self.tracker = SubmissionTracker(self.storage, self.accounts, self.catalog)
        self.referrals = ReferralGraph(self.storage)
        self._lock = threading.RLock()
        self._admin_sessions: dict[str, AdminSession] = {}
        self._user_sessions: dict[str, UserSession] = {}

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ApprovalEngine":
        store = JsonFileSnapshotStore(config.snapshot_path) if config.snapshot_path else None
        return cls(config=config, snapshot_store=store)

    @contextmanager
    def _command(self):
        with self._lock:
            with self.storage.transaction():
                yield
                self._persist()

    def _persist(self) -> None:
        if self.snapshot_store is not None:
            self.snapshot_store.save(self.storage.to_snapshot())

    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            return self.storage.to_snapshot()

    # --- Account commands ---

    def register(self, command: RegisterCommand) -> AccountView:
        with self._command():
            account = self.accounts.create_account(
                command.name, command.email, command.password, command.referral_code
            )
            return self.accounts.view(account)

    def login(self, command: LoginCommand) -> UserSession:
        with self._lock:
            account = self.accounts.authenticate(command.email, command.password)
            now = utcnow()
            self._prune_sessions(now)
            session = UserSession(
                token=generate_session_token(),
                account=self.accounts.view(account),
                issued_at=now,
                expires_at=self._session_expiry(now),
            )
            self._user_sessions[session.token] = session
            return session

    def logout(self, token: str) -> None:
        with self._lock:
            self._user_sessions.pop(token, None)

    def account_for_token(self, token: Optional[str]) -> UUID:
        """Resolve a user session token to the account it was issued for."""
        with self._lock:
            session = self._user_sessions.get(token) if token else None
            if session is None:
                raise UnauthorizedError("Login required")
            if session.expires_at <= utcnow():
                del self._user_sessions[token]
                raise UnauthorizedError("Session expired, log in again")
            return session.account.id

    def _session_expiry(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.config.session_ttl_seconds)

    def _prune_sessions(self, now: datetime) -> None:
        for sessions in (self._user_sessions, self._admin_sessions):
            for token in [t for t, s in sessions.items() if s.expires_at <= now]:
                del sessions[token]

    def _revoke_account_sessions(self, account_id: UUID) -> None:
        for token in [t for t, s in self._user_sessions.items() if s.account.id == account_id]:
            del self._user_sessions[token]

    def get_account(self, account_id: UUID) -> AccountView:
        with self._lock:
            return self.accounts.view(self.accounts.get(account_id))

    def change_password(self, account_id: UUID, command: ChangePasswordCommand) -> AccountView:
        with self._command():
            self.accounts.require_active(account_id)
            account = self.accounts.change_credential(account_id, command.current_password, command.new_password)
            return self.accounts.view(account)

    def account_history(self, account_id: UUID) -> list[Union[DepositRequest, WithdrawalRequest]]:
        with self._lock:
            self.accounts.get(account_id)
            return self.ledger.history_of(account_id)

    # --- Money movement ---

    def submit_deposit(self, account_id: UUID, command: DepositCommand) -> RecordResponse:
        with self._command():
            self.accounts.require_active(account_id)
            request = self.ledger.submit_deposit(account_id, command.amount, command.reference)
            return self._record_response(request, "Deposit submitted, awaiting review")

    def submit_withdrawal(self, account_id: UUID, command: WithdrawalCommand) -> RecordResponse:
        with self._command():
            self.accounts.require_active(account_id)
            request = self.ledger.submit_withdrawal(account_id, command.amount, command.destination)
            return self._record_response(request, "Withdrawal requested, amount held until review")

    # --- Tasks ---

    def list_tasks(self, category: Optional[TaskCategory] = None) -> list[Task]:
        with self._lock:
            return self.catalog.all(category)

    def list_plans(self) -> list[Plan]:
        with self._lock:
            return sorted((Plan(**p) for p in self.storage.plans.values()), key=lambda p: p.price)

    def get_settings(self) -> EngineSettings:
        with self._lock:
            return EngineSettings(**self.storage.settings)

    def start_timed_task(self, account_id: UUID, task_id: UUID) -> TimedTaskToken:
        with self._command():
            self.accounts.require_active(account_id)
            return self.tracker.start_timed_task(account_id, task_id)

    def complete_timed_task(self, token_id: UUID, account_id: Optional[UUID] = None) -> TimedTaskResponse:
        with self._command():
            token_data = self.tracker.get_token_data(token_id)
            if account_id is not None and token_data["account_id"] != account_id:
                raise NotFoundError(f"Timed task token {token_id} not found")
            self.accounts.require_active(token_data["account_id"])
            token = self.tracker.complete_timed_task(token_id)
            return TimedTaskResponse(
                token=token,
                account=self.accounts.view(self.accounts.get(token.account_id)),
                message="Ad watched, reward added",
            )

    def submit_task_proof(self, account_id: UUID, command: ProofCommand) -> RecordResponse:
        with self._command():
            self.accounts.require_active(account_id)
            submission = self.tracker.submit_proof(account_id, command.task_id, command.proof)
            return self._record_response(submission, "Proof submitted, awaiting review")

    # --- Referrals ---

    def team_of(self, referral_code: str) -> list[AccountSummary]:
        with self._lock:
            return self.referrals.team_of(referral_code)

    def team_stats(self, referral_code: str) -> TeamStats:
        with self._lock:
            return self.referrals.team_stats(referral_code)

    # --- Administrative capability ---

    def admin_login(self, command: AdminLoginCommand) -> AdminSession:
        if not self.config.admin_password_hash:
            raise UnauthorizedError("Administrative access is not configured")
        username_ok = secrets.compare_digest(command.username.encode(), self.config.admin_username.encode())
        password_ok = verify_credential(self.config.admin_password_hash, command.password)
        if not (username_ok and password_ok):
            logger.warning("Rejected admin login for %r", command.username)
            raise UnauthorizedError("Invalid administrator credentials")
        now = utcnow()
        session = AdminSession(
            token=generate_session_token(),
            username=command.username,
            issued_at=now,
            expires_at=self._session_expiry(now),
        )
        with self._lock:
            self._prune_sessions(now)
            self._admin_sessions[session.token] = session
        logger.info("Admin %s logged in", session.username)
        return session

    def admin_logout(self, credential: AdminCredential) -> None:
        token = credential.token if isinstance(credential, AdminSession) else credential
        with self._lock:
            self._admin_sessions.pop(token, None)

    def _require_admin(self, credential: Optional[AdminCredential]) -> str:
        token = credential.token if isinstance(credential, AdminSession) else credential
        session = self._admin_sessions.get(token) if token else None
        if session is None:
            raise UnauthorizedError("Administrative capability required")
        if session.expires_at <= utcnow():
            del self._admin_sessions[token]
            raise UnauthorizedError("Administrative session expired")
        return session.username

    def admin_decide_deposit(
        self, credential: AdminCredential, request_id: UUID, command: DecisionCommand
    ) -> RecordResponse:
        with self._command():
            actor = self._require_admin(credential)
            request = self.ledger.decide(request_id, RecordKind.DEPOSIT, command.outcome, actor)
            return self._record_response(request, f"Deposit {request.status.value}")

    def admin_decide_withdrawal(
        self, credential: AdminCredential, request_id: UUID, command: DecisionCommand
    ) -> RecordResponse:
        with self._command():
            actor = self._require_admin(credential)
            request = self.ledger.decide(request_id, RecordKind.WITHDRAWAL, command.outcome, actor)
            return self._record_response(request, f"Withdrawal {request.status.value}")

    def admin_decide_submission(
        self, credential: AdminCredential, submission_id: UUID, command: DecisionCommand
    ) -> RecordResponse:
        with self._command():
            actor = self._require_admin(credential)
            submission = self.tracker.decide_submission(submission_id, command.outcome, actor)
            return self._record_response(submission, f"Submission {submission.status.value}")

    def admin_create_task(self, credential: AdminCredential, command: CreateTaskCommand) -> Task:
        with self._command():
            actor = self._require_admin(credential)
            task = self.catalog.create(command)
            logger.info("Task %s (%s) created by %s", task.id, task.title, actor)
            return task

    def admin_update_task(self, credential: AdminCredential, task_id: UUID, command: UpdateTaskCommand) -> Task:
        with self._command():
            actor = self._require_admin(credential)
            task = self.catalog.update(task_id, command)
            logger.info("Task %s updated by %s", task_id, actor)
            return task

    def admin_delete_task(self, credential: AdminCredential, task_id: UUID) -> Task:
        with self._command():
            actor = self._require_admin(credential)
            task = self.catalog.delete(task_id)
            logger.info("Task %s deleted by %s", task_id, actor)
            return task

    def admin_update_settings(self, credential: AdminCredential, update: SettingsUpdate) -> EngineSettings:
        with self._command():
            actor = self._require_admin(credential)
            merged = {**self.storage.settings, **update.model_dump(exclude_none=True)}
            try:
                settings = EngineSettings(**merged)
            except ValidationError as e:
                raise InvalidRequestError(f"Invalid settings: {e}") from e
            self.storage.settings = settings.model_dump()
            logger.info("Settings updated by %s", actor)
            return settings

    def admin_update_account(
        self, credential: AdminCredential, account_id: UUID, override: AccountOverride
    ) -> AccountView:
        with self._command():
            actor = self._require_admin(credential)
            account = self.accounts.get(account_id)
            if override.balance is not None:
                account = self.accounts.set_balance(account_id, override.balance)
                logger.info("Balance of %s overridden to %s by %s", account_id, override.balance, actor)
            if override.password is not None:
                account = self.accounts.set_credential(account_id, override.password)
                self._revoke_account_sessions(account_id)
                logger.info("Credential of %s reset by %s", account_id, actor)
            return self.accounts.view(account)

    def admin_set_banned(self, credential: AdminCredential, account_id: UUID, banned: bool) -> AccountView:
        with self._command():
            actor = self._require_admin(credential)
            account = self.accounts.set_banned(account_id, banned)
            if banned:
                self._revoke_account_sessions(account_id)
            logger.info("Account %s %s by %s", account_id, "banned" if banned else "unbanned", actor)
            return self.accounts.view(account)

    def admin_list_accounts(self, credential: AdminCredential) -> list[AccountView]:
        with self._lock:
            self._require_admin(credential)
            return [self.accounts.view(a) for a in self.accounts.all()]

    def admin_list_deposits(
        self, credential: AdminCredential, status: Optional[RequestStatus] = None
    ) -> list[DepositRequest]:
        with self._lock:
            self._require_admin(credential)
            return self.ledger.list_deposits(status)

    def admin_list_withdrawals(
        self, credential: AdminCredential, status: Optional[RequestStatus] = None
    ) -> list[WithdrawalRequest]:
        with self._lock:
            self._require_admin(credential)
            return self.ledger.list_withdrawals(status)

    def admin_list_submissions(
        self, credential: AdminCredential, status: Optional[RequestStatus] = None
    ) -> list[TaskSubmission]:
        with self._lock:
            self._require_admin(credential)
            return self.tracker.all(status)

    def admin_dashboard(self, credential: AdminCredential) -> DashboardStats:
        with self._lock:
            self._require_admin(credential)
            accounts = self.storage.accounts.values()
            return DashboardStats(
                total_users=len(accounts),
                banned_users=sum(1 for a in accounts if a["is_banned"]),
                pending_deposits=len(self.ledger.list_deposits(RequestStatus.PENDING)),
                pending_withdrawals=len(self.ledger.list_withdrawals(RequestStatus.PENDING)),
                pending_submissions=len(self.tracker.all(RequestStatus.PENDING)),
                total_balance=sum((a["balance"] for a in accounts), Decimal("0")),
            )

    def _record_response(self, record, message: str) -> RecordResponse:
        account = self.accounts.get(record.account_id)
        return RecordResponse(record=record, account=self.accounts.view(account), message=message)
