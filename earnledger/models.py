from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, StringConstraints, model_validator


SNAPSHOT_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class Outcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def status(self) -> RequestStatus:
        return RequestStatus(self.value)


class RecordKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TASK_SUBMISSION = "task_submission"


class TaskCategory(str, Enum):
    TIMED_VIDEO = "timed_video"
    LINK_PROOF = "link_proof"


# --- Stored records ---

class AccountStats(BaseModel):
    tasks_completed: int = 0


class Account(BaseModel):
    id: UUID
    name: str
    email: str
    credential_hash: str
    balance: Decimal = Field(default=Decimal("0"), ge=0)
    plan_id: int
    referral_code: str
    referred_by: Optional[str] = None
    stats: AccountStats = Field(default_factory=AccountStats)
    is_banned: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Plan(BaseModel):
    id: int
    name: str
    price: Decimal
    daily_limit: int

    model_config = ConfigDict(frozen=True)


class Task(BaseModel):
    id: UUID
    title: str
    reward: Decimal = Field(..., gt=0)
    category: TaskCategory
    duration_seconds: Optional[int] = None
    link: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusChange(BaseModel):
    status: RequestStatus
    at: datetime
    actor: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class DepositRequest(BaseModel):
    kind: Literal["deposit"] = "deposit"
    id: UUID
    account_id: UUID
    amount: Decimal
    reference: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    history: list[StatusChange] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class WithdrawalRequest(BaseModel):
    kind: Literal["withdrawal"] = "withdrawal"
    id: UUID
    account_id: UUID
    amount: Decimal
    destination: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    history: list[StatusChange] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TaskSubmission(BaseModel):
    kind: Literal["task_submission"] = "task_submission"
    id: UUID
    account_id: UUID
    task_id: UUID
    task_title: str
    reward: Decimal
    proof: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    history: list[StatusChange] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


LedgerRecord = Annotated[
    Union[DepositRequest, WithdrawalRequest, TaskSubmission],
    Field(discriminator="kind"),
]


class TimedTaskToken(BaseModel):
    id: UUID
    account_id: UUID
    task_id: UUID
    reward: Decimal
    duration_seconds: int
    issued_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class EngineSettings(BaseModel):
    site_name: str = "Hammad.pk"
    notice: str = "Welcome to Hammad.pk! Official Earning Platform."
    min_deposit: Decimal = Field(default=Decimal("500"), gt=0)
    max_deposit: Decimal = Field(default=Decimal("50000"), gt=0)
    min_withdraw: Decimal = Field(default=Decimal("1000"), gt=0)
    max_withdraw: Decimal = Field(default=Decimal("25000"), gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "EngineSettings":
        if self.min_deposit > self.max_deposit:
            raise ValueError("min_deposit must not exceed max_deposit")
        if self.min_withdraw > self.max_withdraw:
            raise ValueError("min_withdraw must not exceed max_withdraw")
        return self


class EngineSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    accounts: list[Account] = Field(default_factory=list)
    plans: list[Plan] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    deposits: list[DepositRequest] = Field(default_factory=list)
    withdrawals: list[WithdrawalRequest] = Field(default_factory=list)
    submissions: list[TaskSubmission] = Field(default_factory=list)
    timed_tokens: list[TimedTaskToken] = Field(default_factory=list)
    settings: EngineSettings = Field(default_factory=EngineSettings)


# --- Commands ---

class RegisterCommand(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    referral_code: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Ali Raza",
            "email": "ali@example.com",
            "password": "s3cret",
            "referral_code": "K7Q2ZD"
        }
    })


class LoginCommand(BaseModel):
    email: str
    password: str


class ChangePasswordCommand(BaseModel):
    current_password: str
    new_password: str


class DepositCommand(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reference: str = Field(..., min_length=1, description="External transaction id")


class WithdrawalCommand(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    destination: str = Field(..., min_length=1, description="Destination account number")


class ProofCommand(BaseModel):
    task_id: UUID
    proof: str = ""


class DecisionCommand(BaseModel):
    outcome: Outcome


class CreateTaskCommand(BaseModel):
    title: str = Field(..., min_length=1)
    reward: Decimal = Field(..., gt=0, decimal_places=2)
    category: TaskCategory
    duration_seconds: Optional[int] = Field(default=None, gt=0)
    link: Optional[str] = None


class UpdateTaskCommand(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    reward: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    duration_seconds: Optional[int] = Field(default=None, gt=0)
    link: Optional[str] = None


class SettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    notice: Optional[str] = None
    min_deposit: Optional[Decimal] = None
    max_deposit: Optional[Decimal] = None
    min_withdraw: Optional[Decimal] = None
    max_withdraw: Optional[Decimal] = None


class AccountOverride(BaseModel):
    balance: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    password: Optional[str] = Field(default=None, min_length=1)


class AdminLoginCommand(BaseModel):
    username: str
    password: str


# --- Views ---

class AccountView(BaseModel):
    id: UUID
    name: str
    email: str
    balance: Decimal
    plan: Plan
    referral_code: str
    referred_by: Optional[str] = None
    stats: AccountStats
    is_banned: bool
    created_at: datetime


class AccountSummary(BaseModel):
    name: str
    plan_id: int
    tasks_completed: int
    joined_at: datetime


class TeamStats(BaseModel):
    referral_code: str
    members: int
    tasks_completed: int


class AdminSession(BaseModel):
    token: str
    username: str
    issued_at: datetime
    expires_at: datetime


class UserSession(BaseModel):
    token: str
    account: AccountView
    issued_at: datetime
    expires_at: datetime


class RecordResponse(BaseModel):
    record: LedgerRecord
    account: AccountView
    message: str


class TimedTaskResponse(BaseModel):
    token: TimedTaskToken
    account: AccountView
    message: str


class DashboardStats(BaseModel):
    total_users: int
    banned_users: int
    pending_deposits: int
    pending_withdrawals: int
    pending_submissions: int
    total_balance: Decimal
