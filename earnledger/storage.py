import copy
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from .models import (
    Account,
    DepositRequest,
    EngineSettings,
    EngineSnapshot,
    Plan,
    Task,
    TaskCategory,
    TaskSubmission,
    TimedTaskToken,
    WithdrawalRequest,
    utcnow,
)

VIDEO_TASK_ID = UUID("11111111-1111-1111-1111-111111111111")
CHANNEL_TASK_ID = UUID("22222222-2222-2222-2222-222222222222")
DEFAULT_PLAN_ID = 1


class InMemoryStorage:
    """Raw engine state, kept as plain dicts keyed by id.

    Components read and write these dicts; callers only ever see pydantic
    models built from them, so nothing outside the engine can mutate state.
    """

    _TABLES = (
        "accounts", "plans", "tasks", "deposits", "withdrawals",
        "submissions", "timed_tokens", "settings",
    )

    def __init__(self, seed: bool = True):
        self.accounts: dict[UUID, dict] = {}
        self.plans: dict[int, dict] = {}
        self.tasks: dict[UUID, dict] = {}
        self.deposits: dict[UUID, dict] = {}
        self.withdrawals: dict[UUID, dict] = {}
        self.submissions: dict[UUID, dict] = {}
        self.timed_tokens: dict[UUID, dict] = {}
        self.settings: dict = EngineSettings().model_dump()
        if seed:
            self._seed_data()

    def _seed_data(self):
        for plan in (
            Plan(id=1, name="Basic", price=Decimal("0"), daily_limit=5),
            Plan(id=2, name="VIP 1", price=Decimal("1000"), daily_limit=15),
            Plan(id=3, name="VIP 2", price=Decimal("5000"), daily_limit=30),
        ):
            self.plans[plan.id] = plan.model_dump()

        now = utcnow()
        self.tasks[VIDEO_TASK_ID] = {
            "id": VIDEO_TASK_ID, "title": "Watch Video Ad",
            "reward": Decimal("25"), "category": TaskCategory.TIMED_VIDEO,
            "duration_seconds": 10, "link": None, "created_at": now,
        }
        self.tasks[CHANNEL_TASK_ID] = {
            "id": CHANNEL_TASK_ID, "title": "Subscribe Channel",
            "reward": Decimal("50"), "category": TaskCategory.LINK_PROOF,
            "duration_seconds": None, "link": "https://youtube.com", "created_at": now,
        }

    @property
    def default_plan_id(self) -> int:
        if not self.plans:
            return DEFAULT_PLAN_ID
        return min(self.plans.values(), key=lambda p: (p["price"], p["id"]))["id"]

    def find_account_by_email(self, email: str):
        for account in self.accounts.values():
            if account["email"] == email:
                return account
        return None

    def referral_codes(self) -> set[str]:
        return {a["referral_code"] for a in self.accounts.values()}

    @contextmanager
    def transaction(self):
        """Run a block of writes as one unit; any exception restores prior state."""
        saved = {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}
        try:
            yield self
        except BaseException:
            for name, value in saved.items():
                setattr(self, name, value)
            raise

    def to_snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            accounts=[Account(**a) for a in self.accounts.values()],
            plans=[Plan(**p) for p in self.plans.values()],
            tasks=[Task(**t) for t in self.tasks.values()],
            deposits=[DepositRequest(**d) for d in self.deposits.values()],
            withdrawals=[WithdrawalRequest(**w) for w in self.withdrawals.values()],
            submissions=[TaskSubmission(**s) for s in self.submissions.values()],
            timed_tokens=[TimedTaskToken(**t) for t in self.timed_tokens.values()],
            settings=EngineSettings(**self.settings),
        )

    @classmethod
    def from_snapshot(cls, snapshot: EngineSnapshot) -> "InMemoryStorage":
        storage = cls(seed=False)
        storage.accounts = {a.id: a.model_dump() for a in snapshot.accounts}
        storage.plans = {p.id: p.model_dump() for p in snapshot.plans}
        storage.tasks = {t.id: t.model_dump() for t in snapshot.tasks}
        storage.deposits = {d.id: d.model_dump() for d in snapshot.deposits}
        storage.withdrawals = {w.id: w.model_dump() for w in snapshot.withdrawals}
        storage.submissions = {s.id: s.model_dump() for s in snapshot.submissions}
        storage.timed_tokens = {t.id: t.model_dump() for t in snapshot.timed_tokens}
        storage.settings = snapshot.settings.model_dump()
        return storage
