from typing import Optional
from uuid import UUID
from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware

from .config import EngineConfig, configure_logging
from .engine import ApprovalEngine
from .errors import (
    AlreadyDecidedError,
    BannedError,
    DuplicateEmailError,
    InvalidCredentialError,
    LedgerError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    AccountOverride, AccountSummary, AccountView, AdminLoginCommand, AdminSession,
    ChangePasswordCommand, CreateTaskCommand, DashboardStats, DecisionCommand,
    DepositCommand, DepositRequest, EngineSettings, LedgerRecord, LoginCommand, Plan, ProofCommand,
    RecordResponse, RegisterCommand, RequestStatus, SettingsUpdate, Task, TaskCategory,
    TaskSubmission, TeamStats, TimedTaskResponse, TimedTaskToken, UpdateTaskCommand,
    UserSession, WithdrawalCommand, WithdrawalRequest,
)

ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateEmailError, status.HTTP_409_CONFLICT),
    (AlreadyDecidedError, status.HTTP_409_CONFLICT),
    (InvalidCredentialError, status.HTTP_401_UNAUTHORIZED),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (BannedError, status.HTTP_403_FORBIDDEN),
]


def _http_error(e: LedgerError) -> HTTPException:
    for error_type, code in ERROR_STATUS:
        if isinstance(e, error_type):
            return HTTPException(status_code=code, detail={"code": e.code, "message": str(e)})
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"code": e.code, "message": str(e)})


def admin_token(x_admin_token: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_admin_token


def create_app(engine: ApprovalEngine, root_path: str = "") -> FastAPI:
    app = FastAPI(
        title="Earnings Ledger API",
        description="Account balances, deposits, withdrawals and task rewards with reviewed state transitions",
        version="1.0.0",
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine

    def current_account(x_account_token: Optional[str] = Header(default=None)) -> UUID:
        try:
            return engine.account_for_token(x_account_token)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "earnledger"}

    @app.get("/settings", response_model=EngineSettings, tags=["System"])
    def get_settings() -> EngineSettings:
        return engine.get_settings()

    @app.get("/plans", response_model=list[Plan], tags=["System"])
    def list_plans() -> list[Plan]:
        return engine.list_plans()

    # --- Accounts ---

    @app.post("/auth/register", response_model=AccountView, status_code=status.HTTP_201_CREATED, tags=["Accounts"])
    def register(command: RegisterCommand) -> AccountView:
        try:
            return engine.register(command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/auth/login", response_model=UserSession, tags=["Accounts"])
    def login(command: LoginCommand) -> UserSession:
        try:
            return engine.login(command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/auth/logout", tags=["Accounts"])
    def logout(x_account_token: Optional[str] = Header(default=None)):
        if x_account_token:
            engine.logout(x_account_token)
        return {"message": "Logged out"}

    @app.get("/account", response_model=AccountView, tags=["Accounts"])
    def get_account(account_id: UUID = Depends(current_account)) -> AccountView:
        try:
            return engine.get_account(account_id)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/account/password", response_model=AccountView, tags=["Accounts"])
    def change_password(command: ChangePasswordCommand, account_id: UUID = Depends(current_account)) -> AccountView:
        try:
            return engine.change_password(account_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/account/history", response_model=list[LedgerRecord], tags=["Accounts"])
    def account_history(account_id: UUID = Depends(current_account)):
        try:
            return engine.account_history(account_id)
        except LedgerError as e:
            raise _http_error(e)

    # --- Wallet ---

    @app.post("/account/deposits", response_model=RecordResponse,
              status_code=status.HTTP_201_CREATED, tags=["Wallet"])
    def submit_deposit(command: DepositCommand, account_id: UUID = Depends(current_account)) -> RecordResponse:
        try:
            return engine.submit_deposit(account_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/account/withdrawals", response_model=RecordResponse,
              status_code=status.HTTP_201_CREATED, tags=["Wallet"])
    def submit_withdrawal(command: WithdrawalCommand, account_id: UUID = Depends(current_account)) -> RecordResponse:
        try:
            return engine.submit_withdrawal(account_id, command)
        except LedgerError as e:
            raise _http_error(e)

    # --- Tasks ---

    @app.get("/tasks", response_model=list[Task], tags=["Tasks"])
    def list_tasks(category: Optional[TaskCategory] = None) -> list[Task]:
        return engine.list_tasks(category)

    @app.post("/account/timed-tasks/{task_id}", response_model=TimedTaskToken,
              status_code=status.HTTP_201_CREATED, tags=["Tasks"])
    def start_timed_task(task_id: UUID, account_id: UUID = Depends(current_account)) -> TimedTaskToken:
        try:
            return engine.start_timed_task(account_id, task_id)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/account/timed-tasks/{token_id}/complete", response_model=TimedTaskResponse, tags=["Tasks"])
    def complete_timed_task(token_id: UUID, account_id: UUID = Depends(current_account)) -> TimedTaskResponse:
        try:
            return engine.complete_timed_task(token_id, account_id)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/account/submissions", response_model=RecordResponse,
              status_code=status.HTTP_201_CREATED, tags=["Tasks"])
    def submit_task_proof(command: ProofCommand, account_id: UUID = Depends(current_account)) -> RecordResponse:
        try:
            return engine.submit_task_proof(account_id, command)
        except LedgerError as e:
            raise _http_error(e)

    # --- Referrals ---

    @app.get("/referrals/{referral_code}/team", response_model=list[AccountSummary], tags=["Referrals"])
    def team_of(referral_code: str) -> list[AccountSummary]:
        return engine.team_of(referral_code)

    @app.get("/referrals/{referral_code}/stats", response_model=TeamStats, tags=["Referrals"])
    def team_stats(referral_code: str) -> TeamStats:
        return engine.team_stats(referral_code)

    # --- Admin ---

    @app.post("/admin/login", response_model=AdminSession, tags=["Admin"])
    def admin_login(command: AdminLoginCommand) -> AdminSession:
        try:
            return engine.admin_login(command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/logout", tags=["Admin"])
    def admin_logout(token: Optional[str] = Depends(admin_token)):
        if token:
            engine.admin_logout(token)
        return {"message": "Logged out"}

    @app.get("/admin/dashboard", response_model=DashboardStats, tags=["Admin"])
    def admin_dashboard(token: Optional[str] = Depends(admin_token)) -> DashboardStats:
        try:
            return engine.admin_dashboard(token)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/admin/accounts", response_model=list[AccountView], tags=["Admin"])
    def admin_list_accounts(token: Optional[str] = Depends(admin_token)) -> list[AccountView]:
        try:
            return engine.admin_list_accounts(token)
        except LedgerError as e:
            raise _http_error(e)

    @app.patch("/admin/accounts/{account_id}", response_model=AccountView, tags=["Admin"])
    def admin_update_account(
        account_id: UUID, override: AccountOverride, token: Optional[str] = Depends(admin_token)
    ) -> AccountView:
        try:
            return engine.admin_update_account(token, account_id, override)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/accounts/{account_id}/ban", response_model=AccountView, tags=["Admin"])
    def admin_ban(account_id: UUID, banned: bool = True, token: Optional[str] = Depends(admin_token)) -> AccountView:
        try:
            return engine.admin_set_banned(token, account_id, banned)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/admin/deposits", response_model=list[DepositRequest], tags=["Admin"])
    def admin_list_deposits(
        status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
        token: Optional[str] = Depends(admin_token),
    ) -> list[DepositRequest]:
        try:
            return engine.admin_list_deposits(token, status_filter)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/admin/withdrawals", response_model=list[WithdrawalRequest], tags=["Admin"])
    def admin_list_withdrawals(
        status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
        token: Optional[str] = Depends(admin_token),
    ) -> list[WithdrawalRequest]:
        try:
            return engine.admin_list_withdrawals(token, status_filter)
        except LedgerError as e:
            raise _http_error(e)

    @app.get("/admin/submissions", response_model=list[TaskSubmission], tags=["Admin"])
    def admin_list_submissions(
        status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
        token: Optional[str] = Depends(admin_token),
    ) -> list[TaskSubmission]:
        try:
            return engine.admin_list_submissions(token, status_filter)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/deposits/{request_id}/decision", response_model=RecordResponse, tags=["Admin"])
    def admin_decide_deposit(
        request_id: UUID, command: DecisionCommand, token: Optional[str] = Depends(admin_token)
    ) -> RecordResponse:
        try:
            return engine.admin_decide_deposit(token, request_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/withdrawals/{request_id}/decision", response_model=RecordResponse, tags=["Admin"])
    def admin_decide_withdrawal(
        request_id: UUID, command: DecisionCommand, token: Optional[str] = Depends(admin_token)
    ) -> RecordResponse:
        try:
            return engine.admin_decide_withdrawal(token, request_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/submissions/{submission_id}/decision", response_model=RecordResponse, tags=["Admin"])
    def admin_decide_submission(
        submission_id: UUID, command: DecisionCommand, token: Optional[str] = Depends(admin_token)
    ) -> RecordResponse:
        try:
            return engine.admin_decide_submission(token, submission_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.post("/admin/tasks", response_model=Task, status_code=status.HTTP_201_CREATED, tags=["Admin"])
    def admin_create_task(command: CreateTaskCommand, token: Optional[str] = Depends(admin_token)) -> Task:
        try:
            return engine.admin_create_task(token, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.patch("/admin/tasks/{task_id}", response_model=Task, tags=["Admin"])
    def admin_update_task(
        task_id: UUID, command: UpdateTaskCommand, token: Optional[str] = Depends(admin_token)
    ) -> Task:
        try:
            return engine.admin_update_task(token, task_id, command)
        except LedgerError as e:
            raise _http_error(e)

    @app.delete("/admin/tasks/{task_id}", response_model=Task, tags=["Admin"])
    def admin_delete_task(task_id: UUID, token: Optional[str] = Depends(admin_token)) -> Task:
        try:
            return engine.admin_delete_task(token, task_id)
        except LedgerError as e:
            raise _http_error(e)

    @app.put("/admin/settings", response_model=EngineSettings, tags=["Admin"])
    def admin_update_settings(update: SettingsUpdate, token: Optional[str] = Depends(admin_token)) -> EngineSettings:
        try:
            return engine.admin_update_settings(token, update)
        except LedgerError as e:
            raise _http_error(e)

    return app


def create_default_app() -> FastAPI:
    config = EngineConfig.from_env()
    configure_logging(config.log_level)
    return create_app(ApprovalEngine.from_config(config), root_path=config.root_path)


app = create_default_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
