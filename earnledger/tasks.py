import logging
from typing import Optional
from uuid import UUID, uuid4

from .accounts import AccountStore
from .errors import AlreadyDecidedError, InvalidRequestError, MissingProofError, NotFoundError
from .models import (
    CreateTaskCommand,
    Outcome,
    RecordKind,
    RequestStatus,
    Task,
    TaskCategory,
    TaskSubmission,
    TimedTaskToken,
    UpdateTaskCommand,
    utcnow,
)
from .states import apply_outcome, opening_history
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)

DEFAULT_TIMED_DURATION = 10


class TaskCatalog:
    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def create(self, command: CreateTaskCommand) -> Task:
        duration = None
        link = (command.link or "").strip() or None
        if command.category is TaskCategory.TIMED_VIDEO:
            duration = command.duration_seconds or DEFAULT_TIMED_DURATION
        elif link is None:
            raise InvalidRequestError("Link-proof tasks need an external link")

        task_id = uuid4()
        task_data = {
            "id": task_id,
            "title": command.title.strip(),
            "reward": command.reward,
            "category": command.category,
            "duration_seconds": duration,
            "link": link,
            "created_at": utcnow(),
        }
        self.storage.tasks[task_id] = task_data
        return Task(**task_data)

    def update(self, task_id: UUID, command: UpdateTaskCommand) -> Task:
        task_data = self._get_data(task_id)
        changes = command.model_dump(exclude_none=True)
        if "duration_seconds" in changes and task_data["category"] != TaskCategory.TIMED_VIDEO:
            raise InvalidRequestError("Only timed tasks have a duration")
        if "link" in changes:
            changes["link"] = changes["link"].strip() or None
            if changes["link"] is None and task_data["category"] == TaskCategory.LINK_PROOF:
                raise InvalidRequestError("Link-proof tasks need an external link")
        task_data.update(changes)
        return Task(**task_data)

    def delete(self, task_id: UUID) -> Task:
        task_data = self._get_data(task_id)
        del self.storage.tasks[task_id]
        return Task(**task_data)

    def get(self, task_id: UUID) -> Task:
        return Task(**self._get_data(task_id))

    def all(self, category: Optional[TaskCategory] = None) -> list[Task]:
        tasks = [Task(**t) for t in self.storage.tasks.values()]
        if category:
            tasks = [t for t in tasks if t.category == category]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return tasks

    def _get_data(self, task_id: UUID) -> dict:
        task_data = self.storage.tasks.get(task_id)
        if task_data is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task_data


class SubmissionTracker:
    """Proof submissions awaiting review and timed-task completion tokens.

    Both capture the task reward at creation time, so later edits to the
    task never change what a pending submission or open token pays.
    """

    def __init__(self, storage: InMemoryStorage, accounts: AccountStore, catalog: TaskCatalog):
        self.storage = storage
        self.accounts = accounts
        self.catalog = catalog

    def start_timed_task(self, account_id: UUID, task_id: UUID) -> TimedTaskToken:
        self.accounts.get(account_id)
        task = self.catalog.get(task_id)
        if task.category is not TaskCategory.TIMED_VIDEO:
            raise InvalidRequestError(f"Task {task_id} is not a timed task")

        token_id = uuid4()
        token_data = {
            "id": token_id,
            "account_id": account_id,
            "task_id": task_id,
            "reward": task.reward,
            "duration_seconds": task.duration_seconds or DEFAULT_TIMED_DURATION,
            "issued_at": utcnow(),
            "completed_at": None,
        }
        self.storage.timed_tokens[token_id] = token_data
        return TimedTaskToken(**token_data)

    def complete_timed_task(self, token_id: UUID) -> TimedTaskToken:
        token_data = self.get_token_data(token_id)
        if token_data["completed_at"] is not None:
            logger.warning("Timed task token %s completed twice", token_id)
            raise AlreadyDecidedError(f"Timed task token {token_id} was already completed")

        self.accounts.adjust_balance(token_data["account_id"], token_data["reward"])
        self.accounts.increment_task_stat(token_data["account_id"])
        token_data["completed_at"] = utcnow()
        logger.info("Timed task token %s paid %s to %s", token_id, token_data["reward"], token_data["account_id"])
        return TimedTaskToken(**token_data)

    def get_token_data(self, token_id: UUID) -> dict:
        token_data = self.storage.timed_tokens.get(token_id)
        if token_data is None:
            raise NotFoundError(f"Timed task token {token_id} not found")
        return token_data

    def submit_proof(self, account_id: UUID, task_id: UUID, proof: str) -> TaskSubmission:
        self.accounts.get(account_id)
        task = self.catalog.get(task_id)
        if task.category is not TaskCategory.LINK_PROOF:
            raise InvalidRequestError(f"Task {task_id} does not take proof submissions")
        proof = (proof or "").strip()
        if not proof:
            raise MissingProofError("Please attach a proof before submitting")

        submission_id = uuid4()
        submission_data = {
            "kind": RecordKind.TASK_SUBMISSION.value,
            "id": submission_id,
            "account_id": account_id,
            "task_id": task.id,
            "task_title": task.title,
            "reward": task.reward,
            "proof": proof,
            "status": RequestStatus.PENDING,
            "created_at": utcnow(),
            "history": opening_history(),
        }
        self.storage.submissions[submission_id] = submission_data
        logger.info("Submission %s for task %s captured reward %s", submission_id, task.id, task.reward)
        return TaskSubmission(**submission_data)

    def decide_submission(self, submission_id: UUID, outcome: Outcome, actor: Optional[str] = None) -> TaskSubmission:
        submission_data = self._get_data(submission_id)
        status = apply_outcome(submission_data, outcome, "Submission", actor)
        if status is RequestStatus.APPROVED:
            self.accounts.adjust_balance(submission_data["account_id"], submission_data["reward"])
            self.accounts.increment_task_stat(submission_data["account_id"])
        logger.info("Submission %s %s by %s", submission_id, status.value, actor)
        return TaskSubmission(**submission_data)

    def get(self, submission_id: UUID) -> TaskSubmission:
        return TaskSubmission(**self._get_data(submission_id))

    def all(self, status: Optional[RequestStatus] = None) -> list[TaskSubmission]:
        rows = [s for s in self.storage.submissions.values() if status is None or s["status"] == status]
        rows.sort(key=lambda s: s["created_at"], reverse=True)
        return [TaskSubmission(**s) for s in rows]

    def _get_data(self, submission_id: UUID) -> dict:
        submission_data = self.storage.submissions.get(submission_id)
        if submission_data is None:
            raise NotFoundError(f"Submission {submission_id} not found")
        return submission_data
