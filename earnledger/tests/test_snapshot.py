"""
Unit Tests for snapshots and persistence hooks

Tests cover:
1. Exact JSON round trip of the whole engine state
2. Save after every committed command
3. Restoring an engine from a saved document
4. Rollback when the save hook fails
"""

import json

import pytest
from decimal import Decimal
from pydantic import ValidationError

from earnledger.config import EngineConfig
from earnledger.engine import ApprovalEngine
from earnledger.errors import AlreadyDecidedError, InsufficientFundsError
from earnledger.models import (
    AdminLoginCommand,
    DecisionCommand,
    DepositCommand,
    EngineSnapshot,
    Outcome,
    ProofCommand,
    RegisterCommand,
    RequestStatus,
    WithdrawalCommand,
)
from earnledger.snapshot import JsonFileSnapshotStore, MemorySnapshotStore
from earnledger.storage import CHANNEL_TASK_ID, VIDEO_TASK_ID

CONFIG = EngineConfig.with_admin("admin", "admin-pass")


def admin_of(engine):
    return engine.admin_login(AdminLoginCommand(username="admin", password="admin-pass"))


def populate(engine):
    admin = admin_of(engine)
    account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
    deposit = engine.submit_deposit(account.id, DepositCommand(amount=Decimal("5000.50"), reference="TRX-1"))
    engine.admin_decide_deposit(admin, deposit.record.id, DecisionCommand(outcome=Outcome.APPROVED))
    engine.submit_withdrawal(account.id, WithdrawalCommand(amount=Decimal("1000"), destination="acc"))
    engine.submit_task_proof(account.id, ProofCommand(task_id=CHANNEL_TASK_ID, proof="shot.png"))
    engine.start_timed_task(account.id, VIDEO_TASK_ID)
    return account


class FailingStore(MemorySnapshotStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, snapshot):
        if self.fail:
            raise IOError("disk full")
        super().save(snapshot)


class TestSnapshotRoundTrip:
    """Tests for exact serialization."""

    def test_json_round_trip_is_exact(self):
        engine = ApprovalEngine(config=CONFIG)
        populate(engine)
        snapshot = engine.snapshot()

        restored = EngineSnapshot.model_validate_json(snapshot.model_dump_json())

        assert restored == snapshot
        assert restored.deposits[0].status == RequestStatus.APPROVED
        assert restored.deposits[0].amount == Decimal("5000.50")
        assert restored.submissions[0].reward == Decimal("50")

    def test_engine_restores_from_store(self):
        store = MemorySnapshotStore()
        engine = ApprovalEngine(config=CONFIG, snapshot_store=store)
        account = populate(engine)

        reopened = ApprovalEngine(config=CONFIG, snapshot_store=store)

        assert reopened.snapshot() == engine.snapshot()
        assert reopened.get_account(account.id).balance == Decimal("4000.50")

    def test_decided_requests_stay_decided_after_restore(self):
        store = MemorySnapshotStore()
        engine = ApprovalEngine(config=CONFIG, snapshot_store=store)
        populate(engine)
        deposit_id = engine.snapshot().deposits[0].id

        reopened = ApprovalEngine(config=CONFIG, snapshot_store=store)

        with pytest.raises(AlreadyDecidedError):
            reopened.admin_decide_deposit(admin_of(reopened), deposit_id, DecisionCommand(outcome=Outcome.APPROVED))

    def test_json_file_store(self, tmp_path):
        path = str(tmp_path / "state" / "engine.json")
        engine = ApprovalEngine(config=CONFIG, snapshot_store=JsonFileSnapshotStore(path))
        account = populate(engine)

        reopened = ApprovalEngine(config=CONFIG, snapshot_store=JsonFileSnapshotStore(path))

        assert reopened.snapshot() == engine.snapshot()
        assert reopened.get_account(account.id).email == "ali@example.com"

    def test_negative_balance_rejected_on_load(self):
        store = MemorySnapshotStore()
        populate(ApprovalEngine(config=CONFIG, snapshot_store=store))
        document = json.loads(store.document)
        document["accounts"][0]["balance"] = "-5"
        store.document = json.dumps(document)

        with pytest.raises(ValidationError):
            ApprovalEngine(config=CONFIG, snapshot_store=store)


class TestCommitDiscipline:
    """Tests for save-after-commit and rollback."""

    def test_every_committed_command_is_saved(self):
        store = MemorySnapshotStore()
        engine = ApprovalEngine(config=CONFIG, snapshot_store=store)
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        saves_after_register = store.saves

        engine.submit_deposit(account.id, DepositCommand(amount=Decimal("600"), reference="TRX"))

        assert store.saves == saves_after_register + 1
        assert len(store.load().deposits) == 1

    def test_failed_command_is_not_saved(self):
        store = MemorySnapshotStore()
        engine = ApprovalEngine(config=CONFIG, snapshot_store=store)
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        saves = store.saves

        with pytest.raises(InsufficientFundsError):
            engine.submit_withdrawal(account.id, WithdrawalCommand(amount=Decimal("1000"), destination="acc"))

        assert store.saves == saves

    def test_failed_save_rolls_back_state(self):
        store = FailingStore()
        engine = ApprovalEngine(config=CONFIG, snapshot_store=store)
        admin = admin_of(engine)
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        deposit = engine.submit_deposit(account.id, DepositCommand(amount=Decimal("1000"), reference="TRX"))
        store.fail = True

        with pytest.raises(IOError):
            engine.admin_decide_deposit(admin, deposit.record.id, DecisionCommand(outcome=Outcome.APPROVED))

        snapshot = engine.snapshot()
        assert snapshot.deposits[0].status == RequestStatus.PENDING
        assert snapshot.accounts[0].balance == Decimal("0")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
