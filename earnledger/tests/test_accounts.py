"""
Unit Tests for the Account Store

Tests cover:
1. Registration and duplicate emails
2. Credential hashing and authentication
3. Bans
4. Balance adjustment guard
5. User session tokens
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from pydantic import ValidationError

from earnledger.accounts import AccountStore
from earnledger.config import EngineConfig
from earnledger.engine import ApprovalEngine
from earnledger.errors import (
    BannedError,
    DuplicateEmailError,
    InsufficientFundsError,
    InvalidCredentialError,
    InvalidRequestError,
    UnauthorizedError,
)
from earnledger.models import (
    AccountOverride,
    AdminLoginCommand,
    ChangePasswordCommand,
    DepositCommand,
    LoginCommand,
    RegisterCommand,
)
from earnledger.security import REFERRAL_ALPHABET
from earnledger.storage import InMemoryStorage


def make_engine():
    engine = ApprovalEngine(config=EngineConfig.with_admin("admin", "admin-pass"))
    admin = engine.admin_login(AdminLoginCommand(username="admin", password="admin-pass"))
    return engine, admin


class TestRegistration:
    """Tests for account creation."""

    def test_register_defaults(self):
        """A new account starts at zero on the lowest plan with a fresh referral code."""
        engine, _ = make_engine()

        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        assert account.balance == Decimal("0")
        assert account.plan.name == "Basic"
        assert account.plan.price == Decimal("0")
        assert len(account.referral_code) == 6
        assert set(account.referral_code) <= set(REFERRAL_ALPHABET)
        assert account.referred_by is None
        assert account.stats.tasks_completed == 0
        assert account.is_banned is False

    def test_duplicate_email_rejected(self):
        engine, _ = make_engine()
        engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        with pytest.raises(DuplicateEmailError):
            engine.register(RegisterCommand(name="Other", email="ali@example.com", password="other"))

    def test_email_match_is_case_sensitive(self):
        """Emails differing only in case are distinct accounts."""
        engine, _ = make_engine()
        engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        other = engine.register(RegisterCommand(name="Ali", email="Ali@example.com", password="pass1234"))

        assert other.email == "Ali@example.com"

    def test_referral_codes_are_unique(self):
        engine, _ = make_engine()
        codes = {
            engine.register(RegisterCommand(name=f"U{i}", email=f"u{i}@example.com", password="pass")).referral_code
            for i in range(20)
        }

        assert len(codes) == 20

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            RegisterCommand(name="   ", email="ali@example.com", password="pass1234")

    def test_name_is_trimmed(self):
        engine, _ = make_engine()

        account = engine.register(RegisterCommand(name="  Ali  ", email="ali@example.com", password="pass1234"))

        assert account.name == "Ali"

    def test_public_view_hides_credential(self):
        engine, _ = make_engine()

        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        assert "credential_hash" not in account.model_dump()


class TestAuthentication:
    """Tests for login and credential storage."""

    def test_credential_is_stored_hashed(self):
        """Only a salted one-way hash is kept; two accounts with one password differ."""
        storage = InMemoryStorage()
        store = AccountStore(storage)

        first = store.create_account("A", "a@example.com", "same-secret")
        second = store.create_account("B", "b@example.com", "same-secret")

        assert "same-secret" not in first.credential_hash
        assert first.credential_hash != second.credential_hash

    def test_login_success(self):
        engine, _ = make_engine()
        created = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        session = engine.login(LoginCommand(email="ali@example.com", password="pass1234"))

        assert session.account.id == created.id
        assert engine.account_for_token(session.token) == created.id
        assert session.expires_at > session.issued_at

    def test_login_wrong_password(self):
        engine, _ = make_engine()
        engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        with pytest.raises(InvalidCredentialError):
            engine.login(LoginCommand(email="ali@example.com", password="wrong"))

    def test_login_unknown_email(self):
        engine, _ = make_engine()

        with pytest.raises(InvalidCredentialError):
            engine.login(LoginCommand(email="ghost@example.com", password="pass1234"))

    def test_change_password(self):
        engine, _ = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        engine.change_password(account.id, ChangePasswordCommand(current_password="pass1234", new_password="newpass"))

        with pytest.raises(InvalidCredentialError):
            engine.login(LoginCommand(email="ali@example.com", password="pass1234"))
        assert engine.login(LoginCommand(email="ali@example.com", password="newpass")).account.id == account.id

    def test_change_password_too_short(self):
        engine, _ = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        with pytest.raises(InvalidRequestError):
            engine.change_password(account.id, ChangePasswordCommand(current_password="pass1234", new_password="abc"))

    def test_change_password_requires_current(self):
        engine, _ = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        with pytest.raises(InvalidCredentialError):
            engine.change_password(account.id, ChangePasswordCommand(current_password="nope", new_password="newpass"))


class TestBans:
    """Tests for banned accounts."""

    def test_banned_account_cannot_login(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        engine.admin_set_banned(admin, account.id, True)

        with pytest.raises(BannedError):
            engine.login(LoginCommand(email="ali@example.com", password="pass1234"))

    def test_banned_account_cannot_submit(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        engine.admin_set_banned(admin, account.id, True)

        with pytest.raises(BannedError):
            engine.submit_deposit(account.id, DepositCommand(amount=Decimal("1000"), reference="TRX"))

    def test_unban_restores_login(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        engine.admin_set_banned(admin, account.id, True)

        engine.admin_set_banned(admin, account.id, False)

        assert engine.login(LoginCommand(email="ali@example.com", password="pass1234")).account.id == account.id


class TestBalanceAdjustment:
    """Tests for the balance guard and admin overrides."""

    def test_adjust_balance_never_goes_negative(self):
        store = AccountStore(InMemoryStorage())
        account = store.create_account("A", "a@example.com", "secret")
        store.adjust_balance(account.id, Decimal("100"))

        with pytest.raises(InsufficientFundsError):
            store.adjust_balance(account.id, Decimal("-100.01"))

        assert store.get(account.id).balance == Decimal("100")

    def test_increment_task_stat(self):
        store = AccountStore(InMemoryStorage())
        account = store.create_account("A", "a@example.com", "secret")

        store.increment_task_stat(account.id)
        store.increment_task_stat(account.id)

        assert store.get(account.id).stats.tasks_completed == 2

    def test_admin_override_balance_and_password(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        updated = engine.admin_update_account(
            admin, account.id, AccountOverride(balance=Decimal("750"), password="reset-pass")
        )

        assert updated.balance == Decimal("750")
        assert engine.login(LoginCommand(email="ali@example.com", password="reset-pass")).account.id == account.id

    def test_override_requires_admin(self):
        engine, _ = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))

        with pytest.raises(UnauthorizedError):
            engine.admin_update_account("not-a-token", account.id, AccountOverride(balance=Decimal("1")))

        assert engine.get_account(account.id).balance == Decimal("0")


class TestUserSessions:
    """Tests for user session tokens issued at login."""

    def login(self, engine):
        return engine.login(LoginCommand(email="ali@example.com", password="pass1234"))

    def test_unknown_token_rejected(self):
        engine, _ = make_engine()

        with pytest.raises(UnauthorizedError):
            engine.account_for_token("made-up")
        with pytest.raises(UnauthorizedError):
            engine.account_for_token(None)

    def test_logout_revokes_token(self):
        engine, _ = make_engine()
        engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        session = self.login(engine)

        engine.logout(session.token)

        with pytest.raises(UnauthorizedError):
            engine.account_for_token(session.token)

    def test_token_expires(self, monkeypatch):
        engine = ApprovalEngine(config=EngineConfig(session_ttl_seconds=60))
        engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        session = self.login(engine)
        later = session.expires_at + timedelta(seconds=1)

        monkeypatch.setattr("earnledger.engine.utcnow", lambda: later)

        with pytest.raises(UnauthorizedError):
            engine.account_for_token(session.token)

    def test_ban_revokes_sessions(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        session = self.login(engine)

        engine.admin_set_banned(admin, account.id, True)

        with pytest.raises(UnauthorizedError):
            engine.account_for_token(session.token)

    def test_admin_password_reset_revokes_sessions(self):
        engine, admin = make_engine()
        account = engine.register(RegisterCommand(name="Ali", email="ali@example.com", password="pass1234"))
        session = self.login(engine)

        engine.admin_update_account(admin, account.id, AccountOverride(password="reset-pass"))

        with pytest.raises(UnauthorizedError):
            engine.account_for_token(session.token)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
