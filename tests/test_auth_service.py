"""
Unit tests for registration, password login, refresh and logout.
"""

import asyncio

import pyotp
import pytest
import pytest_asyncio
from sqlalchemy import select

from sso_service.core.errors import AuthError, ErrorKind
from sso_service.models.audit_log import AuditLog
from sso_service.models.database import Database
from sso_service.services.audit_service import AuditService
from tests.conftest import TEST_PASSWORD


class TestRegister:
    """Tests for AuthService.register."""

    @pytest.mark.asyncio
    async def test_register_normalizes_email(self, container, db):
        user = await container.auth.register(db, "  Carol@Example.COM ", TEST_PASSWORD, "Carol")

        assert user.email == "carol@example.com"
        assert user.is_active
        assert not user.is_verified

        stored = await container.users.get_by_email(db, "carol@example.com")
        assert stored.password_hash != TEST_PASSWORD

    @pytest.mark.asyncio
    async def test_duplicate_email(self, container, db, user):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.register(db, "ALICE@example.com", TEST_PASSWORD)
        assert exc_info.value.kind == ErrorKind.ALREADY_EXISTS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", ["short", "password123", "nouppercase1!"])
    async def test_weak_password(self, container, db, password):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.register(db, "dave@example.com", password)
        assert exc_info.value.kind == ErrorKind.WEAK_CREDENTIAL

    @pytest.mark.asyncio
    async def test_invalid_email(self, container, db):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.register(db, "not-an-email", TEST_PASSWORD)
        assert exc_info.value.kind == ErrorKind.WEAK_CREDENTIAL


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_login_success(self, container, db, user):
        response = await container.auth.login(db, "Alice@Example.com", TEST_PASSWORD, ip_address="10.0.0.1")

        assert response.user.id == user.id
        assert response.token_type == "Bearer"
        assert response.scope == "openid profile email"
        assert response.user.last_login_at is not None

        payload = await container.tokens.validate(db, response.access_token)
        assert payload.sub == user.id

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_the_same(self, container, db, user):
        with pytest.raises(AuthError) as wrong_password:
            await container.auth.login(db, "alice@example.com", "Wr0ng!Password")
        with pytest.raises(AuthError) as unknown_user:
            await container.auth.login(db, "nobody@example.com", "Wr0ng!Password")

        assert wrong_password.value.kind == unknown_user.value.kind == ErrorKind.INVALID_CREDENTIALS
        assert wrong_password.value.message == unknown_user.value.message

    @pytest.mark.asyncio
    async def test_inactive_user(self, container, db, user):
        await container.users.set_active(db, user, False)

        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert exc_info.value.kind == ErrorKind.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_lockout_after_threshold(self, container, db, user):
        for _ in range(container.settings.lockout_threshold):
            with pytest.raises(AuthError) as exc_info:
                await container.auth.login(db, "alice@example.com", "Wr0ng!Password")
            assert exc_info.value.kind == ErrorKind.INVALID_CREDENTIALS

        # Even the right password is refused while locked
        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert exc_info.value.kind == ErrorKind.ACCOUNT_LOCKED

        await container.lockout.unlock(db, "alice@example.com")
        response = await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert response.user.id == user.id

    @pytest.mark.asyncio
    async def test_unknown_identities_are_locked_too(self, container, db):
        for _ in range(container.settings.lockout_threshold):
            with pytest.raises(AuthError):
                await container.auth.login(db, "ghost@example.com", "Wr0ng!Password")

        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "ghost@example.com", "Wr0ng!Password")
        assert exc_info.value.kind == ErrorKind.ACCOUNT_LOCKED

    @pytest.mark.asyncio
    async def test_success_resets_failures(self, container, db, user):
        with pytest.raises(AuthError):
            await container.auth.login(db, "alice@example.com", "Wr0ng!Password")
        assert await container.lockout.get_failed_attempts_count(db, "alice@example.com") == 1

        await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert await container.lockout.get_failed_attempts_count(db, "alice@example.com") == 0


class TestLoginWithSecondFactor:
    """Tests for login once two-factor authentication is enabled."""

    @pytest_asyncio.fixture
    async def enrolled(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)
        await container.two_factor.confirm_setup(db, user.id, pyotp.TOTP(setup.secret).now())
        return setup

    @pytest.mark.asyncio
    async def test_code_required(self, container, db, enrolled):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert exc_info.value.kind == ErrorKind.SECOND_FACTOR_REQUIRED

        # Asking for the code is not a failed attempt
        assert await container.lockout.get_failed_attempts_count(db, "alice@example.com") == 0

    @pytest.mark.asyncio
    async def test_totp_code(self, container, db, user, enrolled):
        code = pyotp.TOTP(enrolled.secret).now()

        response = await container.auth.login(db, "alice@example.com", TEST_PASSWORD, second_factor_code=code)
        assert response.user.id == user.id

    @pytest.mark.asyncio
    async def test_wrong_code_counts_as_failure(self, container, db, enrolled):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD, second_factor_code="000000")
        assert exc_info.value.kind == ErrorKind.INVALID_SECOND_FACTOR
        assert await container.lockout.get_failed_attempts_count(db, "alice@example.com") == 1

    @pytest.mark.asyncio
    async def test_backup_code_works_once(self, container, db, user, enrolled):
        backup_code = enrolled.backup_codes[0]

        response = await container.auth.login(
            db, "alice@example.com", TEST_PASSWORD, second_factor_code=backup_code
        )
        assert response.user.id == user.id

        with pytest.raises(AuthError) as exc_info:
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD, second_factor_code=backup_code)
        assert exc_info.value.kind == ErrorKind.INVALID_SECOND_FACTOR


class TestSessions:
    """Tests for refresh, logout and password change."""

    @pytest.mark.asyncio
    async def test_refresh_rotates(self, container, db, user):
        login = await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        issued = await container.auth.refresh(db, login.refresh_token)
        assert issued.refresh_token != login.refresh_token

        with pytest.raises(AuthError) as exc_info:
            await container.auth.refresh(db, login.refresh_token)
        assert exc_info.value.kind == ErrorKind.REVOKED

    @pytest.mark.asyncio
    async def test_logout(self, container, db, user):
        login = await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        await container.auth.logout(db, login.refresh_token)
        # Unknown and repeated logouts are quiet
        await container.auth.logout(db, login.refresh_token)
        await container.auth.logout(db, "no-such-token")

        with pytest.raises(AuthError) as exc_info:
            await container.auth.refresh(db, login.refresh_token)
        assert exc_info.value.kind == ErrorKind.REVOKED

    @pytest.mark.asyncio
    async def test_logout_all(self, container, db, user):
        await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        assert await container.auth.logout_all(db, user.id) == 2

    @pytest.mark.asyncio
    async def test_change_password_ends_sessions(self, container, db, user):
        login = await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        await container.auth.change_password(db, user.id, TEST_PASSWORD, "N3w!Passphrase")

        with pytest.raises(AuthError):
            await container.tokens.validate(db, login.access_token)
        with pytest.raises(AuthError):
            await container.auth.login(db, "alice@example.com", TEST_PASSWORD)
        assert await container.auth.login(db, "alice@example.com", "N3w!Passphrase")

    @pytest.mark.asyncio
    async def test_change_password_checks_old_password(self, container, db, user):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.change_password(db, user.id, "Wr0ng!Password", "N3w!Passphrase")
        assert exc_info.value.kind == ErrorKind.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_change_password_enforces_policy(self, container, db, user):
        with pytest.raises(AuthError) as exc_info:
            await container.auth.change_password(db, user.id, TEST_PASSWORD, "weak")
        assert exc_info.value.kind == ErrorKind.WEAK_CREDENTIAL


class TestAudit:
    """Tests for the audit trail written around login."""

    @pytest.mark.asyncio
    async def test_login_events_are_recorded(self, container, db, user):
        with pytest.raises(AuthError):
            await container.auth.login(db, "alice@example.com", "Wr0ng!Password")
        await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        result = await db.execute(select(AuditLog).order_by(AuditLog.created_at))
        actions = [(entry.action, entry.success) for entry in result.scalars().all()]

        assert ("login_failed", False) in actions
        assert ("login_success", True) in actions

    @pytest.mark.asyncio
    async def test_audit_store_failure_is_swallowed(self, tmp_path):
        # Tables were never created in this database
        database = Database(f"sqlite:///{tmp_path / 'empty.db'}")
        try:
            await AuditService(database.session_maker).record("login_success", "auth", user_id="u1")
        finally:
            await database.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [OSError("disk full"), asyncio.TimeoutError()])
    async def test_audit_transport_failure_is_swallowed(self, failure):
        class BrokenSession:
            async def __aenter__(self):
                raise failure

            async def __aexit__(self, *exc_info):
                return False

        await AuditService(lambda: BrokenSession()).record("2fa_enabled", "two_factor", user_id="u1")

    @pytest.mark.asyncio
    async def test_operation_survives_audit_failure(self, container, db, user, monkeypatch):
        class BrokenSession:
            async def __aenter__(self):
                raise OSError("audit store unreachable")

            async def __aexit__(self, *exc_info):
                return False

        monkeypatch.setattr(container.audit, "_session_maker", lambda: BrokenSession())

        response = await container.auth.login(db, "alice@example.com", TEST_PASSWORD)

        assert response.access_token
