"""
Unit tests for TOTP enrollment, verification and backup codes.
"""

import pyotp
import pytest

from sso_service.core.errors import AuthError, ErrorKind
from sso_service.services.notification_service import NotificationSink


def totp_now(secret: str) -> str:
    return pyotp.TOTP(secret).now()


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []

    async def notify(self, user_id, event, message, data=None):
        self.events.append((user_id, event))


class TestSetup:
    """Tests for enrollment."""

    @pytest.mark.asyncio
    async def test_setup_is_pending_until_confirmed(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)

        assert setup.provisioning_uri.startswith("otpauth://totp/")
        assert "alice%40example.com" in setup.provisioning_uri
        assert len(setup.backup_codes) == container.settings.backup_code_count
        assert not await container.two_factor.is_enabled(db, user.id)

        status = await container.two_factor.get_status(db, user.id)
        assert status.status == "pending"
        assert not status.enabled

    @pytest.mark.asyncio
    async def test_confirm_enables(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)

        await container.two_factor.confirm_setup(db, user.id, totp_now(setup.secret))

        assert await container.two_factor.is_enabled(db, user.id)
        status = await container.two_factor.get_status(db, user.id)
        assert status.enabled
        assert status.method == "totp"
        assert status.backup_codes_remaining == container.settings.backup_code_count
        assert status.verified_at is not None

    @pytest.mark.asyncio
    async def test_confirm_with_wrong_code(self, container, db, user):
        await container.two_factor.begin_setup(db, user.id)

        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.confirm_setup(db, user.id, "12345")
        assert exc_info.value.kind == ErrorKind.INVALID_CODE
        assert not await container.two_factor.is_enabled(db, user.id)

    @pytest.mark.asyncio
    async def test_confirm_without_setup(self, container, db, user):
        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.confirm_setup(db, user.id, "123456")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_restarting_setup_replaces_secret(self, container, db, user):
        first = await container.two_factor.begin_setup(db, user.id)
        second = await container.two_factor.begin_setup(db, user.id)

        assert first.secret != second.secret
        await container.two_factor.confirm_setup(db, user.id, totp_now(second.secret))
        assert await container.two_factor.is_enabled(db, user.id)

    @pytest.mark.asyncio
    async def test_setup_while_enabled(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)
        await container.two_factor.confirm_setup(db, user.id, totp_now(setup.secret))

        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.begin_setup(db, user.id)
        assert exc_info.value.kind == ErrorKind.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_setup_for_unknown_user(self, container, db):
        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.begin_setup(db, "no-such-user")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND


class TestEnabled:
    """Tests for verification, backup codes and disabling."""

    @pytest.fixture
    def enroll(self, container, db, user):
        async def _enroll():
            setup = await container.two_factor.begin_setup(db, user.id)
            await container.two_factor.confirm_setup(db, user.id, totp_now(setup.secret))
            return setup

        return _enroll

    @pytest.mark.asyncio
    async def test_verify(self, container, db, user, enroll):
        setup = await enroll()

        assert await container.two_factor.verify(db, user.id, totp_now(setup.secret))
        assert not await container.two_factor.verify(db, user.id, "not-a-code")

    @pytest.mark.asyncio
    async def test_verify_requires_enabled(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)
        assert not await container.two_factor.verify(db, user.id, totp_now(setup.secret))

    @pytest.mark.asyncio
    async def test_backup_code_single_use(self, container, db, user, enroll):
        setup = await enroll()
        code = setup.backup_codes[0]

        # Separators and case are forgiven
        entered = f"{code[:4].lower()}-{code[4:]}"
        assert await container.two_factor.verify_backup_code(db, user.id, entered)
        assert not await container.two_factor.verify_backup_code(db, user.id, code)

        status = await container.two_factor.get_status(db, user.id)
        assert status.backup_codes_remaining == container.settings.backup_code_count - 1

    @pytest.mark.asyncio
    async def test_regenerate_backup_codes(self, container, db, user, enroll):
        setup = await enroll()

        codes = await container.two_factor.regenerate_backup_codes(db, user.id, totp_now(setup.secret))

        assert len(codes) == container.settings.backup_code_count
        assert not await container.two_factor.verify_backup_code(db, user.id, setup.backup_codes[0])
        assert await container.two_factor.verify_backup_code(db, user.id, codes[0])

    @pytest.mark.asyncio
    async def test_regenerate_requires_code(self, container, db, user, enroll):
        await enroll()

        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.regenerate_backup_codes(db, user.id, "bad")
        assert exc_info.value.kind == ErrorKind.INVALID_SECOND_FACTOR

    @pytest.mark.asyncio
    async def test_disable(self, container, db, user, enroll):
        setup = await enroll()

        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.disable(db, user.id, "bad")
        assert exc_info.value.kind == ErrorKind.INVALID_SECOND_FACTOR

        await container.two_factor.disable(db, user.id, totp_now(setup.secret))

        assert not await container.two_factor.is_enabled(db, user.id)
        status = await container.two_factor.get_status(db, user.id)
        assert status.enabled is False
        assert status.backup_codes_remaining == 0


class TestNotifications:
    """Tests for user notifications on 2FA changes."""

    @pytest.mark.asyncio
    async def test_changes_reach_the_sink(self, container, db, user):
        sink = RecordingSink()
        container.two_factor.notifier = sink

        setup = await container.two_factor.begin_setup(db, user.id)
        assert sink.events == []

        code = totp_now(setup.secret)
        await container.two_factor.confirm_setup(db, user.id, code)
        await container.two_factor.regenerate_backup_codes(db, user.id, code)
        await container.two_factor.disable(db, user.id, code)

        assert sink.events == [
            (user.id, "2fa_enabled"),
            (user.id, "2fa_backup_codes_regenerated"),
            (user.id, "2fa_disabled"),
        ]

    @pytest.mark.asyncio
    async def test_rejected_change_is_not_announced(self, container, db, user):
        sink = RecordingSink()
        container.two_factor.notifier = sink
        await container.two_factor.begin_setup(db, user.id)

        with pytest.raises(AuthError):
            await container.two_factor.confirm_setup(db, user.id, "000000x")

        assert sink.events == []

    @pytest.mark.asyncio
    async def test_container_wires_its_notifier(self, container):
        assert container.two_factor.notifier is container.notifier


class TestQRCode:
    """Tests for the provisioning QR image."""

    @pytest.mark.asyncio
    async def test_qr_code_is_png_of_stored_secret(self, container, db, user):
        setup = await container.two_factor.begin_setup(db, user.id)

        assert await container.two_factor.provisioning_uri(db, user.id) == setup.provisioning_uri
        png = await container.two_factor.qr_code_png(db, user.id)
        assert png.startswith(b"\x89PNG\r\n\x1a\n")

    @pytest.mark.asyncio
    async def test_qr_code_without_setup(self, container, db, user):
        with pytest.raises(AuthError) as exc_info:
            await container.two_factor.qr_code_png(db, user.id)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND
