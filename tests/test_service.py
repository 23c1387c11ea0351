"""
Tests for AuthService flows.

Covers:
- Registration and password policy
- Login and token authentication
- The 2FA lifecycle (unconfigured -> pending -> enabled -> removed)
- Email-keyed 2FA checks
"""
import time

import pytest

from keyward.auth.errors import AuthError, ConflictError, NotFoundError, ValidationError
from keyward.auth.mfa import current_totp
from keyward.auth.service import TwoFactorState, check_password_policy, two_factor_state
from keyward.auth.tokens import SessionIssuer


def wrong_code(secret, at):
    """A well-formed code that is valid for neither accepted step."""
    valid = {current_totp(secret, at), current_totp(secret, at - 30)}
    return next(c for c in ("000000", "111111", "222222") if c not in valid)


class TestRegistration:
    """Test account creation."""

    def test_register(self, auth_service):
        user = auth_service.register("Grace@Example.com", "password123", "  Grace  ")

        assert user["email"] == "grace@example.com"
        assert user["name"] == "Grace"
        assert "password_hash" not in user

    def test_register_without_name(self, auth_service):
        assert auth_service.register("grace@example.com", "password123")["name"] is None

    def test_duplicate_email(self, auth_service, registered_user):
        with pytest.raises(ConflictError):
            auth_service.register(registered_user["email"].upper(), "password123")

    @pytest.mark.parametrize("password", ["", "short", "x" * 7, "ü" * 37])
    def test_password_policy(self, auth_service, password):
        with pytest.raises(ValidationError):
            auth_service.register("grace@example.com", password)

    def test_password_policy_boundaries(self):
        check_password_policy("x" * 8)
        check_password_policy("x" * 72)


class TestLogin:
    """Test login and token authentication."""

    def test_login(self, auth_service, registered_user):
        result = auth_service.login(registered_user["email"], registered_user["password"])

        assert result["user_id"] == registered_user["user"]["user_id"]
        assert result["expires_in"] == 86400
        assert result["two_factor_enabled"] is False
        assert auth_service.authenticate(result["access_token"])["email"] == registered_user["email"]

    def test_login_records_last_login(self, auth_service, auth_db, registered_user):
        auth_service.login(registered_user["email"], registered_user["password"])
        assert auth_db.get_user_by_id(registered_user["user"]["user_id"])["last_login"] is not None

    def test_failures_are_generic(self, auth_service, registered_user):
        with pytest.raises(AuthError) as wrong_password:
            auth_service.login(registered_user["email"], "wrong-password")
        with pytest.raises(AuthError) as unknown_email:
            auth_service.login("nobody@example.com", registered_user["password"])

        assert wrong_password.value.public_message == unknown_email.value.public_message
        assert wrong_password.value.code == unknown_email.value.code

    def test_login_reports_enabled_2fa(self, auth_service, registered_user):
        user = registered_user["user"]
        setup = auth_service.generate_two_factor(user)
        auth_service.verify_two_factor(user["user_id"], current_totp(setup["secret"]))

        result = auth_service.login(registered_user["email"], registered_user["password"])
        assert result["two_factor_enabled"] is True

    def test_authenticate_foreign_token(self, auth_service):
        token = SessionIssuer("some-other-secret-0123456789abcdef").issue("user-123")

        with pytest.raises(AuthError):
            auth_service.authenticate(token)

    def test_authenticate_deleted_user(self, auth_service, sessions):
        with pytest.raises(AuthError):
            auth_service.authenticate(sessions.issue("00000000-0000-0000-0000-000000000000"))

    def test_get_profile(self, auth_service, registered_user):
        user_id = registered_user["user"]["user_id"]
        assert auth_service.get_profile(user_id)["name"] == "Ada Lovelace"

        with pytest.raises(NotFoundError):
            auth_service.get_profile("00000000-0000-0000-0000-000000000000")


class TestTwoFactorLifecycle:
    """Test state transitions."""

    @pytest.fixture
    def user(self, registered_user):
        return registered_user["user"]

    def test_initial_state(self, auth_service, user):
        status = auth_service.two_factor_status(user["user_id"])
        assert status == {"enabled": False, "state": TwoFactorState.UNCONFIGURED}

    def test_generate_leaves_pending(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)

        assert setup["state"] is TwoFactorState.PENDING_VERIFICATION
        assert setup["secret"] in setup["provisioning_uri"]
        assert auth_service.two_factor_status(user["user_id"])["enabled"] is False

    def test_verify_enables(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)

        result = auth_service.verify_two_factor(user["user_id"], current_totp(setup["secret"]))
        assert result == {"enabled": True, "state": TwoFactorState.ENABLED}
        assert auth_service.two_factor_status(user["user_id"])["state"] is TwoFactorState.ENABLED

    def test_wrong_code_keeps_pending(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)
        now = time.time()

        with pytest.raises(AuthError):
            auth_service.verify_two_factor(user["user_id"], wrong_code(setup["secret"], now), for_time=now)
        assert auth_service.two_factor_status(user["user_id"])["state"] is TwoFactorState.PENDING_VERIFICATION

    def test_drift_window(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)
        now = 1_700_000_010

        with pytest.raises(AuthError):
            auth_service.verify_two_factor(
                user["user_id"], current_totp(setup["secret"], now - 60), for_time=now
            )
        auth_service.verify_two_factor(
            user["user_id"], current_totp(setup["secret"], now - 30), for_time=now
        )

    def test_verify_unconfigured(self, auth_service, user):
        with pytest.raises(NotFoundError):
            auth_service.verify_two_factor(user["user_id"], "123456")

    def test_regenerate_while_pending_replaces_secret(self, auth_service, user):
        first = auth_service.generate_two_factor(user)
        second = auth_service.generate_two_factor(user)
        now = 1_700_000_010

        assert first["secret"] != second["secret"]
        if current_totp(first["secret"], now) not in (
            current_totp(second["secret"], now), current_totp(second["secret"], now - 30)
        ):
            with pytest.raises(AuthError):
                auth_service.verify_two_factor(
                    user["user_id"], current_totp(first["secret"], now), for_time=now
                )

    def test_generate_while_enabled_conflicts(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)
        auth_service.verify_two_factor(user["user_id"], current_totp(setup["secret"]))

        with pytest.raises(ConflictError):
            auth_service.generate_two_factor(user)

    def test_disable(self, auth_service, user):
        setup = auth_service.generate_two_factor(user)
        auth_service.verify_two_factor(user["user_id"], current_totp(setup["secret"]))
        auth_service.generate_recovery_codes(user["user_id"])

        assert auth_service.disable_two_factor(user["user_id"])["state"] is TwoFactorState.UNCONFIGURED
        assert auth_service.two_factor_status(user["user_id"])["enabled"] is False
        # Recovery codes survive disabling 2FA
        assert auth_service.list_recovery_codes(user["user_id"])["remaining"] == 16

    def test_disable_unconfigured(self, auth_service, user):
        with pytest.raises(NotFoundError):
            auth_service.disable_two_factor(user["user_id"])

    def test_state_helper(self):
        assert two_factor_state(None) is TwoFactorState.UNCONFIGURED
        assert two_factor_state({"enabled": False}) is TwoFactorState.PENDING_VERIFICATION
        assert two_factor_state({"enabled": True}) is TwoFactorState.ENABLED


class TestTwoFactorByEmail:
    """Email-keyed checks never reveal why they failed."""

    @pytest.fixture
    def enabled_secret(self, auth_service, registered_user):
        user = registered_user["user"]
        setup = auth_service.generate_two_factor(user)
        auth_service.verify_two_factor(user["user_id"], current_totp(setup["secret"]))
        return setup["secret"]

    def test_status_enabled(self, auth_service, registered_user, enabled_secret):
        assert auth_service.two_factor_status_by_email(registered_user["email"]) == {"enabled": True}

    def test_status_generic_not_found(self, auth_service, registered_user):
        auth_service.generate_two_factor(registered_user["user"])

        with pytest.raises(NotFoundError) as pending:
            auth_service.two_factor_status_by_email(registered_user["email"])
        with pytest.raises(NotFoundError) as unknown:
            auth_service.two_factor_status_by_email("nobody@example.com")

        assert pending.value.message == unknown.value.message

    def test_verify(self, auth_service, registered_user, enabled_secret):
        result = auth_service.verify_two_factor_by_email(
            registered_user["email"], current_totp(enabled_secret)
        )
        assert result["verified"] is True

    def test_verify_failures_generic(self, auth_service, registered_user, enabled_secret):
        now = time.time()
        errors = []
        for email, code in [
            (registered_user["email"], wrong_code(enabled_secret, now)),
            ("nobody@example.com", current_totp(enabled_secret, now)),
            (registered_user["email"], "abc"),
        ]:
            with pytest.raises(AuthError) as exc_info:
                auth_service.verify_two_factor_by_email(email, code, for_time=now)
            errors.append((exc_info.value.code, exc_info.value.public_message))

        assert len(set(errors)) == 1

    def test_verify_pending_rejected(self, auth_service, registered_user):
        setup = auth_service.generate_two_factor(registered_user["user"])

        with pytest.raises(AuthError):
            auth_service.verify_two_factor_by_email(
                registered_user["email"], current_totp(setup["secret"])
            )
