"""
Identity tests: bcrypt passwords, user creation and bearer sessions.
"""

from datetime import timedelta

import pytest

from clinicpos.errors import ValidationError
from clinicpos.models import SessionToken
from clinicpos.services import auth_service, session_service
from clinicpos.services.auth_service import PasswordValidationError
from clinicpos.time_utils import utcnow

from conftest import TEST_PASSWORD


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password(TEST_PASSWORD, rounds=4)
        assert hashed != TEST_PASSWORD
        assert auth_service.verify_password(TEST_PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong0rd!", hashed)

    def test_malformed_hash_fails_closed(self):
        assert auth_service.verify_password(TEST_PASSWORD, "not-a-bcrypt-hash") is False

    @pytest.mark.parametrize("password", ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial11"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError) as exc:
            auth_service.validate_password_strength(password)
        assert exc.value.code == "WEAK_PASSWORD"


class TestUsers:

    def test_create_and_authenticate(self, db_session):
        user = auth_service.create_user("  Maria ", TEST_PASSWORD, "Maria Lopez")
        assert user.username == "maria"
        assert user.role == "cashier"

        assert auth_service.authenticate("MARIA", TEST_PASSWORD).id == user.id
        assert auth_service.authenticate("maria", "Wrong0rd!") is None
        assert auth_service.authenticate("nobody", TEST_PASSWORD) is None

    def test_duplicate_username(self, db_session, cashier_user):
        with pytest.raises(ValidationError):
            auth_service.create_user("Cashier", TEST_PASSWORD, "Someone Else")

    def test_unknown_role(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("pedro", TEST_PASSWORD, "Pedro", role="manager")

    def test_inactive_user_cannot_log_in(self, db_session, cashier_user):
        cashier_user.is_active = False
        db_session.commit()
        assert auth_service.authenticate("cashier", TEST_PASSWORD) is None


class TestSessions:

    def test_create_validate_revoke(self, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)

        assert session.token_hash == session_service.hash_token(token)
        assert token not in session.token_hash
        assert session_service.validate_session(token).id == cashier_user.id

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_expired_session(self, db_session, cashier_user):
        _, token = session_service.create_session(cashier_user.id)
        db_session.query(SessionToken).update({"expires_at": utcnow() - timedelta(minutes=1)})
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user_session(self, db_session, cashier_user):
        _, token = session_service.create_session(cashier_user.id)
        cashier_user.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("deadbeef") is None
        assert session_service.validate_session("") is None
