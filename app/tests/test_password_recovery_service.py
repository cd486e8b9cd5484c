"""
Testes da máquina de estados da recuperação (sem HTTP)
"""
import asyncio
from datetime import timedelta

import httpx
import pytest

from app.config.settings import settings
from app.model.reset_artifact import phone_grant_key, reset_code_key
from app.model.user import User
from app.service.password_recovery_service import PasswordRecoveryService
from app.service.sms_service import SmsVerificationService
from app.util.exceptions import (
    DeliveryFailureException,
    InvalidOrExpiredException,
    NotFoundException,
    ValidationException,
)
from app.util.security import verify_password


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def service(db_session, token_store, fake_email, fake_sms, clock):
    return PasswordRecoveryService(
        db_session,
        token_store,
        email_service=fake_email,
        sms_service=fake_sms,
        clock=clock
    )


def request_email_code(service, fake_email, contact="a@example.com") -> str:
    run(service.request_reset("email", contact))
    return fake_email.last_code()


class TestRequestReset:

    def test_email_request_stores_one_artifact_and_hides_code(self, service, fake_email, token_store, existing_user):
        response = run(service.request_reset("email", "a@example.com"))

        assert response == {"message": "Password reset code sent to your email!", "method": "email"}
        code = fake_email.last_code()
        assert len(code) == 6 and code.isdigit()
        assert code not in str(response)
        assert len(token_store) == 1

        stored = run(token_store.get(reset_code_key(code)))
        assert stored["userId"] == existing_user.id
        assert stored["email"] == "a@example.com"
        assert stored["code"] == code

    def test_phone_request_delegates_to_provider(self, service, fake_sms, token_store, existing_user):
        response = run(service.request_reset("phone", "555-123-4567"))

        assert response["method"] == "phone"
        assert response["userId"] == existing_user.id
        assert response["phone"] == "+15551234567"
        assert fake_sms.sent == ["+15551234567"]
        # Nenhum código guardado localmente
        assert len(token_store) == 0

    def test_unknown_contact_is_not_found(self, service, existing_user):
        with pytest.raises(NotFoundException):
            run(service.request_reset("email", "nobody@example.com"))

    def test_invalid_method(self, service, existing_user):
        with pytest.raises(ValidationException):
            run(service.request_reset("carrier-pigeon", "a@example.com"))

    def test_email_delivery_failure_leaves_nothing_behind(self, service, fake_email, token_store, existing_user):
        fake_email.succeed = False

        with pytest.raises(DeliveryFailureException):
            run(service.request_reset("email", "a@example.com"))

        assert len(token_store) == 0

    def test_sms_delivery_failure(self, service, fake_sms, existing_user):
        fake_sms.send_ok = False

        with pytest.raises(DeliveryFailureException):
            run(service.request_reset("phone", "5551234567"))


class TestVerifyCode:

    def test_email_code_verifies(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        response = run(service.verify_code("email", "a@example.com", code))

        assert response == {"message": "Code verified", "userId": existing_user.id}

    def test_contact_comparison_is_case_insensitive(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        assert run(service.verify_code("email", "A@Example.com", code))["userId"] == existing_user.id

    def test_code_for_other_contact_is_rejected(self, service, fake_email, db_session, existing_user):
        code = request_email_code(service, fake_email)

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("email", "other@example.com", code))

    def test_wrong_code(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("email", "a@example.com", wrong))

    def test_email_code_never_validates_phone_contact(self, service, fake_email, fake_sms, existing_user):
        code = request_email_code(service, fake_email)
        fake_sms.status = "pending"

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("phone", "5551234567", code))

    def test_expiry_boundary(self, service, fake_email, clock, existing_user):
        code = request_email_code(service, fake_email)
        expire = timedelta(minutes=settings.RESET_CODE_EXPIRE_MINUTES)

        clock.advance(seconds=expire.total_seconds() - 1)
        assert run(service.verify_code("email", "a@example.com", code))["message"] == "Code verified"

        clock.advance(seconds=2)
        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("email", "a@example.com", code))

    def test_verify_does_not_consume_code(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        run(service.verify_code("email", "a@example.com", code))
        run(service.verify_code("email", "a@example.com", code))

    def test_phone_approved_creates_grant(self, service, fake_sms, token_store, existing_user):
        response = run(service.verify_code("phone", "5551234567", "123456"))

        assert response["userId"] == existing_user.id
        assert fake_sms.checked == [("+15551234567", "123456")]
        assert run(token_store.get(phone_grant_key("+15551234567"))) is not None

    @pytest.mark.parametrize("status", ["pending", "canceled", "", None])
    def test_phone_without_approval_creates_no_grant(self, service, fake_sms, token_store, existing_user, status):
        fake_sms.status = status

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("phone", "5551234567", "123456"))

        assert len(token_store) == 0

    def test_phone_provider_failure(self, service, fake_sms, existing_user):
        fake_sms.fail_check = True

        with pytest.raises(DeliveryFailureException):
            run(service.verify_code("phone", "5551234567", "123456"))

    def test_phone_unknown_number(self, service, existing_user):
        with pytest.raises(NotFoundException):
            run(service.verify_code("phone", "5550000000", "123456"))


class TestCommitPassword:

    def test_email_commit_updates_hash_and_consumes_code(self, service, fake_email, db_session, existing_user):
        code = request_email_code(service, fake_email)

        response = run(service.commit_password("email", "a@example.com", code, "abcdef"))

        assert response == {"message": "Password updated successfully!"}
        db_session.refresh(existing_user)
        assert verify_password("abcdef", existing_user.password_hash)

        # Replay
        with pytest.raises(InvalidOrExpiredException):
            run(service.commit_password("email", "a@example.com", code, "ghijkl"))

    def test_commit_sends_password_changed_notice(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        run(service.commit_password("email", "a@example.com", code, "abcdef"))

        assert fake_email.sent[-1]["subject"] == "Your password was changed"

    def test_short_password_rejected(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        with pytest.raises(ValidationException):
            run(service.commit_password("email", "a@example.com", code, "abcde"))

        # Código continua válido
        run(service.verify_code("email", "a@example.com", code))

    def test_expired_code_cannot_commit(self, service, fake_email, clock, existing_user):
        code = request_email_code(service, fake_email)
        clock.advance(minutes=settings.RESET_CODE_EXPIRE_MINUTES, seconds=1)

        with pytest.raises(InvalidOrExpiredException):
            run(service.commit_password("email", "a@example.com", code, "abcdef"))

    def test_earlier_code_still_valid_after_second_request(self, service, fake_email, existing_user):
        first = request_email_code(service, fake_email)
        second = request_email_code(service, fake_email)

        run(service.verify_code("email", "a@example.com", second))
        run(service.verify_code("email", "a@example.com", first))
        run(service.commit_password("email", "a@example.com", first, "abcdef"))

    def test_second_request_supersedes_when_enabled(self, service, fake_email, existing_user, monkeypatch):
        monkeypatch.setattr(settings, "RESET_CODE_SUPERSEDES_PREVIOUS", True)
        first = request_email_code(service, fake_email)
        second = request_email_code(service, fake_email)

        if first != second:
            with pytest.raises(InvalidOrExpiredException):
                run(service.verify_code("email", "a@example.com", first))

        run(service.commit_password("email", "a@example.com", second, "abcdef"))

    def test_phone_commit_requires_grant(self, service, existing_user):
        with pytest.raises(InvalidOrExpiredException):
            run(service.commit_password("phone", "5551234567", None, "abcdef"))

    def test_phone_commit_consumes_grant(self, service, token_store, db_session, existing_user):
        run(service.verify_code("phone", "5551234567", "123456"))

        run(service.commit_password("phone", "5551234567", "123456", "abcdef"))

        db_session.refresh(existing_user)
        assert verify_password("abcdef", existing_user.password_hash)
        assert run(token_store.get(phone_grant_key("+15551234567"))) is None

        with pytest.raises(InvalidOrExpiredException):
            run(service.commit_password("phone", "5551234567", "123456", "ghijkl"))

    def test_phone_grant_expires(self, service, clock, existing_user):
        run(service.verify_code("phone", "5551234567", "123456"))
        clock.advance(minutes=settings.PHONE_GRANT_EXPIRE_MINUTES, seconds=1)

        with pytest.raises(InvalidOrExpiredException):
            run(service.commit_password("phone", "5551234567", None, "abcdef"))

    def test_deleted_account_is_not_found(self, service, fake_email, db_session, existing_user):
        code = request_email_code(service, fake_email)
        db_session.query(User).filter(User.id == existing_user.id).delete()
        db_session.commit()

        with pytest.raises(NotFoundException):
            run(service.commit_password("email", "a@example.com", code, "abcdef"))


class TestResetLink:

    def test_link_flow(self, service, fake_email, db_session, existing_user):
        response = run(service.request_reset_link("a@example.com"))
        assert response == {"message": "Password reset link sent to your email!"}

        body = fake_email.sent[-1]["body_text"]
        token = body.split("?token=")[1].split()[0]

        assert run(service.verify_reset_token(token)) == {"valid": True, "email": "a@example.com"}

        run(service.commit_password_with_token(token, "abcdef"))
        db_session.refresh(existing_user)
        assert verify_password("abcdef", existing_user.password_hash)

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_reset_token(token))

    def test_link_token_expires(self, service, fake_email, clock, existing_user):
        run(service.request_reset_link("a@example.com"))
        token = fake_email.sent[-1]["body_text"].split("?token=")[1].split()[0]

        clock.advance(minutes=settings.RESET_LINK_EXPIRE_MINUTES, seconds=1)

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_reset_token(token))

    def test_reset_code_is_not_a_link_token(self, service, fake_email, existing_user):
        code = request_email_code(service, fake_email)

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_reset_token(code))


class TestStoredRecords:

    def test_record_without_created_at_is_accepted(self, service, token_store, clock, existing_user):
        record = {
            "userId": existing_user.id,
            "email": "a@example.com",
            "phone": "+15551234567",
            "code": "123456",
            "expiresAt": (clock() + timedelta(minutes=5)).isoformat()
        }
        run(token_store.store(reset_code_key("123456"), record, 3600))

        assert run(service.verify_code("email", "a@example.com", "123456"))["userId"] == existing_user.id

    def test_malformed_record_is_invalid_not_server_error(self, service, token_store, existing_user):
        run(token_store.store(reset_code_key("123456"), {"userId": existing_user.id}, 3600))

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("email", "a@example.com", "123456"))


class TestCodeGeneration:

    def test_taken_codes_are_skipped(self, service, fake_email, token_store, existing_user, monkeypatch):
        run(token_store.store(reset_code_key("111111"), {"code": "111111"}, 3600))
        codes = iter(["111111", "111111", "222222"])
        monkeypatch.setattr("app.service.verification_dispatcher.generate_reset_code", lambda: next(codes))

        run(service.request_reset("email", "a@example.com"))

        assert fake_email.last_code() == "222222"

    def test_no_free_code_fails_without_sending(self, service, fake_email, token_store, existing_user, monkeypatch):
        run(token_store.store(reset_code_key("111111"), {"code": "111111"}, 3600))
        monkeypatch.setattr("app.service.verification_dispatcher.generate_reset_code", lambda: "111111")

        with pytest.raises(DeliveryFailureException):
            run(service.request_reset("email", "a@example.com"))

        assert fake_email.sent == []
        assert run(token_store.get(reset_code_key("111111"))) == {"code": "111111"}


class TestTwilioRejections:

    @pytest.fixture
    def twilio_service(self, db_session, token_store, fake_email, clock, monkeypatch):
        monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC123")
        monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "secret")
        monkeypatch.setattr(settings, "TWILIO_VERIFY_SERVICE_SID", "VA456")

        def build(status_code, payload):
            client = httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(status_code, json=payload))
            )
            return PasswordRecoveryService(
                db_session,
                token_store,
                email_service=fake_email,
                sms_service=SmsVerificationService(client=client),
                clock=clock
            )

        return build

    @pytest.mark.parametrize("status_code,twilio_code", [(400, 60200), (429, 60202)])
    def test_rejected_check_is_invalid_code(self, twilio_service, token_store, existing_user, status_code, twilio_code):
        service = twilio_service(status_code, {"code": twilio_code})

        with pytest.raises(InvalidOrExpiredException):
            run(service.verify_code("phone", "5551234567", "abc"))

        assert len(token_store) == 0

    def test_provider_outage_is_delivery_failure(self, twilio_service, existing_user):
        service = twilio_service(503, {"message": "unavailable"})

        with pytest.raises(DeliveryFailureException):
            run(service.verify_code("phone", "5551234567", "123456"))
