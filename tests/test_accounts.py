import json

import httpx
import pytest

from app.errors import (
    AuthenticationError,
    CooldownError,
    EmailDeliveryError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UniquenessError,
    ValidationError,
)
from app.models.loan import LoanStatus
from app.models.user import UserRole, UserStatus
from app.services.accounts import AccountService
from app.services.auth import change_password, password_change_remaining, verify_password
from app.services.email_service import EmailService
from app.services.loan_engine import LoanEngine


class Outbox:
    """Records the requests the email webhook receives."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def accounts(db, clock, outbox):
    emailer = EmailService(
        webhook_url="https://mail.test/hooks/send",
        frontend_url="https://library.test/",
        transport=httpx.MockTransport(outbox),
    )
    return AccountService(db, emailer=emailer, clock=clock)


@pytest.fixture
def applicant(accounts):
    return accounts.request_membership("lucia@example.com", "Lucia Fernandez", "35111222")


def test_register_librarian_is_active(accounts):
    account = accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "secret123")

    assert account.role == UserRole.LIBRARIAN
    assert account.status == UserStatus.ACTIVE
    assert verify_password("secret123", account.hashed_password)


def test_register_rejects_duplicate_email(accounts):
    accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "secret123")

    with pytest.raises(UniquenessError):
        accounts.request_membership("marta@example.com", "Otra Marta", "20111333")


def test_register_rejects_short_password(accounts):
    with pytest.raises(ValidationError):
        accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "123")


def test_membership_request_starts_pending(applicant, accounts):
    assert applicant.role == UserRole.MEMBER
    assert applicant.status == UserStatus.PENDING
    assert applicant.hashed_password is None
    assert [a.email for a in accounts.list_accounts(UserStatus.PENDING)] == ["lucia@example.com"]


def test_approve_sends_registration_link(accounts, applicant, outbox):
    account, email_sent = accounts.approve_membership(applicant.user_id)

    assert email_sent
    assert account.status == UserStatus.PROVISIONAL
    assert account.registration_token
    assert account.approved_at is not None

    assert len(outbox.requests) == 1
    payload = json.loads(outbox.requests[0].content)
    assert payload["type"] == "approval"
    assert payload["to"] == "lucia@example.com"
    assert payload["templateVars"]["dni"] == "35111222"
    url = payload["templateVars"]["registrationUrl"]
    assert url.startswith("https://library.test/complete-registration?")
    assert f"token={account.registration_token}" in url


def test_approval_kept_when_email_fails(db, clock, applicant):
    emailer = EmailService(
        webhook_url="https://mail.test/hooks/send",
        transport=httpx.MockTransport(Outbox(status_code=500)),
    )
    account, email_sent = AccountService(db, emailer=emailer, clock=clock).approve_membership(applicant.user_id)

    assert not email_sent
    assert account.status == UserStatus.PROVISIONAL


def test_email_service_raises_on_unreachable_webhook():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    emailer = EmailService(webhook_url="https://mail.test/hooks/send", transport=httpx.MockTransport(unreachable))

    with pytest.raises(EmailDeliveryError):
        emailer.send_approval_email("a@example.com", "A", "30123456", "https://library.test/x")


def test_email_service_disabled_without_webhook():
    emailer = EmailService(webhook_url="")

    assert not emailer.enabled
    assert emailer.send_approval_email("a@example.com", "A", "30123456", "https://library.test/x") is False


def test_approve_or_reject_requires_pending(accounts, applicant):
    accounts.reject_membership(applicant.user_id)

    assert accounts.get_account(applicant.user_id).status == UserStatus.REJECTED
    with pytest.raises(InvalidStateError):
        accounts.approve_membership(applicant.user_id)
    with pytest.raises(InvalidStateError):
        accounts.reject_membership(applicant.user_id)


def test_complete_registration_activates_and_creates_member(accounts, applicant):
    account, _ = accounts.approve_membership(applicant.user_id)
    token = account.registration_token

    account, member = accounts.complete_registration(token, "lucia123")

    assert account.status == UserStatus.ACTIVE
    assert account.registration_token is None
    assert member.email == "lucia@example.com"
    assert member.national_id == "35111222"
    assert member.member_number == "SOC001"
    assert accounts.authenticate("lucia@example.com", "lucia123").user_id == account.user_id

    with pytest.raises(NotFoundError):
        accounts.complete_registration(token, "lucia456")


def test_complete_registration_reuses_existing_member(accounts, catalog, applicant):
    existing = catalog.create_member("Lucia Fernandez", "35111222", "lucia@example.com")
    account, _ = accounts.approve_membership(applicant.user_id)

    _, member = accounts.complete_registration(account.registration_token, "lucia123")

    assert member.member_id == existing.member_id
    assert len(catalog.list_members()) == 1


def test_expired_registration_link(accounts, applicant, clock):
    account, _ = accounts.approve_membership(applicant.user_id)
    clock.advance(hours=25)

    with pytest.raises(ValidationError):
        accounts.complete_registration(account.registration_token, "lucia123")
    assert accounts.get_account(applicant.user_id).status == UserStatus.PROVISIONAL


def test_unknown_registration_token(accounts):
    with pytest.raises(NotFoundError):
        accounts.complete_registration("not-a-token", "lucia123")


def test_authenticate_refuses_inactive_and_wrong_password(accounts, applicant):
    accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "secret123")

    with pytest.raises(AuthenticationError):
        accounts.authenticate("marta@example.com", "wrong-password")
    with pytest.raises(AuthenticationError):
        accounts.authenticate("lucia@example.com", "")
    with pytest.raises(AuthenticationError):
        accounts.authenticate("nobody@example.com", "secret123")


def test_password_change_cooldown(db, accounts, clock):
    account = accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "secret123")

    change_password(db, account, "newpass1", now=clock())
    clock.advance(minutes=2)

    with pytest.raises(CooldownError) as excinfo:
        change_password(db, account, "newpass2", now=clock())
    assert excinfo.value.remaining_seconds == 180
    assert excinfo.value.to_dict()["remainingSeconds"] == 180
    assert "3m 00s" in excinfo.value.detail

    clock.advance(minutes=3)
    assert password_change_remaining(account, clock()) == 0
    change_password(db, account, "newpass3", now=clock())
    assert accounts.authenticate("marta@example.com", "newpass3")


def test_member_request_loan_after_registration(db, accounts, applicant, catalog, clock):
    book = catalog.create_book("Rayuela", "Julio Cortazar", "9788437604572")
    account, _ = accounts.approve_membership(applicant.user_id)
    account, member = accounts.complete_registration(account.registration_token, "lucia123")

    loan = LoanEngine(db, clock=clock).request_loan(account, book.book_id)

    assert loan.status == LoanStatus.PENDING
    assert loan.member_id == member.member_id


def test_only_the_first_librarian_registers_alone(accounts, applicant):
    first = accounts.register_librarian("marta@example.com", "Marta Diaz", "20111222", "secret123")

    with pytest.raises(AuthenticationError):
        accounts.register_librarian("mallory@example.com", "Mallory", "20999888", "secret123")
    with pytest.raises(PermissionDeniedError):
        accounts.register_librarian("mallory@example.com", "Mallory", "20999888", "secret123", created_by=applicant)
    assert accounts.get_by_email("mallory@example.com") is None

    second = accounts.register_librarian("pablo@example.com", "Pablo Ruiz", "20333444", "secret123", created_by=first)
    assert second.role == UserRole.LIBRARIAN


def test_request_refused_when_dni_belongs_to_another_member(accounts, catalog):
    catalog.create_member("Someone Else", "35111222", "other@example.com")

    with pytest.raises(UniquenessError):
        accounts.request_membership("lucia@example.com", "Lucia Fernandez", "35111222")
    assert accounts.get_by_email("lucia@example.com") is None


def test_approval_refused_when_dni_taken_after_request(accounts, catalog, applicant, outbox):
    catalog.create_member("Someone Else", "35111222", "other@example.com")

    with pytest.raises(UniquenessError):
        accounts.approve_membership(applicant.user_id)
    assert accounts.get_account(applicant.user_id).status == UserStatus.PENDING
    assert outbox.requests == []


def test_registration_links_member_holding_the_dni(accounts, catalog, applicant):
    account, _ = accounts.approve_membership(applicant.user_id)
    existing = catalog.create_member("Lucia F.", "35111222", "lucia.old@example.com")

    account, member = accounts.complete_registration(account.registration_token, "lucia123")

    assert account.status == UserStatus.ACTIVE
    assert member.member_id == existing.member_id
    assert account.member_id == existing.member_id
    assert len(catalog.list_members()) == 1


def test_account_resolves_its_linked_member_not_an_email_lookalike(db, accounts, catalog, applicant, clock):
    lookalike = catalog.create_member("Other Lucia", "40111222", "lucia@example.com")
    account, _ = accounts.approve_membership(applicant.user_id)
    account, member = accounts.complete_registration(account.registration_token, "lucia123")

    assert member.member_id != lookalike.member_id
    engine = LoanEngine(db, clock=clock)
    assert engine.member_for_account(account).member_id == member.member_id

    catalog.update_member(member.member_id, email="lucia.new@example.com")
    assert engine.member_for_account(account).member_id == member.member_id
