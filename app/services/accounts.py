"""User accounts: librarian sign-up and the membership request workflow.

A membership request starts PENDING. A librarian approves it (PROVISIONAL,
with a registration link mailed to the applicant) or rejects it. The
applicant then sets a password with the link, which makes the account ACTIVE
and creates the matching Member record.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    AuthenticationError,
    EmailDeliveryError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UniquenessError,
    ValidationError,
)
from app.models.member import Member
from app.models.user import UserAccount, UserRole, UserStatus
from app.services.auth import get_password_hash, validate_password, verify_password
from app.services.catalog import CatalogManager
from app.services.email_service import EmailService, email_service
from app.services.entity_store import EntityStore, transaction
from app.utils.timezone import ensure_utc, now_utc
from app.utils.validators import is_valid_dni, is_valid_email

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session, emailer: Optional[EmailService] = None, clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.emailer = emailer or email_service
        self.clock = clock
        self.accounts: EntityStore[UserAccount] = EntityStore(db, UserAccount)
        self.catalog = CatalogManager(db)

    def get_account(self, user_id: int) -> UserAccount:
        return self.accounts.require(user_id)

    def get_by_email(self, email: str) -> Optional[UserAccount]:
        return self.accounts.first(UserAccount.email == email.strip())

    def list_accounts(self, status: Optional[UserStatus] = None) -> List[UserAccount]:
        if status is not None:
            return self.accounts.query(UserAccount.status == status, order_by="full_name")
        return self.accounts.get_all(order_by="full_name")

    def _check_new_account(self, email: str, full_name: str, national_id: str) -> Tuple[str, str, str]:
        email = (email or "").strip()
        full_name = (full_name or "").strip()
        national_id = (national_id or "").strip()
        if not full_name:
            raise ValidationError("Full name is required")
        if not is_valid_email(email):
            raise ValidationError(f"Invalid email address: {email!r}")
        if not is_valid_dni(national_id):
            raise ValidationError("DNI must have 7 or 8 digits")
        if self.get_by_email(email) is not None:
            raise UniquenessError(f"An account with email {email} already exists")
        return email, full_name, national_id

    def has_librarian(self) -> bool:
        return self.accounts.count(UserAccount.role == UserRole.LIBRARIAN) > 0

    def register_librarian(
        self,
        email: str,
        full_name: str,
        national_id: str,
        password: str,
        created_by: Optional[UserAccount] = None,
    ) -> UserAccount:
        """Create an active librarian.

        The first librarian bootstraps the library and may register alone;
        after that only an existing librarian can add another one.
        """
        if self.has_librarian():
            if created_by is None:
                logger.warning(f"Anonymous librarian registration for {email} refused")
                raise AuthenticationError("Only a librarian can register another librarian")
            if created_by.role != UserRole.LIBRARIAN:
                logger.warning(f"User {created_by.user_id} attempted to register a librarian")
                raise PermissionDeniedError("Only librarians can register librarians")
        email, full_name, national_id = self._check_new_account(email, full_name, national_id)
        validate_password(password)
        account = self.accounts.create(
            email=email,
            full_name=full_name,
            national_id=national_id,
            role=UserRole.LIBRARIAN,
            status=UserStatus.ACTIVE,
            hashed_password=get_password_hash(password),
        )
        logger.info(f"Librarian account {account.user_id} registered for {email}")
        return account

    def _check_dni_owner(self, national_id: str, email: str) -> None:
        """A DNI already on a member record must belong to the same person (same email)."""
        member = self.catalog.get_member_by_dni(national_id)
        if member is not None and member.email != email:
            raise UniquenessError(
                f"DNI {national_id} already belongs to member {member.member_number} with another email"
            )

    def request_membership(self, email: str, full_name: str, national_id: str) -> UserAccount:
        email, full_name, national_id = self._check_new_account(email, full_name, national_id)
        self._check_dni_owner(national_id, email)
        account = self.accounts.create(
            email=email,
            full_name=full_name,
            national_id=national_id,
            role=UserRole.MEMBER,
            status=UserStatus.PENDING,
        )
        logger.info(f"Membership request {account.user_id} received from {email}")
        return account

    def _pending_request(self, user_id: int) -> UserAccount:
        account = self.accounts.require(user_id)
        if account.role != UserRole.MEMBER or account.status != UserStatus.PENDING:
            raise InvalidStateError(f"Account {user_id} is not a pending membership request")
        return account

    def approve_membership(self, user_id: int) -> Tuple[UserAccount, bool]:
        """Approve a request and mail the registration link.

        Returns the account and whether the email went out; a mail failure
        never undoes the approval.
        """
        now = self.clock()
        token = secrets.token_urlsafe(32)
        with transaction(self.db):
            pending = self._pending_request(user_id)
            self._check_dni_owner(pending.national_id, pending.email)
            account = self.accounts.update(
                user_id,
                status=UserStatus.PROVISIONAL,
                approved_at=now,
                registration_token=token,
                registration_token_expires_at=now + timedelta(hours=settings.registration_token_hours),
            )
        logger.info(f"Membership request {user_id} approved")

        email_sent = False
        try:
            email_sent = self.emailer.send_approval_email(
                to_email=account.email,
                to_name=account.full_name,
                national_id=account.national_id,
                registration_url=self.emailer.registration_url(account.email, token),
            )
        except EmailDeliveryError as e:
            logger.warning(f"Approval of {user_id} kept although the email failed: {e.detail}")
        return account, email_sent

    def reject_membership(self, user_id: int) -> UserAccount:
        with transaction(self.db):
            self._pending_request(user_id)
            account = self.accounts.update(user_id, status=UserStatus.REJECTED)
        logger.info(f"Membership request {user_id} rejected")
        return account

    def complete_registration(self, token: str, password: str) -> Tuple[UserAccount, Member]:
        account = self.accounts.first(UserAccount.registration_token == token) if token else None
        if account is None or account.status != UserStatus.PROVISIONAL:
            raise NotFoundError("Registration link is invalid or was already used")
        expires_at = account.registration_token_expires_at
        if expires_at is not None and ensure_utc(expires_at) < self.clock():
            raise ValidationError("Registration link has expired, ask the library for a new approval")
        validate_password(password)

        with transaction(self.db):
            member = self.ensure_member(account)
            account = self.accounts.update(
                account.user_id,
                hashed_password=get_password_hash(password),
                status=UserStatus.ACTIVE,
                registration_token=None,
                registration_token_expires_at=None,
                member_id=member.member_id,
            )
        logger.info(f"Registration completed for account {account.user_id}, member {member.member_number}")
        return account, member

    def ensure_member(self, account: UserAccount) -> Member:
        """Member record for a member account: the linked one, the one holding its DNI, or a new one."""
        if account.member_id is not None:
            member = self.catalog.members.get_by_id(account.member_id)
            if member is not None:
                return member
        member = self.catalog.get_member_by_dni(account.national_id)
        if member is not None:
            if member.email != account.email:
                logger.warning(
                    f"Account {account.user_id} linked to member {member.member_number} by DNI despite a different email"
                )
            return member
        return self.catalog.create_member(account.full_name, account.national_id, account.email)

    def authenticate(self, email: str, password: str) -> UserAccount:
        account = self.get_by_email(email or "")
        if account is None or not verify_password(password, account.hashed_password):
            raise AuthenticationError("Incorrect email or password")
        if account.status != UserStatus.ACTIVE:
            raise AuthenticationError(f"Account is {account.status.value.lower()}")
        return account
