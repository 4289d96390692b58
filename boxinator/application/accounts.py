"""Registration, login and account administration."""
from typing import Optional, Union

from boxinator.auth_local import (
    create_access_token,
    hash_password,
    new_totp_secret,
    qr_code_data_url,
    totp_provisioning_uri,
    verify_password,
    verify_totp,
)
from boxinator.core.logging_config import get_logger
from boxinator.domain.records import AccountRecord, AccountType
from boxinator.domain.validators import is_valid_email, normalize_email, require_password, require_text
from boxinator.errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationFailed
from boxinator.infrastructure.store import ShipmentStore

from .schemas import (
    AccountCreate,
    AccountRead,
    AccountUpdate,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    TwoFactorSetup,
)

logger = get_logger(__name__)


class AccountService:
    def __init__(self, store: ShipmentStore, mailer=None):
        self.store = store
        self.mailer = mailer

    def register(self, data: RegisterRequest) -> TokenResponse:
        email = self._require_email(data.email)
        password = require_password(data.password)
        first_name = require_text(data.first_name, "First name is required")
        last_name = require_text(data.last_name, "Last name is required")

        existing = self.store.find_account_by_email(email)
        if existing is not None:
            if existing.is_guest:
                raise Conflict("A guest account exists for this email; claim one of its shipments to register")
            raise Conflict("User already exists with this email")

        account = self.store.create_account({
            "email": email,
            "password_hash": hash_password(password),
            "first_name": first_name,
            "last_name": last_name,
            "account_type": AccountType.REGISTERED_USER,
            "is_email_verified": True,
        })
        logger.info(f"New user registered: {account.id}")

        if self.mailer is not None:
            try:
                self.mailer.send_welcome(account.email, account.first_name)
            except Exception:
                logger.warning("Failed to send welcome email", exc_info=True)

        return self._token_for(account)

    def authenticate(self, data: LoginRequest) -> Union[TokenResponse, dict]:
        """Check credentials and issue a token.

        Returns ``{"requires_two_factor": True}`` when the account has
        two-factor enabled and no code was supplied.
        """
        account = self.store.find_account_by_email(normalize_email(data.email))
        if account is None or not verify_password(data.password, account.password_hash):
            raise Unauthenticated("Invalid credentials")
        if account.is_guest:
            raise Unauthenticated("Guest accounts cannot log in; claim a shipment to register")

        if account.two_factor_enabled:
            if not data.two_factor_code:
                return {"requires_two_factor": True}
            if not verify_totp(account.two_factor_secret, data.two_factor_code):
                raise Unauthenticated("Invalid two-factor code")

        logger.info(f"User logged in: {account.id}")
        return self._token_for(account)

    # Two-factor authentication

    def setup_two_factor(self, account: AccountRecord) -> TwoFactorSetup:
        """Store a fresh TOTP secret; it only takes effect once verified."""
        if account.two_factor_enabled:
            raise Conflict("Two-factor authentication is already enabled")
        secret = new_totp_secret()
        self.store.update_account(account.id, {"two_factor_secret": secret})
        uri = totp_provisioning_uri(secret, account.email)
        return TwoFactorSetup(
            secret=secret,
            manual_entry_key=secret,
            provisioning_uri=uri,
            qr_code=qr_code_data_url(uri),
        )

    def verify_two_factor(self, account: AccountRecord, code: str) -> MessageResponse:
        if not code or not code.strip():
            raise ValidationFailed("2FA token required")
        # the bearer dependency may hold a copy from before setup
        current = self._require_account(account.id)
        if not current.two_factor_secret:
            raise ValidationFailed("2FA setup not initiated")
        if not verify_totp(current.two_factor_secret, code):
            raise ValidationFailed("Invalid 2FA token")
        self.store.update_account(account.id, {"two_factor_enabled": True})
        logger.info(
            "Two-factor authentication enabled",
            extra={'extra_fields': {'account_id': account.id}},
        )
        return MessageResponse(message="2FA enabled successfully")

    def disable_two_factor(self, account: AccountRecord) -> MessageResponse:
        self.store.update_account(account.id, {"two_factor_enabled": False, "two_factor_secret": None})
        logger.info(
            "Two-factor authentication disabled",
            extra={'extra_fields': {'account_id': account.id}},
        )
        return MessageResponse(message="2FA disabled successfully")

    # Administration

    def get(self, account_id: int, requester: AccountRecord) -> AccountRead:
        self._require_self_or_admin(account_id, requester)
        return AccountRead.model_validate(self._require_account(account_id))

    def list(self, requester: AccountRecord) -> list[AccountRead]:
        self._require_admin(requester)
        return [AccountRead.model_validate(a) for a in self.store.list_accounts()]

    def update(self, account_id: int, data: AccountUpdate, requester: AccountRecord) -> AccountRead:
        self._require_self_or_admin(account_id, requester)
        target = self._require_account(account_id)

        patch = {}
        if data.first_name is not None:
            patch["first_name"] = require_text(data.first_name, "First name cannot be empty")
        if data.last_name is not None:
            patch["last_name"] = require_text(data.last_name, "Last name cannot be empty")
        if data.password:
            if target.is_guest:
                raise ValidationFailed("Guest accounts get a password by claiming a shipment")
            patch["password_hash"] = hash_password(require_password(data.password))
        if not patch:
            return AccountRead.model_validate(self._require_account(account_id))

        account = self.store.update_account(account_id, patch)
        logger.info(
            f"Account updated: {account_id}",
            extra={'extra_fields': {'account_id': account_id, 'by': requester.id, 'fields': sorted(patch)}},
        )
        return AccountRead.model_validate(account)

    def create(self, data: AccountCreate, requester: AccountRecord) -> AccountRead:
        self._require_admin(requester)
        email = self._require_email(data.email)
        fields = {
            "email": email,
            "first_name": data.first_name,
            "last_name": data.last_name,
            "account_type": data.account_type,
            "is_email_verified": False,
        }
        if data.account_type == AccountType.GUEST:
            if data.password:
                raise ValidationFailed("Guest accounts cannot have a password")
        elif not data.password:
            raise ValidationFailed("Password is required for registered accounts")
        else:
            fields["password_hash"] = hash_password(require_password(data.password))
        account = self.store.create_account(fields)
        logger.info(f"Account created by admin {requester.id}: {account.id}")
        return AccountRead.model_validate(account)

    def delete(self, account_id: int, requester: AccountRecord) -> None:
        self._require_admin(requester)
        if account_id == requester.id:
            raise ValidationFailed("Cannot delete your own account")
        if not self.store.delete_account(account_id):
            raise NotFound("Account not found")
        logger.info(f"Account {account_id} deleted by admin {requester.id}")

    def resolve_token_subject(self, payload: Optional[dict]) -> Optional[AccountRecord]:
        if not payload or "sub" not in payload:
            return None
        try:
            account_id = int(payload["sub"])
        except (TypeError, ValueError):
            return None
        return self.store.find_account(account_id)

    def _token_for(self, account: AccountRecord) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(account.id, account.email),
            account=AccountRead.model_validate(account),
        )

    def _require_email(self, email: Optional[str]) -> str:
        if not is_valid_email(email):
            raise ValidationFailed("A valid email is required")
        return normalize_email(email)

    def _require_account(self, account_id: int) -> AccountRecord:
        account = self.store.find_account(account_id)
        if account is None:
            raise NotFound("Account not found")
        return account

    def _require_admin(self, requester: AccountRecord) -> None:
        if not requester.is_admin:
            raise Forbidden("Administrator access required")

    def _require_self_or_admin(self, account_id: int, requester: AccountRecord) -> None:
        if not requester.is_admin and requester.id != account_id:
            raise Forbidden()
