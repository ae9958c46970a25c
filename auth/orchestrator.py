"""
auth/orchestrator.py -- Sign-up, OTP sign-in, token refresh, OAuth and password recovery.

AuthOrchestrator composes the leaf services into the login and recovery
protocols. Per sign-in attempt it walks

    Unauthenticated -> CredentialsChecked -> OtpIssued -> OtpVerified -> Authenticated

without persisting that state: signin() stops at OtpIssued and hands back
only the email; verify_otp() finishes the walk and is the only password path
that returns tokens. oauth_signin() jumps straight to Authenticated because
the identity provider has already proven control of the mailbox.

Security:
  Single live refresh token. Every token issuance writes the new refresh
  fingerprint and last_login in one UPDATE, overwriting whatever was there.
  The previous refresh token stops working at that moment.

  Single-use codes. A code counts as consumed only when OtpStore.delete()
  reports that this caller removed the row, so two concurrent verifications
  of one code cannot both produce tokens.

  Lazy expiry. Codes are judged against created_at + TTL at verification
  time. An expired code is deleted before the request fails.

  Blocked accounts fail every operation with the same message, however far
  the flow had progressed.

  Timing. signin() runs one bcrypt comparison on every path, including
  unknown emails, so response time does not reveal registered addresses.

  Throttling. Credential and code endpoints call the account-keyed
  RateLimiter before touching any credential.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from email_validator import EmailNotValidError, validate_email

from auth.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from auth.models import Account, AuthResult, CodePurpose, OneTimeCode, Role, TokenPair, VerificationStatus
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.ratelimit import RateLimiter
from auth.store import OtpStore, UserStore, from_iso, to_iso
from auth.tokens import TokenService

logger = logging.getLogger("hostgate.auth")

_BLOCKED = "This account has been blocked. Contact support."
_BAD_CREDENTIALS = "Invalid email or password."
_BAD_CODE = "Invalid or expired code."
_EXTERNAL_ONLY = "This account signs in with an external provider."
_WRONG_ROLE = "This account cannot sign in here."
_UNKNOWN_EMAIL = "No account found for this email."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_email(value: str) -> str:
    """Validate an email address and return its canonical lowercase form."""
    if not value or not value.strip():
        raise ValidationError("Email is required.", field="email")
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", field="email") from e
    return result.normalized.lower()


def validate_password(password: str) -> None:
    if not password:
        raise ValidationError("Password is required.", field="password")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.", field="password")


def _host_defaults(role: Role) -> dict:
    if role == Role.HOST:
        return {"verification_status": VerificationStatus.PENDING, "is_verified": False}
    return {"verification_status": None, "is_verified": False}


class AuthOrchestrator:
    """Login and recovery protocols over injected stores and services.

    Every collaborator is passed in; nothing here reaches for a global.
    Tests build one around in-memory stores, a capturing mailer and a fake
    identity verifier.
    """

    def __init__(
        self,
        users: UserStore,
        codes: OtpStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        mailer,
        verifier,
        limiter: RateLimiter | None = None,
        otp_ttl_seconds: int = 300,
        reset_ttl_seconds: int = 900,
        client_url: str = "http://localhost:3000",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.users = users
        self.codes = codes
        self.hasher = hasher
        self.tokens = tokens
        self.mailer = mailer
        self.verifier = verifier
        self.limiter = limiter
        self.otp_ttl = otp_ttl_seconds
        self.reset_ttl = reset_ttl_seconds
        self.client_url = client_url.rstrip("/")
        self._clock = clock

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _throttle(self, operation: str, email: str) -> None:
        if self.limiter is not None:
            self.limiter.hit(f"{operation}:{email}")

    def _lookup(self, email: str) -> Account:
        account = self.users.get_by_email(email)
        if account is None:
            raise NotFoundError(_UNKNOWN_EMAIL)
        return account

    @staticmethod
    def _ensure_usable(account: Account, role: Role | None, allow_external: bool = False) -> None:
        """Blocked, external-only and role-scope checks shared by every flow."""
        if account.is_blocked:
            logger.info("Rejected request for blocked account %s", account.id)
            raise UnauthorizedError(_BLOCKED)
        if account.is_oauth_user and not allow_external:
            raise UnauthorizedError(_EXTERNAL_ONLY)
        if role is not None and account.role != role:
            raise UnauthorizedError(_WRONG_ROLE)

    def _is_expired(self, record: OneTimeCode, ttl_seconds: int) -> bool:
        return self._clock() - from_iso(record.created_at) > timedelta(seconds=ttl_seconds)

    def _consume_code(self, email: str, code: str, purpose: CodePurpose, ttl_seconds: int) -> None:
        """Find, expiry-check and delete one code. Raises UnauthorizedError on any failure."""
        record = self.codes.find_by_email_and_code(email, code, purpose)
        if record is None:
            raise UnauthorizedError(_BAD_CODE)
        if self._is_expired(record, ttl_seconds):
            self.codes.delete(record.id)
            raise UnauthorizedError(_BAD_CODE)
        if not self.codes.delete(record.id):
            # A concurrent request consumed it first.
            raise UnauthorizedError(_BAD_CODE)

    def _send_login_code(self, account: Account) -> None:
        code = self.codes.create(account.email, CodePurpose.LOGIN)
        if not self.mailer.send_otp_mail(account.email, account.name, code):
            logger.warning("Sign-in code for account %s was stored but not delivered", account.id)

    def _issue_tokens(self, account: Account) -> AuthResult:
        identity = {"id": account.id, "email": account.email, "role": account.role}
        access = self.tokens.create_access_token(identity)
        refresh = self.tokens.create_refresh_token(identity)
        now = to_iso(self._clock())
        # One UPDATE: the new fingerprint replaces the old one atomically.
        self.users.update(account.id, refresh_token_hash=self.tokens.fingerprint(refresh), last_login=now)
        account.last_login = now
        pair = TokenPair(access_token=access, refresh_token=refresh, expires_in=self.tokens.access_ttl)
        return AuthResult(tokens=pair, account=account.without_credentials())

    # ------------------------------------------------------------------
    # Sign-up and OTP sign-in
    # ------------------------------------------------------------------

    def signup(self, name: str, email: str, password: str, role: Role = Role.USER) -> Account:
        """Create a local account and mail its first sign-in code. Issues no tokens."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.", field="name")
        email = canonical_email(email)
        validate_password(password)
        role = Role(role)
        if role == Role.ADMIN:
            raise ValidationError("Admin accounts cannot be created by sign-up.", field="role")
        if self.users.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists.")

        account = Account(
            name=name,
            email=email,
            role=role,
            password_hash=self.hasher.hash(password),
            **_host_defaults(role),
        )
        account = self.users.create(account)
        logger.info("Account %s created (role=%s)", account.id, account.role.value)
        self._send_login_code(account)
        return account

    def signin(self, email: str, password: str, role: Role | None = None) -> str:
        """Check credentials and mail a fresh code. Returns only the email."""
        email = canonical_email(email)
        self._throttle("signin", email)
        account = self.users.get_by_email_with_credentials(email)
        if account is None or not account.password_hash:
            self.hasher.equalize(password or "")
            raise UnauthorizedError(_BAD_CREDENTIALS)
        # Blocked wins over every other account state so the message is the
        # same one resend, verify and forgot return.
        if account.is_blocked:
            self.hasher.equalize(password or "")
            logger.info("Rejected sign-in for blocked account %s", account.id)
            raise UnauthorizedError(_BLOCKED)
        if account.is_oauth_user:
            self.hasher.equalize(password or "")
            raise UnauthorizedError(_EXTERNAL_ONLY)
        try:
            matched = self.hasher.compare(password or "", account.password_hash)
        except ValueError:
            logger.error("Account %s has a malformed password hash", account.id)
            matched = False
        if not matched:
            logger.info("Failed sign-in for account %s", account.id)
            raise UnauthorizedError(_BAD_CREDENTIALS)
        self._ensure_usable(account, role)

        self._send_login_code(account)
        return account.email

    def verify_otp(self, email: str, code: str, role: Role | None = None) -> AuthResult:
        """Consume a sign-in code and issue {access, refresh}."""
        email = canonical_email(email)
        code = (code or "").strip()
        if not code.isdigit():
            raise ValidationError("Code must be numeric.", field="otp")
        self._throttle("verify_otp", email)
        account = self._lookup(email)
        self._ensure_usable(account, role)
        self._consume_code(email, code, CodePurpose.LOGIN, self.otp_ttl)
        result = self._issue_tokens(account)
        logger.info("Account %s signed in", account.id)
        return result

    def resend_otp(self, email: str, role: Role | None = None) -> str:
        """Replace any outstanding sign-in code with a new one and mail it."""
        email = canonical_email(email)
        self._throttle("resend_otp", email)
        account = self._lookup(email)
        self._ensure_usable(account, role)
        self._send_login_code(account)
        return account.email

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def refresh_access_token(self, refresh_token: str | None) -> str:
        """Exchange the live refresh token for a new access token.

        The refresh token itself is not rotated here. The role comes from the
        store, never from the token.
        """
        if not refresh_token:
            raise ForbiddenError("Refresh token is required.")
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except InvalidTokenError as e:
            raise ForbiddenError("Invalid refresh token.") from e
        account = self.users.get_by_id_with_credentials(claims["sub"])
        if account is None or not self.tokens.matches(refresh_token, account.refresh_token_hash):
            raise ForbiddenError("Invalid refresh token.")
        if account.is_blocked:
            raise UnauthorizedError(_BLOCKED)
        return self.tokens.create_access_token({"id": account.id, "email": account.email, "role": account.role})

    def logout(self, refresh_token: str | None) -> bool:
        """Revoke the presented refresh token if it is still the live one."""
        if not refresh_token:
            return False
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except InvalidTokenError:
            return False
        revoked = self.users.clear_refresh_token(claims["sub"], self.tokens.fingerprint(refresh_token))
        if revoked:
            logger.info("Refresh token revoked for account %s", claims["sub"])
        return revoked

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def oauth_signin(
        self,
        name: str,
        email: str,
        external_token: str,
        avatar: str | None = None,
        role: Role | None = None,
    ) -> AuthResult:
        """Trade a verified provider token for local tokens, creating the account if needed."""
        email = canonical_email(email)
        identity = self.verifier.verify_access_token(external_token)
        if identity.email.strip().lower() != email:
            logger.warning("OAuth token email does not match the claimed email")
            raise UnauthorizedError("External identity does not match this email.")

        account = self.users.get_by_email(email)
        if account is None:
            new_role = Role(role) if role is not None else Role.USER
            if new_role == Role.ADMIN:
                raise ValidationError("Admin accounts cannot be created by sign-up.", field="role")
            display_name = (name or "").strip() or identity.name or email.split("@", 1)[0]
            try:
                account = self.users.create(
                    Account(
                        name=display_name,
                        email=email,
                        role=new_role,
                        avatar=avatar or identity.picture,
                        password_hash=self.hasher.synthetic(),
                        is_oauth_user=True,
                        **_host_defaults(new_role),
                    )
                )
                logger.info("Account %s created via OAuth (role=%s)", account.id, new_role.value)
            except ConflictError:
                # Lost a race with a concurrent first sign-in for the same email.
                account = self._lookup(email)

        self._ensure_usable(account, role, allow_external=True)
        result = self._issue_tokens(account)
        logger.info("Account %s signed in via OAuth", account.id)
        return result

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    def forgot_password(self, email: str, role: Role | None = None) -> str:
        """Mail a reset link carrying a password_reset code."""
        email = canonical_email(email)
        self._throttle("forgot_password", email)
        account = self._lookup(email)
        self._ensure_usable(account, role)
        code = self.codes.create(email, CodePurpose.PASSWORD_RESET)
        link = f"{self.client_url}/reset-password?{urlencode({'email': email, 'code': code})}"
        if not self.mailer.send_password_reset_mail(email, account.name, link):
            logger.warning("Reset code for account %s was stored but not delivered", account.id)
        return email

    def reset_password(self, email: str, code: str, password: str, role: Role | None = None) -> Account:
        """Set a new password and revoke the live refresh token in the same write."""
        email = canonical_email(email)
        validate_password(password)
        code = (code or "").strip()
        if not code.isdigit():
            raise ValidationError("Code must be numeric.", field="otp")
        self._throttle("reset_password", email)
        account = self._lookup(email)
        self._ensure_usable(account, role)
        self._consume_code(email, code, CodePurpose.PASSWORD_RESET, self.reset_ttl)

        self.users.update(account.id, password_hash=self.hasher.hash(password), refresh_token_hash=None)
        self.codes.delete_all_for(email)
        logger.info("Password reset for account %s; sessions revoked", account.id)
        return self.users.get_by_id(account.id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> Account:
        account = self.users.get_by_id(account_id)
        if account is None:
            raise NotFoundError("Account not found.")
        return account

    def set_blocked(self, account_id: str, blocked: bool) -> Account:
        """Flip the kill-switch. Verification status is left as it is."""
        if not self.users.update(account_id, is_blocked=blocked):
            raise NotFoundError("Account not found.")
        logger.warning("Account %s %s", account_id, "blocked" if blocked else "unblocked")
        return self.get_account(account_id)

    def provision_admin(self, name: str, email: str, password: str) -> Account:
        """Create an admin directly. Used by the CLI; there is no HTTP path to this."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.", field="name")
        email = canonical_email(email)
        validate_password(password)
        if self.users.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists.")
        account = self.users.create(
            Account(name=name, email=email, role=Role.ADMIN, password_hash=self.hasher.hash(password))
        )
        logger.info("Admin account %s provisioned", account.id)
        return account

    def purge_expired_codes(self) -> int:
        """Delete codes past their TTL. Hygiene only; verification never relies on it."""
        removed = self.codes.purge_expired(CodePurpose.LOGIN, self.otp_ttl)
        removed += self.codes.purge_expired(CodePurpose.PASSWORD_RESET, self.reset_ttl)
        return removed
