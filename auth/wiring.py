"""
auth/wiring.py -- Builds the auth object graph from Settings.

The FastAPI lifespan and the admin CLI both call build_components(), so the
two entry points can never disagree about how a store or service is
configured. Tests skip this and assemble their own graph around in-memory
stores.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.oauth import IdentityVerifier
from auth.orchestrator import AuthOrchestrator
from auth.passwords import PasswordHasher
from auth.ratelimit import RateLimiter
from auth.store import OtpStore, UserStore
from auth.tokens import TokenService
from auth.verification import VerificationWorkflow
from core.config import Settings
from core.mailer import Mailer


@dataclass
class AuthComponents:
    users: UserStore
    codes: OtpStore
    tokens: TokenService
    orchestrator: AuthOrchestrator
    workflow: VerificationWorkflow

    def close(self) -> None:
        self.codes.close()
        self.users.close()


def build_components(settings: Settings) -> AuthComponents:
    users = UserStore(settings.database_url)
    codes = OtpStore(settings.database_url, secret=settings.secret_key, code_length=settings.otp_length)
    tokens = TokenService(settings)
    orchestrator = AuthOrchestrator(
        users=users,
        codes=codes,
        hasher=PasswordHasher(),
        tokens=tokens,
        mailer=Mailer.from_settings(settings),
        verifier=IdentityVerifier.from_settings(settings),
        limiter=RateLimiter(
            settings.auth_rate_limit,
            settings.rate_limit_storage_uri,
            enabled=settings.rate_limit_enabled,
        ),
        otp_ttl_seconds=settings.otp_expire_seconds,
        reset_ttl_seconds=settings.reset_code_expire_seconds,
        client_url=settings.client_url,
    )
    return AuthComponents(
        users=users,
        codes=codes,
        tokens=tokens,
        orchestrator=orchestrator,
        workflow=VerificationWorkflow(users),
    )
