"""
auth/security.py -- Startup wiring of the login gate.

build_security_config() assembles, once per process, every object the
request path needs:

  - the access policy (which paths are public),
  - the password encoder and the authentication provider that uses it,
  - the form-login and logout endpoints with their redirect targets,
  - whether request-forgery tokens are enforced.

The result is stored on app.state.security by the lifespan in api/main.py.
Nothing here is mutated after startup.

Layer rule: no imports from api/, web/, or core/. Settings values are passed
in by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from auth.passwords import DEFAULT_ROUNDS, BcryptPasswordEncoder
from auth.policy import AccessPolicy, build_default_policy
from auth.provider import AuthenticationProvider, UserLookup


@dataclass(frozen=True)
class FormLoginConfig:
    """Form login endpoints.

    always_use_default=True sends every successful login to
    default_success_url. With False, a request saved by the access middleware
    before the login redirect takes precedence.
    """

    login_page: str = "/login"
    processing_url: str = "/login"
    default_success_url: str = "/dashboard"
    always_use_default: bool = True
    failure_url: str = "/login?error=true"


@dataclass(frozen=True)
class LogoutConfig:
    logout_url: str = "/perform_logout"
    success_url: str = "/login?logout"


@dataclass(frozen=True)
class SecurityConfig:
    access_policy: AccessPolicy
    password_encoder: BcryptPasswordEncoder
    provider: AuthenticationProvider
    form_login: FormLoginConfig = field(default_factory=FormLoginConfig)
    logout: LogoutConfig = field(default_factory=LogoutConfig)
    csrf_enabled: bool = False


def build_security_config(
    user_lookup: UserLookup,
    bcrypt_rounds: int = DEFAULT_ROUNDS,
    csrf_enabled: bool = False,
    form_login: FormLoginConfig | None = None,
) -> SecurityConfig:
    encoder = BcryptPasswordEncoder(rounds=bcrypt_rounds)
    return SecurityConfig(
        access_policy=build_default_policy(),
        password_encoder=encoder,
        provider=AuthenticationProvider(user_lookup, encoder),
        form_login=form_login or FormLoginConfig(),
        csrf_enabled=csrf_enabled,
    )
