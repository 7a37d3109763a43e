"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the stock simulator gate happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode generates a session key with a warning; production
      mode refuses to start without one.

Security notes:
  SECRET_KEY signs the session cookie. Keys shorter than 32 chars are rejected.

  csrf_enabled defaults to False to match the login flow this app replaces.
  That is a deliberate weakening of secure defaults; api/main.py logs a
  WARNING at startup whenever it is off.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import re
import secrets
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("stocksim.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'stocksim_users.db'}"
_DEFAULT_PRICE_SEED = str(Path(__file__).resolve().parent.parent / "market" / "data" / "AAPL.csv")
_TICKER_PATTERN = re.compile(r"^[A-Z][A-Z0-9.]{0,9}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_max_age: int = 1800

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10
    # Lookup collation choice. False makes find_by_username() and the
    # UNIQUE username key compare casefolded usernames.
    username_case_sensitive: bool = True

    # ------------------------------------------------------------------
    # Request forgery
    # ------------------------------------------------------------------

    csrf_enabled: bool = False

    # ------------------------------------------------------------------
    # Market
    # ------------------------------------------------------------------

    ticker: str = "AAPL"
    starting_balance: Decimal = Decimal("10000.00")
    # Price history CSV loaded at startup. Empty string disables seeding.
    price_seed_file: str = _DEFAULT_PRICE_SEED

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Enforce SECRET_KEY policy and numeric ranges.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.session_max_age <= 0:
            raise ValueError("SESSION_MAX_AGE must be a positive number of seconds.")
        if not _TICKER_PATTERN.match(self.ticker):
            raise ValueError("TICKER must be 1-10 upper-case letters, digits or dots.")
        if self.starting_balance < 0:
            raise ValueError("STARTING_BALANCE must not be negative.")
        return self

    @property
    def starting_balance_cents(self) -> int:
        return int((self.starting_balance * 100).to_integral_value())


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
