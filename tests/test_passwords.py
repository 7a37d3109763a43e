"""Unit tests for auth/passwords.py -- bcrypt encode/matches contract."""

import pytest

from auth.passwords import DEFAULT_ROUNDS, MAX_PASSWORD_BYTES, BcryptPasswordEncoder


@pytest.fixture(scope="module")
def encoder() -> BcryptPasswordEncoder:
    return BcryptPasswordEncoder(rounds=4)


@pytest.mark.parametrize("password", ["s3cret-pass", "", "pässwörd ✓", "x" * MAX_PASSWORD_BYTES])
def test_hash_verifies_against_its_own_password(encoder: BcryptPasswordEncoder, password: str) -> None:
    assert encoder.matches(password, encoder.encode(password))


@pytest.mark.parametrize("other", ["s3cret-pasS", "s3cret-pass ", "", "s3cret"])
def test_hash_rejects_other_passwords(encoder: BcryptPasswordEncoder, other: str) -> None:
    assert not encoder.matches(other, encoder.encode("s3cret-pass"))


def test_hashes_are_salted(encoder: BcryptPasswordEncoder) -> None:
    first, second = encoder.encode("same"), encoder.encode("same")
    assert first != second
    assert first.startswith("$2")


def test_cost_factor_is_embedded(encoder: BcryptPasswordEncoder) -> None:
    assert encoder.encode("pw").split("$")[2] == "04"


def test_default_cost_factor() -> None:
    assert BcryptPasswordEncoder().rounds == DEFAULT_ROUNDS == 10


def test_overlong_password_rejected_on_encode(encoder: BcryptPasswordEncoder) -> None:
    with pytest.raises(ValueError):
        encoder.encode("x" * (MAX_PASSWORD_BYTES + 1))


def test_overlong_candidate_never_matches(encoder: BcryptPasswordEncoder) -> None:
    stored = encoder.encode("x" * MAX_PASSWORD_BYTES)
    assert not encoder.matches("x" * (MAX_PASSWORD_BYTES + 1), stored)


@pytest.mark.parametrize("stored", [None, "", "not-a-bcrypt-hash", "$2b$04$short"])
def test_malformed_or_missing_hash_is_false(encoder: BcryptPasswordEncoder, stored) -> None:
    assert encoder.matches("anything", stored) is False


def test_none_candidate_is_false(encoder: BcryptPasswordEncoder) -> None:
    assert encoder.matches(None, encoder.encode("pw")) is False


def test_non_string_password_rejected(encoder: BcryptPasswordEncoder) -> None:
    with pytest.raises(TypeError):
        encoder.encode(b"bytes")  # type: ignore[arg-type]


@pytest.mark.parametrize("rounds", [3, 32])
def test_rounds_out_of_range(rounds: int) -> None:
    with pytest.raises(ValueError):
        BcryptPasswordEncoder(rounds=rounds)
