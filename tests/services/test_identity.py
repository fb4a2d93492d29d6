from __future__ import annotations

import re

from coursehub.services import identity

# 2026-03-15T12:00:00Z
_MARCH_2026 = 1_773_576_000


def test_certificate_number_format() -> None:
    number = identity.certificate_number(_MARCH_2026)
    assert re.fullmatch(r"CERT-202603-\d{4}", number)


def test_verification_code_is_upper_base36() -> None:
    code = identity.verification_code(1_700_000_000_000)
    assert re.fullmatch(r"[0-9A-Z]+", code)
    assert code.startswith(identity._base36(1_700_000_000_000))
    assert len(code) == len(identity._base36(1_700_000_000_000)) + 11


def test_base36() -> None:
    assert identity._base36(0) == "0"
    assert identity._base36(35) == "Z"
    assert identity._base36(36) == "10"


def test_verification_codes_differ() -> None:
    codes = {identity.verification_code(1_700_000_000_000) for _ in range(50)}
    assert len(codes) == 50


def test_normalize_code() -> None:
    assert identity.normalize_code("  abc123 ") == "ABC123"


def test_new_identity_uses_issue_month() -> None:
    ident = identity.new_identity(_MARCH_2026)
    assert ident.certificate_number.startswith("CERT-202603-")
    assert ident.verification_code == ident.verification_code.upper()
