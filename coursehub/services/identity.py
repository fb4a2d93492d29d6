"""Certificate identity generation.

Certificate number:  CERT-{YYYY}{MM}-{NNNN}, e.g. CERT-202603-0417
Verification code:   base36(epoch millis) + 11 random base36 chars, upper-cased

Neither value is guaranteed unique on its own.  The certificate store's
unique constraints are the arbiter; callers regenerate on a collision
(see CertificateService._insert_with_identity).
"""

from __future__ import annotations

import datetime
import secrets
import string
import time

from coursehub.models.certificate import CertificateIdentity

_BASE36 = string.digits + string.ascii_uppercase
_CODE_RANDOM_CHARS = 11


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def certificate_number(now: int) -> str:
    issued = datetime.datetime.fromtimestamp(now, datetime.UTC)
    return f"CERT-{issued.year}{issued.month:02d}-{secrets.randbelow(10_000):04d}"


def verification_code(now_ms: int) -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_CODE_RANDOM_CHARS))
    return f"{_base36(now_ms)}{suffix}"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def new_identity(now: int) -> CertificateIdentity:
    return CertificateIdentity(
        certificate_number=certificate_number(now),
        verification_code=verification_code(time.time_ns() // 1_000_000),
    )
