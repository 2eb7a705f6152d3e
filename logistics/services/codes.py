"""
LOGISTICS App - Delivery Validation Codes for FLUX

Generation, normalization and hashing of the short codes a customer hands
over to the driver at drop-off.
"""

import hashlib
import hmac
import re
import secrets
from typing import Optional


# ============================================
# CODE CONFIGURATION
# ============================================

# No 0/O, 1/I: codes are read aloud over the doorstep
CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 6

CODE_HASH_PATTERN = re.compile(r'^[0-9a-f]{64}$')


def generate_code() -> str:
    """Draw a fresh validation code from the system CSPRNG."""
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: Optional[str]) -> str:
    """Canonical form used on both the issuing and the redemption path."""
    return (code or '').strip().upper()


def hash_code(code: str) -> str:
    """SHA-256 of the normalized code, lowercase hex (64 chars)."""
    return hashlib.sha256(normalize_code(code).encode('utf-8')).hexdigest()


def codes_match(code: str, stored_hash: Optional[str]) -> bool:
    """Constant-time comparison of a submitted code against a stored hash."""
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_code(code), stored_hash)


def is_valid_code_hash(value: Optional[str]) -> bool:
    return bool(value) and CODE_HASH_PATTERN.match(value) is not None
