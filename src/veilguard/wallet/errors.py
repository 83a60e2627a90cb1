"""
Stealth Errors - Exception hierarchy for the stealth payment engine.

Callers are expected to branch on these separately:
- InvalidKeyEncoding: the keys or hex input are malformed (fix the input)
- KeyMismatch: well-formed keys that do not own the stealth address
- DecryptionFailure: a memo exists but cannot be read with these keys

Commitment checks are not exceptions; see services.receipts.
"""


class StealthError(Exception):
    """Base exception for stealth payment errors."""

    pass


class InvalidKeyEncoding(StealthError, ValueError):
    """Malformed scalar, point, address or hex input."""

    pass


class DerivationError(StealthError):
    """Derivation hit a degenerate value (zero scalar or point at infinity)."""

    pass


class KeyMismatch(StealthError):
    """Recomputed stealth address differs from the expected one."""

    def __init__(self, expected: str, derived: str):
        self.expected = expected
        self.derived = derived
        super().__init__(
            f"Derived stealth address {derived} does not match expected {expected}"
        )


class DecryptionFailure(StealthError):
    """Memo ciphertext failed authentication or is malformed."""

    pass


class ConfigurationError(StealthError, ValueError):
    """Invalid stealth configuration (e.g. unknown scheme name)."""

    pass
