"""
VeilGuard Test Fixtures
"""

import pytest

from veilguard.wallet import EphemeralKeyPair, MetaPrivateKeys, generate_meta_keys


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Point the app directory at a temp dir and clear env overrides."""
    home = tmp_path / "veilguard-home"
    monkeypatch.setenv("VEILGUARD_HOME", str(home))
    monkeypatch.delenv("VEILGUARD_STEALTH_MODE", raising=False)
    monkeypatch.delenv("VEILGUARD_PASSWORD", raising=False)
    monkeypatch.delenv("VEILGUARD_SENDER_KEY", raising=False)
    return home


@pytest.fixture
def fixed_keys() -> MetaPrivateKeys:
    """spendPriv = 0x11..11, viewPriv = 0x22..22."""
    return MetaPrivateKeys(spend_priv=bytes([0x11] * 32), view_priv=bytes([0x22] * 32))


@pytest.fixture
def merchant():
    """A fresh (keys, meta-address) pair."""
    return generate_meta_keys()


@pytest.fixture
def other_merchant():
    return generate_meta_keys()


@pytest.fixture
def ephemeral() -> EphemeralKeyPair:
    return EphemeralKeyPair.from_private(bytes([0x33] * 32))


@pytest.fixture
def fast_argon2(monkeypatch):
    """Cheap Argon2 parameters so keystore tests run quickly."""
    from veilguard.wallet import keystore
    monkeypatch.setattr(keystore, "ARGON2_TIME_COST", 1)
    monkeypatch.setattr(keystore, "ARGON2_MEMORY_COST", 1024)
    monkeypatch.setattr(keystore, "ARGON2_PARALLELISM", 1)
