"""
Encrypted keystore tests
"""

import json
import os

import pytest

from veilguard.wallet import (
    DecryptionFailure,
    keystore_exists,
    load_meta_keys,
    read_meta_address,
    save_meta_keys,
)


pytestmark = pytest.mark.usefixtures("fast_argon2")


class TestKeystore:
    """Tests for saving and loading meta keys."""

    def test_roundtrip(self, tmp_path, merchant):
        keys, meta = merchant
        path = tmp_path / "keystore.json"

        stored_meta = save_meta_keys(path, keys, "correct horse")

        assert stored_meta == meta
        assert keystore_exists(path)
        assert load_meta_keys(path, "correct horse") == keys

    def test_meta_address_readable_without_password(self, tmp_path, merchant):
        keys, meta = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "pw")
        assert read_meta_address(path) == meta

    def test_private_keys_not_in_clear(self, tmp_path, fixed_keys):
        path = tmp_path / "keystore.json"
        save_meta_keys(path, fixed_keys, "pw")
        text = path.read_text()
        assert "11" * 32 not in text
        assert "22" * 32 not in text

    def test_file_format(self, tmp_path, merchant):
        keys, _ = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "pw")

        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert data["kdf"]["algorithm"] == "argon2id"
        assert data["kdf"]["time_cost"] == 1
        assert len(bytes.fromhex(data["iv"])) == 12
        assert len(bytes.fromhex(data["tag"])) == 16
        assert data["meta_address"].startswith("st:eth:0x")
        assert not path.with_suffix(".tmp").exists()

    @pytest.mark.skipif(os.name != "posix", reason="Unix permissions")
    def test_permissions(self, tmp_path, merchant):
        keys, _ = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "pw")
        assert (path.stat().st_mode & 0o777) == 0o600

    def test_wrong_password(self, tmp_path, merchant):
        keys, _ = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "right")
        with pytest.raises(DecryptionFailure):
            load_meta_keys(path, "wrong")

    def test_tampered_ciphertext(self, tmp_path, merchant):
        keys, _ = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "pw")
        data = json.loads(path.read_text())
        data["ciphertext"] = ("00" if data["ciphertext"][:2] != "00" else "01") + data["ciphertext"][2:]
        path.write_text(json.dumps(data))
        with pytest.raises(DecryptionFailure):
            load_meta_keys(path, "pw")

    def test_empty_password(self, tmp_path, merchant):
        keys, _ = merchant
        with pytest.raises(ValueError):
            save_meta_keys(tmp_path / "keystore.json", keys, "")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_meta_keys(tmp_path / "nope.json", "pw")

    def test_unknown_version(self, tmp_path, merchant):
        keys, _ = merchant
        path = tmp_path / "keystore.json"
        save_meta_keys(path, keys, "pw")
        data = json.loads(path.read_text())
        data["version"] = 99
        path.write_text(json.dumps(data))
        with pytest.raises(ValueError, match="Unsupported keystore version"):
            load_meta_keys(path, "pw")
