"""Tests for the key generation CLI."""

import os
import stat

from credential_service.cli.keygen import PRIVATE_KEY_FILE, PUBLIC_KEY_FILE, generate_secret, main
from credential_service.core.key_provider import KeyMaterialProvider


class TestKeygen:
    def test_writes_usable_key_pair(self, tmp_path, capsys):
        out_dir = tmp_path / "keys"

        assert main(["--out-dir", str(out_dir), "--bits", "2048"]) == 0

        private_path = out_dir / PRIVATE_KEY_FILE
        public_path = out_dir / PUBLIC_KEY_FILE
        assert stat.S_IMODE(private_path.stat().st_mode) == 0o600

        output = capsys.readouterr().out
        secret = next(
            line.split("=", 1)[1] for line in output.splitlines() if line.startswith("JWT_SECRET=")
        )
        material = KeyMaterialProvider(secret, public_path, private_path).load()
        assert material.key_size == 2048

    def test_refuses_to_overwrite(self, tmp_path):
        assert main(["--out-dir", str(tmp_path), "--bits", "2048"]) == 0
        before = (tmp_path / PRIVATE_KEY_FILE).read_bytes()

        assert main(["--out-dir", str(tmp_path), "--bits", "2048"]) == 2
        assert (tmp_path / PRIVATE_KEY_FILE).read_bytes() == before

    def test_force_overwrites(self, tmp_path):
        assert main(["--out-dir", str(tmp_path), "--bits", "2048"]) == 0
        before = (tmp_path / PRIVATE_KEY_FILE).read_bytes()

        assert main(["--out-dir", str(tmp_path), "--bits", "2048", "--force"]) == 0
        assert (tmp_path / PRIVATE_KEY_FILE).read_bytes() != before

    def test_private_key_mode_ignores_umask(self, tmp_path):
        previous = os.umask(0)
        try:
            assert main(["--out-dir", str(tmp_path), "--bits", "2048"]) == 0
        finally:
            os.umask(previous)

        assert stat.S_IMODE((tmp_path / PRIVATE_KEY_FILE).stat().st_mode) == 0o600

    def test_force_tightens_existing_private_key_mode(self, tmp_path):
        private_path = tmp_path / PRIVATE_KEY_FILE
        private_path.write_bytes(b"old")
        private_path.chmod(0o644)

        assert main(["--out-dir", str(tmp_path), "--bits", "2048", "--force"]) == 0

        assert stat.S_IMODE(private_path.stat().st_mode) == 0o600
        assert private_path.read_bytes().startswith(b"-----BEGIN")

    def test_rejects_small_keys(self, tmp_path, capsys):
        assert main(["--out-dir", str(tmp_path), "--bits", "1024"]) == 3
        assert "at least 2048" in capsys.readouterr().err
        assert not (tmp_path / PRIVATE_KEY_FILE).exists()


def test_generated_secret_is_32_bytes():
    assert len(generate_secret().encode("utf-8")) == 32
