from __future__ import annotations

import contextlib
import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import List, Tuple
from unittest import mock

from ferry.cli import main

from test_transfer import BlobServer, symlink_container


REPO_ROOT = Path(__file__).resolve().parent


def _run_main(argv: List[str]) -> Tuple[int, str, str]:
    out, err = io.StringIO(), io.StringIO()
    code = 0
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        try:
            main(argv)
        except SystemExit as exc:
            code = exc.code if isinstance(exc.code, int) else 1
    return code, out.getvalue(), err.getvalue()


def _build_fixture_tree(root: Path) -> None:
    (root / "docs" / "notes").mkdir(parents=True)
    (root / "docs" / "readme.txt").write_bytes(b"hello world\n" * 20)
    os.chmod(root / "docs" / "readme.txt", 0o644)
    (root / "docs" / "notes" / "binary.bin").write_bytes(os.urandom(2048))
    os.chmod(root / "docs" / "notes" / "binary.bin", 0o600)
    (root / "docs" / "notes" / "empty.txt").write_text("")


def _compare_trees(src: Path, dst: Path) -> None:
    for path in sorted(src.rglob("*")):
        rel = path.relative_to(src)
        other = dst / rel
        if path.is_dir():
            assert other.is_dir(), f"Missing directory: {other}"
            continue
        assert other.read_bytes() == path.read_bytes(), f"Content mismatch: {rel}"
        assert (other.stat().st_mode & 0o777) == (path.stat().st_mode & 0o777), f"Mode mismatch: {rel}"


class CliWorkflowTests(unittest.TestCase):
    def setUp(self):
        self.server = BlobServer().__enter__()
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name)

    def tearDown(self):
        self.server.__exit__(None, None, None)
        self.tmp.cleanup()

    def test_put_get_encrypted_tar(self):
        src = self.base / "src"
        _build_fixture_tree(src)
        code, out, err = _run_main(
            ["put", "--base-url", self.server.base_url, "--tar", "--encrypt", "--password", "s3cret", "--checksum", str(src / "docs")]
        )
        self.assertEqual(code, 0, err)
        lines = out.splitlines()
        url = lines[0]
        self.assertTrue(url.startswith(self.server.base_url))
        self.assertTrue(url.endswith("/archive.tar"))
        self.assertTrue(lines[1].startswith("Checksum: "))

        dest = self.base / "dl"
        code, out, err = _run_main(["get", "--dest", str(dest), "--password", "s3cret", "--checksum", url])
        self.assertEqual(code, 0, err)
        self.assertEqual(out.splitlines()[0], lines[1])
        self.assertIn("archive.tar -> ", err)
        self.assertIn("(tar+gzip+aes256-ofb)", err)
        _compare_trees(src / "docs", dest / "docs")

    def test_get_to_stdout(self):
        payload = self.base / "payload.txt"
        payload.write_bytes(b"stream me\n" * 100)
        code, out, err = _run_main(["put", "--base-url", self.server.base_url, "--no-compress", str(payload)])
        self.assertEqual(code, 0, err)
        url = out.strip()

        buf = io.BytesIO()
        wrapper = io.TextIOWrapper(buf, encoding="utf-8")
        with contextlib.redirect_stdout(wrapper):
            main(["get", "--stdout", "--checksum", url])
            wrapper.flush()
        self.assertEqual(buf.getvalue(), payload.read_bytes())

    def test_config_file_and_cli_precedence(self):
        cfg = self.base / "ferry.json"
        cfg.write_text(json.dumps({"base_url": "http://127.0.0.1:9/unused", "compress": False}), encoding="utf-8")
        payload = self.base / "p.bin"
        payload.write_bytes(b"x" * 1000)
        code, out, err = _run_main(["put", "--config", str(cfg), "--base-url", self.server.base_url, str(payload)])
        self.assertEqual(code, 0, err)
        stored = next(iter(self.server.blobs.values()))
        # compress=false came from the file, the URL from the command line
        self.assertEqual(stored[:2], b"\x00\x00")

    def test_bad_config_key(self):
        cfg = self.base / "ferry.json"
        cfg.write_text(json.dumps({"no_such_option": 1}), encoding="utf-8")
        code, _, err = _run_main(["put", "--config", str(cfg), "-"])
        self.assertEqual(code, 2)
        self.assertTrue(err.startswith("Error: "))

    def test_directory_without_tar(self):
        code, _, err = _run_main(["put", "--base-url", self.server.base_url, str(self.base)])
        self.assertEqual(code, 2)
        self.assertIn("--tar", err)

    def test_server_error_reported(self):
        bad = self.base / "reject"
        bad.write_bytes(b"data")
        code, _, err = _run_main(["put", "--base-url", self.server.base_url, str(bad)])
        self.assertEqual(code, 2)
        self.assertIn("Invalid http status 500", err)

    def test_wrong_format_reported(self):
        self.server.blobs["/0/junk"] = b"\xff\xff not a container"
        code, _, err = _run_main(["get", "--dest", str(self.base / "dl"), self.server.base_url + "/0/junk"])
        self.assertEqual(code, 2)
        self.assertIn("unknown container flags", err)

    def test_skipped_entries_reported(self):
        self.server.blobs["/0/bundle.tar"] = symlink_container()
        dest = self.base / "dl"
        code, _, err = _run_main(["get", "--dest", str(dest), self.server.base_url + "/0/bundle.tar"])
        self.assertEqual(code, 0, err)
        self.assertIn("Warning: skipped unsupported archive entry link", err)
        self.assertIn("bundle.tar -> ", err)
        self.assertIn("(tar)", err)
        self.assertEqual((dest / "real.txt").read_bytes(), b"real")
        self.assertFalse(os.path.lexists(dest / "link"))

    def test_mode_failure_reported(self):
        self.server.blobs["/0/bundle.tar"] = symlink_container()
        with mock.patch("ferry.archive.os.chmod", side_effect=PermissionError("denied")):
            code, _, err = _run_main(["get", "--dest", str(self.base / "dl"), self.server.base_url + "/0/bundle.tar"])
        self.assertEqual(code, 0, err)
        self.assertIn("Warning: failed to set mode on", err)

    def test_subprocess_entry_point(self):
        payload = self.base / "hello.txt"
        payload.write_bytes(b"hello from a subprocess\n")
        env = dict(os.environ)
        env["PYTHONPATH"] = str(REPO_ROOT) + os.pathsep + env.get("PYTHONPATH", "")
        put = subprocess.run(
            [sys.executable, "-m", "ferry.cli", "put", "--base-url", self.server.base_url, str(payload)],
            capture_output=True,
            env=env,
            timeout=60,
        )
        self.assertEqual(put.returncode, 0, put.stderr.decode())
        url = put.stdout.decode().strip()
        dest = self.base / "dl"
        got = subprocess.run(
            [sys.executable, "-m", "ferry.cli", "get", "--dest", str(dest), url],
            capture_output=True,
            env=env,
            timeout=60,
        )
        self.assertEqual(got.returncode, 0, got.stderr.decode())
        self.assertEqual((dest / "hello.txt").read_bytes(), payload.read_bytes())


if __name__ == "__main__":
    unittest.main()
