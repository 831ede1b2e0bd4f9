"""Tests for logging setup and manifest helpers."""

from __future__ import annotations

import hashlib
import json
import logging

import numpy as np
import pytest

from smoothmap.util import LOG_FILE_NAME, setup_logging, sha256_file, write_json


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    for handler in list(logging.getLogger().handlers):
        logging.getLogger().removeHandler(handler)
        handler.close()
    logging.captureWarnings(False)


class TestSetupLogging:
    def test_log_file_in_logs_dir(self, tmp_path):
        log_file = setup_logging(tmp_path / "logs")
        assert log_file == tmp_path / "logs" / LOG_FILE_NAME
        logging.getLogger("smoothmap.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("matplotlib").level == logging.WARNING

    def test_console_only(self):
        assert setup_logging(None, verbose=True) is None
        assert logging.getLogger().level == logging.DEBUG


class TestManifestHelpers:
    def test_write_json_converts_numpy(self, tmp_path):
        path = tmp_path / "nested" / "manifest.json"
        write_json(path, {"breaks": np.array([0.0, 1.5]), "count": np.int64(3), "out": tmp_path})
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload == {"breaks": [0.0, 1.5], "count": 3, "out": str(tmp_path)}

    def test_write_json_rejects_unknown(self, tmp_path):
        with pytest.raises(TypeError):
            write_json(tmp_path / "bad.json", {"value": object()})

    def test_sha256_file(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"smoothmap" * 1000)
        assert sha256_file(path, chunk_size=7) == hashlib.sha256(b"smoothmap" * 1000).hexdigest()
