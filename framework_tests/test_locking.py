import pathlib as pl

import pytest
from filelock import FileLock

from multi_sandbox.utils import configuration
from multi_sandbox.utils import locking
from multi_sandbox.utils import sandbox_log


def test_lock_path(tmp_path: pl.Path):
    assert locking.get_lock_path(tmp_path / "multi_msb_8_0_11") == (
        f"{tmp_path / 'multi_msb_8_0_11'}.lock"
    )
    assert locking.get_lock_path("/sandboxes/multi/") == "/sandboxes/multi.lock"


def test_file_lock_timeout(tmp_path: pl.Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "LOCK_TIMEOUT", 0.1)
    catalog_file = tmp_path / "sandboxes.json"

    with FileLock(locking.get_lock_path(catalog_file)):
        with pytest.raises(locking.LockTimeout):
            with locking.file_lock(catalog_file):
                pass

    with locking.file_lock(catalog_file) as lock:
        assert lock.is_locked


def test_sandbox_logger(tmp_path: pl.Path):
    logger = sandbox_log.sandbox_logger(sb_type="multiple", log_dir=tmp_path)
    logger.info("Multiple sandbox definition: {}")

    assert sandbox_log.sandbox_logger(sb_type="multiple", log_dir=tmp_path) is logger
    log_file = sandbox_log.get_sandbox_log_path(sb_type="multiple", log_dir=tmp_path)
    assert log_file == tmp_path / "multiple.log"
    assert "INFO Multiple sandbox definition" in log_file.read_text()
