import os
import time

import pytest
from loguru import logger

from keepwatching.settings.manager import settings_manager
from keepwatching.utils import logging as keepwatching_logging
from keepwatching.utils.logging import log_cleaner


@pytest.fixture
def logs(tmp_path, monkeypatch):
    monkeypatch.setattr(keepwatching_logging, "data_dir_path", tmp_path)
    monkeypatch.setattr(keepwatching_logging, "LAST_LOGS_CLEANED", None)
    monkeypatch.setattr(settings_manager.settings.logging, "enabled", True)
    monkeypatch.setattr(settings_manager.settings.logging, "retention_hours", 24)

    logs_dir = tmp_path / "logs"
    logs_dir.mkdir()

    def add(name: str, age_hours: float):
        path = logs_dir / name
        path.write_text("")
        stamp = time.time() - age_hours * 3600
        os.utime(path, (stamp, stamp))
        return path

    return add


@pytest.mark.parametrize("name, severity", [("PROGRAM", 20), ("DATABASE", 5), ("STATUS", 10)])
def test_custom_levels_are_registered(name, severity):
    assert logger.level(name).no == severity


def test_log_cleaner_removes_expired_logs(logs):
    oldest = logs("keepwatching-20260101-0000.log", 50)
    old = logs("keepwatching-20260102-0000.log", 48)
    recent = logs("keepwatching-20260103-0000.log", 1)

    log_cleaner()

    assert not oldest.exists()
    assert not old.exists()
    assert recent.exists()
    assert keepwatching_logging.LAST_LOGS_CLEANED is not None


def test_log_cleaner_keeps_the_newest_log(logs):
    only = logs("keepwatching-20260101-0000.log", 100)

    log_cleaner()

    assert only.exists()


def test_log_cleaner_ignores_foreign_files(logs):
    foreign = logs("other-20260101-0000.log", 100)
    logs("keepwatching-20260103-0000.log", 1)

    log_cleaner()

    assert foreign.exists()


def test_log_cleaner_is_a_no_op_when_file_logging_is_off(logs, monkeypatch):
    monkeypatch.setattr(settings_manager.settings.logging, "enabled", False)
    old = logs("keepwatching-20260101-0000.log", 50)
    logs("keepwatching-20260103-0000.log", 1)

    log_cleaner()

    assert old.exists()
