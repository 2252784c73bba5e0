"""
Tests for the Loguru setup: settings-driven log directory and masking of
sender phone numbers.
"""

import sys

import pytest
from loguru import logger

import princelab.logging as plog
from princelab.settings import settings


@pytest.fixture
def fresh_logger(monkeypatch):
    monkeypatch.setattr(plog, "_INITIALISED", False)
    yield
    logger.remove()
    logger.configure(patcher=plog._keep_record)
    logger.add(sys.stderr)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("user=15551234567 admitted", "user=***4567 admitted"),
        ("to +447700900123", "to ***0123"),
        ("boundary=40 turns=12", "boundary=40 turns=12"),
    ],
)
def test_mask_user_keys(text, expected):
    assert plog.mask_user_keys(text) == expected


def test_log_dir_comes_from_settings(fresh_logger, monkeypatch, tmp_path):
    target = tmp_path / "botlogs"
    monkeypatch.setattr(settings, "LOG_DIR", str(target))

    assert plog.setup_logger("INFO") == target
    assert (target / "app.log").exists()
    assert (target / "debug.log").exists()


def test_file_sinks_mask_phone_numbers(fresh_logger, tmp_path):
    plog.setup_logger("INFO", log_dir=tmp_path)
    logger.info("[ORCH] user=15551234567 admitted")

    content = (tmp_path / "app.log").read_text()
    assert "user=***4567 admitted" in content
    assert "15551234567" not in content


def test_masking_can_be_switched_off(fresh_logger, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LOG_MASK_USER_KEYS", False)
    plog.setup_logger("INFO", log_dir=tmp_path)
    logger.info("[ORCH] user=15551234567 admitted")

    assert "user=15551234567" in (tmp_path / "app.log").read_text()


def test_second_call_is_a_no_op(fresh_logger, tmp_path):
    plog.setup_logger("INFO", log_dir=tmp_path / "first")
    plog.setup_logger("INFO", log_dir=tmp_path / "second")

    assert not (tmp_path / "second").exists()
