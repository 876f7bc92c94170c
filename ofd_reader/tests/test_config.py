import pytest
from pydantic import ValidationError

from ofd_reader.app.config import ReaderConfig


def test_defaults():
    config = ReaderConfig()

    assert config.ENABLE_SIGNATURE_VERIFICATION is True
    assert config.ENABLE_NESTED_SEAL_PARSING is True
    assert config.ENABLE_FONT_LOADING is True
    assert config.MAX_PAGE_COUNT == 10_000
    assert config.MAX_SEAL_NESTING_DEPTH == 2
    assert config.max_archive_bytes == 100 * 1024 * 1024
    assert config.max_uncompressed_bytes == 500 * 1024 * 1024


def test_from_env_reads_prefixed_variables(monkeypatch):
    monkeypatch.setenv("OFD_READER_ENABLE_SIGNATURE_VERIFICATION", "false")
    monkeypatch.setenv("OFD_READER_ENABLE_FONT_LOADING", "0")
    monkeypatch.setenv("OFD_READER_MAX_PAGE_COUNT", "25")
    monkeypatch.setenv("OFD_READER_MAX_SEAL_NESTING_DEPTH", "0")

    config = ReaderConfig.from_env()

    assert config.ENABLE_SIGNATURE_VERIFICATION is False
    assert config.ENABLE_FONT_LOADING is False
    assert config.ENABLE_NESTED_SEAL_PARSING is True
    assert config.MAX_PAGE_COUNT == 25
    assert config.MAX_SEAL_NESTING_DEPTH == 0


def test_from_env_without_variables_matches_defaults(monkeypatch):
    for name in (
        "OFD_READER_ENABLE_SIGNATURE_VERIFICATION",
        "OFD_READER_ENABLE_NESTED_SEAL_PARSING",
        "OFD_READER_ENABLE_FONT_LOADING",
        "OFD_READER_MAX_ARCHIVE_SIZE_MB",
        "OFD_READER_MAX_UNCOMPRESSED_SIZE_MB",
        "OFD_READER_MAX_PAGE_COUNT",
        "OFD_READER_MAX_SEAL_NESTING_DEPTH",
    ):
        monkeypatch.delenv(name, raising=False)

    assert ReaderConfig.from_env() == ReaderConfig()


@pytest.mark.parametrize(
    "field, value",
    [
        ("MAX_ARCHIVE_SIZE_MB", 0),
        ("MAX_UNCOMPRESSED_SIZE_MB", 0),
        ("MAX_PAGE_COUNT", -1),
        ("MAX_SEAL_NESTING_DEPTH", -1),
    ],
)
def test_invalid_limits_rejected(field, value):
    with pytest.raises(ValidationError):
        ReaderConfig(**{field: value})


def test_config_is_immutable():
    config = ReaderConfig()

    with pytest.raises(ValidationError):
        config.MAX_PAGE_COUNT = 1
