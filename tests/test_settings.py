from pathlib import Path

import pytest

from fantasy_roto.settings import get_settings, reset_settings_cache


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


def test_settings_read_dotenv_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # load_dotenv writes os.environ directly; register the keys so teardown removes them.
    for key in ("DATA_ROOT", "MLB_REQUEST_DELAY_MS", "MLB_MAX_WORKERS", "MLB_API_BASE"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    env_file = tmp_path / ".env"
    env_file.write_text(
        f"DATA_ROOT={tmp_path / 'data'}\nMLB_REQUEST_DELAY_MS=50\nMLB_MAX_WORKERS=0\nMLB_API_BASE=https://example.test/api/\n",
        encoding="utf-8",
    )

    settings = get_settings(env_file)

    assert settings.data_root == (tmp_path / "data").resolve()
    assert settings.archive_root == settings.data_root / "archive"
    assert settings.request_delay_seconds == pytest.approx(0.05)
    assert settings.mlb_max_workers == 1
    assert settings.mlb_api_base == "https://example.test/api"


def test_settings_reject_bad_numbers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MLB_REQUEST_DELAY_MS", "fast")
    with pytest.raises(ValueError):
        get_settings(tmp_path / "missing.env")
