import pytest

from utils.config import OptimizerConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith("CLIPSQUEEZE_"):
            monkeypatch.delenv(key)


def test_defaults_match_fixed_quality():
    config = OptimizerConfig()

    assert config.jpeg_quality == 60
    assert config.enforce_revert_expiry is False
    assert config.revert_window == 5.0


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("CLIPSQUEEZE_MIN_BYTES", "2048")
    monkeypatch.setenv("CLIPSQUEEZE_ENFORCE_REVERT_EXPIRY", "yes")
    monkeypatch.setenv("CLIPSQUEEZE_POLL_INTERVAL", "0.5")

    config = OptimizerConfig.from_env(env_path=tmp_path / "missing.env")

    assert config.min_bytes == 2048
    assert config.enforce_revert_expiry is True
    assert config.poll_interval == 0.5


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("CLIPSQUEEZE_API_PORT=4555\nCLIPSQUEEZE_API_HOST=0.0.0.0\n", encoding="utf-8")
    monkeypatch.setenv("CLIPSQUEEZE_API_PORT", "")
    # registered so monkeypatch removes what load_dotenv writes
    monkeypatch.setenv("CLIPSQUEEZE_API_HOST", "unset")
    monkeypatch.delenv("CLIPSQUEEZE_API_HOST")

    config = OptimizerConfig.from_env(env_path=env_file)

    # an explicitly empty variable falls back to the default
    assert config.api_port == 3001
    assert config.api_host == "0.0.0.0"


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError):
        OptimizerConfig(jpeg_quality=120)
    with pytest.raises(ValueError):
        OptimizerConfig(poll_interval=0)
    with pytest.raises(ValueError):
        OptimizerConfig(min_bytes=-1)


def test_overrides_ignore_unset_flags():
    config = OptimizerConfig().with_overrides(jpeg_quality=None, api_port=9000)

    assert config.jpeg_quality == 60
    assert config.api_port == 9000
