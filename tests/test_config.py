import pytest
from pydantic import ValidationError

from pam.config import PamSettings, cli_overrides_from_args
from pam.merger import options_from_settings
from pam.models import OutputFormat


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("PAM_BITRATE", "PAM_OUTPUT_FORMAT", "PAM_AUTO_FIX", "PAM_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path, text):
    p = tmp_path / "config.toml"
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_when_file_missing(tmp_path):
    cfg = PamSettings.load(config_path=tmp_path / "missing.toml")
    assert cfg.output_format == "MP3"
    assert cfg.bitrate == "64k"
    assert cfg.auto_fix is False
    assert cfg.probe_timeout == 5.0


def test_file_then_env_then_cli(tmp_path, monkeypatch):
    path = _write(tmp_path, 'bitrate = "96k"\noutput_format = "m4b"\nauto_fix = true\n')
    cfg = PamSettings.load(config_path=path)
    assert (cfg.bitrate, cfg.output_format, cfg.auto_fix) == ("96k", "M4B", True)

    monkeypatch.setenv("PAM_BITRATE", "128k")
    cfg = PamSettings.load(config_path=path)
    assert cfg.bitrate == "128k"
    assert cfg.output_format == "M4B"

    cfg = PamSettings.load(config_path=path, overrides={"bitrate": "192k", "output_format": None})
    assert cfg.bitrate == "192k"
    assert cfg.output_format == "M4B"
    assert cfg.config_path == path


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        PamSettings(output_format="WAV")
    with pytest.raises(ValidationError):
        PamSettings(fast_path_share=100.0)


def test_write_round_trip(tmp_path):
    cfg = PamSettings(bitrate="80k", output_format="M4B")
    target = cfg.write(tmp_path / "nested" / "config.toml")
    text = target.read_text(encoding="utf-8")
    assert 'bitrate = "80k"' in text
    assert "config_path" not in text
    assert "ffmpeg_path" not in text
    again = PamSettings.load(config_path=target)
    assert (again.bitrate, again.output_format) == ("80k", "M4B")


def test_cli_overrides_pick_known_keys():
    class Args:
        bitrate = "64k"
        auto_fix = None
        files = ["a.mp3"]

    assert cli_overrides_from_args(Args()) == {"bitrate": "64k", "auto_fix": None}


def test_options_from_settings():
    opts = options_from_settings(PamSettings(output_format="m4b", bitrate="48k", use_custom_bitrate=True))
    assert opts.output_format is OutputFormat.M4B
    assert (opts.bitrate, opts.use_custom_bitrate, opts.auto_fix) == ("48k", True, False)
