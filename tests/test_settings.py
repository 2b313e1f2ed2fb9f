import os

import pytest

from amethyst._settings import AmethystConfig


def test_read_config(tmp_path):
    config = tmp_path / "amethyst.ini"
    config.write_text(
        "[general]\n"
        "verbosity = hint\n"
        "n_jobs = 4\n"
        "\n"
        "[plotting]\n"
        "figdir = ./plots\n"
        "file_format_figs = .PNG\n"
        "autosave = true\n"
    )
    settings = AmethystConfig().read_config(str(config))
    assert settings.verbosity == 3
    assert settings.n_jobs == 4
    assert settings.figdir == "./plots"
    assert settings.file_format_figs == "png"
    assert settings.autosave is True


def test_unknown_option(tmp_path):
    config = tmp_path / "bad.ini"
    config.write_text("[general]\ncolour = red\n")
    with pytest.raises(KeyError):
        AmethystConfig().read_config(str(config))
    with pytest.raises(FileNotFoundError):
        AmethystConfig().read_config(str(tmp_path / "missing.ini"))


def test_setters():
    settings = AmethystConfig()
    settings.verbosity = "debug"
    assert settings.verbosity == 4
    with pytest.raises(ValueError):
        settings.verbosity = "loud"
    settings.n_jobs = -1
    assert settings.n_jobs == (os.cpu_count() or 1)
    with pytest.raises(ValueError):
        settings.n_jobs = 0
    with pytest.raises(ValueError):
        settings.file_format_figs = "gif"
