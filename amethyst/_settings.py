#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
global settings for amethyst

"""
import os
import configparser


class AmethystConfig:
    """Config manager for amethyst.

    Values can be changed directly (``amethyst.settings.verbosity = 3``) or
    read from an INI file with :meth:`read_config`::

        [general]
        verbosity = 3
        n_jobs = 8

        [plotting]
        figdir = ./figures
        file_format_figs = png
        autosave = true
    """

    def __init__(
        self,
        verbosity=2,
        n_jobs=1,
        figdir="./figures/",
        file_format_figs="pdf",
        autosave=False,
        autoshow=True,
        plot_prefix="",
        plot_suffix="",
    ):
        self.verbosity = verbosity
        self.n_jobs = n_jobs
        self.figdir = figdir
        self.file_format_figs = file_format_figs
        self.autosave = autosave
        self.autoshow = autoshow
        self.plot_prefix = plot_prefix
        self.plot_suffix = plot_suffix
        self._low_resolution_warning = True
        self._start = None
        self._previous_time = None

    @property
    def verbosity(self):
        """Verbosity level (0=errors, 1=warnings, 2=info, 3=hints, 4=debug)."""
        return self._verbosity

    @verbosity.setter
    def verbosity(self, level):
        levels = {"error": 0, "warn": 1, "info": 2, "hint": 3, "debug": 4}
        if isinstance(level, str):
            if level not in levels:
                raise ValueError(f"verbosity must be one of {list(levels)}, got {level!r}")
            level = levels[level]
        if not isinstance(level, int) or level < 0:
            raise ValueError(f"verbosity must be a non-negative integer, got {level!r}")
        self._verbosity = level

    @property
    def n_jobs(self):
        """Default number of worker processes."""
        return self._n_jobs

    @n_jobs.setter
    def n_jobs(self, n):
        if n == -1:
            n = os.cpu_count() or 1
        if int(n) < 1:
            raise ValueError(f"n_jobs must be >= 1 or -1, got {n}")
        self._n_jobs = int(n)

    @property
    def file_format_figs(self):
        return self._file_format_figs

    @file_format_figs.setter
    def file_format_figs(self, fmt):
        fmt = fmt.lstrip(".").lower()
        if fmt not in ("pdf", "png", "svg", "jpg"):
            raise ValueError(f"unsupported figure format {fmt!r}")
        self._file_format_figs = fmt

    def read_config(self, config_file):
        """Update settings from an INI file. Unknown options raise ``KeyError``."""
        if not os.path.exists(config_file):
            raise FileNotFoundError(f"config file {config_file} does not exist")
        config = configparser.ConfigParser()
        config.read(config_file)
        if config.has_section("general"):
            general = config["general"]
            for key in general:
                if key == "verbosity":
                    value = general.get(key)
                    self.verbosity = int(value) if value.isdigit() else value
                elif key == "n_jobs":
                    self.n_jobs = general.getint(key)
                else:
                    raise KeyError(f"unknown option '{key}' in section [general]")
        if config.has_section("plotting"):
            plotting = config["plotting"]
            for key in plotting:
                if key in ("autosave", "autoshow"):
                    setattr(self, key, plotting.getboolean(key))
                elif key in ("figdir", "file_format_figs", "plot_prefix", "plot_suffix"):
                    setattr(self, key, plotting.get(key))
                else:
                    raise KeyError(f"unknown option '{key}' in section [plotting]")
        return self

    def __repr__(self):
        fields = ["verbosity", "n_jobs", "figdir", "file_format_figs", "autosave", "autoshow"]
        return "AmethystConfig(" + ", ".join(f"{f}={getattr(self, f)!r}" for f in fields) + ")"


settings = AmethystConfig()
