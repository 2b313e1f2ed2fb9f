#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
single cell DNA methylation analysis

"""
from ._settings import settings
from . import logging
from . import io
from . import get
from . import preprocessing as pp
from . import tools as tl
from . import plotting as pl

__version__ = "0.1.0"

__all__ = ["settings", "logging", "io", "get", "pp", "tl", "pl"]
