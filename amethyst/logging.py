#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
Logging and profiling

"""
import os
from datetime import datetime

import click
import psutil

from ._settings import settings

_COLORS = {0: "red", 1: "yellow", 2: None, 3: "blue", 4: "cyan"}


def echo(*args, **kwargs):
    click.echo(*args, **kwargs, err=True)
    return


def secho(*args, **kwargs):
    click.secho(*args, **kwargs, err=True)
    return


def _sec_to_str(t):
    """Format time in seconds, e.g. 0:00:07."""
    from functools import reduce

    return "%d:%02d:%02d" % reduce(
        lambda ll, b: divmod(ll[0], b) + ll[1:], [(t,), 60, 60]
    )


def get_passed_time():
    now = datetime.now()
    elapsed = now - settings._previous_time if settings._previous_time else now - now
    settings._previous_time = now
    return elapsed.total_seconds()


def get_memory_usage():
    """Resident memory of the current process in MB."""
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / (1024 ** 2)


def msg(*msg, v=None, time=False, memory=False, reset=False, end="\n"):
    """Write message to the terminal.

    Parameters
    ----------
    v
        Verbosity level at which the message is shown (0 error ... 4 debug).
    time
        Append the time passed since the last timed message.
    memory
        Append the current memory usage.
    reset
        Reset the timer.
    """
    v = 4 if v is None else v
    if reset:
        settings._previous_time = datetime.now()
    if v > settings.verbosity:
        return
    text = " ".join(str(m) for m in msg)
    if time:
        text += f" ({_sec_to_str(get_passed_time())})"
    if memory:
        text += f" [{get_memory_usage():.1f} MB]"
    secho(text, fg=_COLORS.get(v), nl=(end == "\n"))


def error(*args, **kwargs):
    args = ("Error:",) + args
    msg(*args, v=0, **kwargs)


def warn(*args, **kwargs):
    args = ("WARNING:",) + args
    msg(*args, v=1, **kwargs)


warning = warn


def info(*args, **kwargs):
    msg(*args, v=2, **kwargs)


def hint(*args, **kwargs):
    msg(*args, v=3, **kwargs)


def debug(*args, **kwargs):
    msg(*args, v=4, **kwargs)
