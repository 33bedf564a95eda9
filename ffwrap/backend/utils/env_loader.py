"""Environment variable loading utilities."""

from __future__ import annotations

import os

ENV_PREFIX = "FFWRAP_"


def load_project_env() -> dict[str, str]:
    """Load ffwrap settings from the process environment.

    Variables may be given with or without the ``FFWRAP_`` prefix; the
    prefixed form wins when both are present.

    Returns:
        A dictionary of setting names (prefix stripped) to raw string values.
    """
    env = dict(os.environ)
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            env[key[len(ENV_PREFIX) :]] = value
    return env
