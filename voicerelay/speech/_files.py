"""Scratch file helpers shared by the speech adapters."""

import logging
import os
import uuid
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger("voicerelay.speech")


def remove_quietly(path: str):
    """Delete a scratch file. Failures are logged, never raised."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove temp file {path}: {e}")


@contextmanager
def scratch_paths(temp_dir: str, *suffixes: str) -> Iterator[list[str]]:
    """Yield unique file paths in temp_dir and delete them on exit.

    Usage:
        with scratch_paths("/tmp", ".mp3", ".ogg") as (src, dst):
            ...
    """
    token = uuid.uuid4().hex
    paths = [os.path.join(temp_dir, f"relay_{token}{suffix}") for suffix in suffixes]
    try:
        yield paths
    finally:
        for path in paths:
            remove_quietly(path)
