"""
HTTP fetch — signing keys and release archives.

Plain ``urllib``; every failure is mapped onto the error taxonomy:
timeouts, DNS and connection failures and 5xx answers are
``NetworkError`` (retryable), 4xx answers are ``FatalError``.
"""

from __future__ import annotations

import logging
import shutil
import socket
import urllib.error
import urllib.request
from pathlib import Path

from provisioner import __version__
from provisioner.core.errors import FatalError, NetworkError

logger = logging.getLogger(__name__)

_USER_AGENT = f"provisioner/{__version__}"


def _open(url: str, timeout: float):
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        return urllib.request.urlopen(req, timeout=timeout)
    except urllib.error.HTTPError as e:
        if e.code >= 500:
            raise NetworkError(f"{url}: HTTP {e.code}") from e
        raise FatalError(f"{url}: HTTP {e.code}") from e
    except urllib.error.URLError as e:
        raise NetworkError(f"{url}: {e.reason}") from e
    except (socket.timeout, TimeoutError) as e:
        raise NetworkError(f"{url}: timed out after {timeout}s") from e
    except OSError as e:
        raise NetworkError(f"{url}: {e}") from e


def fetch_bytes(url: str, timeout: float = 60.0) -> bytes:
    """Fetch a small resource (e.g. a signing key) into memory."""
    logger.info("Fetching %s", url)
    with _open(url, timeout) as resp:
        try:
            return resp.read()
        except (socket.timeout, TimeoutError, OSError) as e:
            raise NetworkError(f"{url}: read failed: {e}") from e


def download(url: str, dest: Path, timeout: float = 300.0) -> Path:
    """Stream ``url`` to ``dest``."""
    logger.info("Downloading %s", url)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with _open(url, timeout) as resp:
        try:
            with open(dest, "wb") as f:
                shutil.copyfileobj(resp, f)
        except (socket.timeout, TimeoutError) as e:
            raise NetworkError(f"{url}: download timed out") from e
        except OSError as e:
            raise NetworkError(f"{url}: download failed: {e}") from e
    return dest
