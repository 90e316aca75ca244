"""
Download and checksum verification.

Plain HTTP(S) fetches of package artifacts, release tarballs and the
uv bootstrap script.  A failed fetch (including any HTTP error status)
raises DownloadError; partial files never survive.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import urllib.error
import urllib.request
from pathlib import Path

from provisioner.core.errors import DownloadError

logger = logging.getLogger(__name__)

_USER_AGENT = "posit-provisioner/1.0"
_CHUNK = 64 * 1024


def _fmt_size(n: int | float) -> str:
    """Human-readable byte count."""
    for unit in ("B", "KB", "MB", "GB"):
        if abs(n) < 1024:
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def download(url: str, dest: Path, *, timeout: float | None = None) -> Path:
    """Fetch ``url`` into ``dest``, replacing any existing file.

    The body is streamed to ``<dest>.part`` and renamed into place only
    after the transfer completes.

    Args:
        url: Source URL.
        dest: Destination file path (parent directories are created).
        timeout: Socket timeout in seconds; None waits indefinitely.

    Returns:
        ``dest``.

    Raises:
        DownloadError: On any HTTP or network failure.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")

    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp, open(partial, "wb") as f:
            size = 0
            while True:
                chunk = resp.read(_CHUNK)
                if not chunk:
                    break
                f.write(chunk)
                size += len(chunk)
    except urllib.error.HTTPError as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Download failed: HTTP {e.code} for {url}") from e
    except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Download failed for {url}: {e}") from e

    partial.replace(dest)
    logger.debug("Downloaded %s (%s) → %s", url, _fmt_size(size), dest)
    return dest


def sha256_file(path: Path) -> str:
    """Hex SHA-256 digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_sha256(path: Path, expected: str) -> None:
    """Raise DownloadError if ``path`` does not hash to ``expected``.

    ``expected`` may be a bare hex digest or ``sha256:<hex>``.
    """
    expected_hex = expected.split(":", 1)[1] if ":" in expected else expected
    actual = sha256_file(path)
    if actual.lower() != expected_hex.lower():
        path.unlink(missing_ok=True)
        raise DownloadError(
            f"Checksum mismatch for {path.name}: expected {expected_hex}, got {actual}"
        )
