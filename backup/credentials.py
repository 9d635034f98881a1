"""Hand secrets to a child process through a short-lived private file."""
from __future__ import annotations

import contextlib
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterator, Optional

from .errors import CredentialFileError

LOGGER = logging.getLogger("dbkeeper.backup")

CREDENTIAL_PREFIX = "dbkeeper_db_backup_conf_"


def write_credential_file(contents: str, *, directory: Optional[Path] = None) -> Path:
    """Create an owner-read-only file holding ``contents``.

    The mode is dropped to 0400 right after creation and before the secret
    is written; the open descriptor stays writable.
    """

    try:
        fd, name = tempfile.mkstemp(prefix=CREDENTIAL_PREFIX, dir=str(directory) if directory else None)
    except OSError as exc:
        raise CredentialFileError(f"unable to create credential file: {exc}") from exc
    path = Path(name)
    try:
        os.chmod(path, stat.S_IRUSR)
    except OSError as exc:
        os.close(fd)
        path.unlink(missing_ok=True)
        raise CredentialFileError(f"unable to restrict credential file {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(contents)
    except OSError as exc:
        path.unlink(missing_ok=True)
        raise CredentialFileError(f"unable to write credential file {path}: {exc}") from exc
    return path


@contextlib.contextmanager
def credential_file(contents: str, *, directory: Optional[Path] = None) -> Iterator[Optional[Path]]:
    """Yield a credential file path, or ``None`` if it could not be created.

    The file is removed on every exit path.
    """

    try:
        path: Optional[Path] = write_credential_file(contents, directory=directory)
    except CredentialFileError as exc:
        LOGGER.warning("%s", exc)
        path = None
    try:
        yield path
    finally:
        if path is not None:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.error("Unable to remove credential file %s: %s", path, exc)


__all__ = ["CREDENTIAL_PREFIX", "credential_file", "write_credential_file"]
