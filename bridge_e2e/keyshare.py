"""
File store for the threshold keyshare of a relayer.

Keygen and resharing hold ``locked()`` for their whole run so no other TSS
process reads a half-replaced keyshare. The lock is both in-process
(``threading.RLock``) and cross-process (``portalocker``).
"""
import json
import os
import stat
import threading
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Union

import portalocker
from pydantic import ValidationError

from .exceptions import KeyshareError
from .models import Keyshare

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 10


def new_keyshare(key: Dict[str, Any], threshold: int, peers: List[str]) -> Keyshare:
    return Keyshare(key=key, threshold=threshold, peers=list(peers))


class KeyshareStore:
    """Thread-safe and process-safe keyshare file"""

    def __init__(self, path: Union[str, Path], lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self._mutex = threading.RLock()
        self._depth = 0
        self._file_lock = None

    def _get_lock_path(self) -> str:
        return str(self.path) + ".lock"

    @contextmanager
    def locked(self) -> Iterator["KeyshareStore"]:
        """
        Hold the keyshare lock for the duration of the block.

        Re-entrant: ``store`` and ``load`` called inside the block reuse the
        lock already held.

        Raises:
            KeyshareError: If another process holds the lock past the timeout
        """
        with self._mutex:
            if self._depth == 0:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                file_lock = portalocker.Lock(self._get_lock_path(), timeout=self.lock_timeout)
                try:
                    file_lock.acquire()
                except portalocker.LockException as e:
                    raise KeyshareError(f"Could not lock keyshare {self.path}: {e}") from e
                self._file_lock = file_lock
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._file_lock.release()
                    self._file_lock = None

    def store(self, keyshare: Keyshare) -> None:
        """
        Replace the stored keyshare.

        Args:
            keyshare: Keyshare produced by keygen or resharing
        """
        data = keyshare.model_dump(by_alias=True)
        with self.locked():
            try:
                with open(self.path, "w") as f:
                    json.dump(data, f)
            except OSError as e:
                raise KeyshareError(f"Error writing keyshare file {self.path}: {e}") from e
            if os.name == "posix":
                os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)  # 0600
        logger.debug(f"Stored keyshare with threshold {keyshare.threshold} at {self.path}")

    def load(self) -> Keyshare:
        """
        Read the current keyshare. Blocks while keygen or resharing holds the lock.

        Returns:
            Stored keyshare

        Raises:
            KeyshareError: If the file is missing or does not hold a keyshare
        """
        with self.locked():
            try:
                with open(self.path, "r") as f:
                    raw = json.load(f)
            except OSError as e:
                raise KeyshareError(f"Error reading keyshare file {self.path}: {e}") from e
            except json.JSONDecodeError as e:
                raise KeyshareError(f"Error decoding keyshare file {self.path}: {e}") from e

        try:
            return Keyshare.model_validate(raw)
        except ValidationError as e:
            raise KeyshareError(f"Invalid keyshare in {self.path}: {e}") from e
