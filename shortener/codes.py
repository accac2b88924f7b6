"""Short code generation and allocation."""

import logging
import random
import string
import threading
import time
from typing import Callable, Optional

from shortener.errors import CodeSpaceExhausted, DeadlineExceeded, DuplicateCodeError, StorageError
from shortener.store import Deadline, UrlStore

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
CODE_LENGTH = 6
MAX_ATTEMPTS = 10


class CodeGenerator:
    """Random short codes drawn uniformly from ALPHABET.

    Args:
        rng: Random source; seeded from the current time when omitted
        length: Characters per code
    """

    def __init__(self, rng: Optional[random.Random] = None, length: int = CODE_LENGTH):
        self.rng = rng if rng is not None else random.Random(time.time_ns())
        self.length = length
        self.lock = threading.Lock()

    def __call__(self) -> str:
        with self.lock:
            return "".join(self.rng.choice(ALPHABET) for _ in range(self.length))


def build_short_url(base: str, code: str) -> str:
    """Prefix a code with the public base URL.

    Codes only ever contain ALPHABET symbols, so they are appended without
    escaping; anything else is rejected.
    """
    if not code or any(ch not in ALPHABET for ch in code):
        raise ValueError(f"invalid short code: {code!r}")
    return f"{base}{code}"


class ShortCodeAllocator:
    """Finds an unused code and stores it together with its long URL.

    The existence check only keeps collisions rare; the UNIQUE constraint in
    the store is what guarantees uniqueness.

    Args:
        store: Where mappings live
        generate: Zero-argument callable returning a candidate code
        max_attempts: Candidates tried before giving up
        retry_on_conflict: Regenerate once when the insert loses a race
    """

    def __init__(
        self,
        store: UrlStore,
        generate: Callable[[], str],
        max_attempts: int = MAX_ATTEMPTS,
        retry_on_conflict: bool = True,
    ):
        self.store = store
        self.generate = generate
        self.max_attempts = max_attempts
        self.retry_on_conflict = retry_on_conflict

    def _is_taken(self, code: str, deadline: Deadline) -> bool:
        try:
            return self.store.code_exists(code, deadline)
        except DeadlineExceeded:
            raise
        except StorageError as exc:
            # Unknown means taken: better another candidate than a duplicate.
            logger.warning(f"Error checking short code existence for {code}: {exc}")
            return True

    def _find_free_code(self, deadline: Deadline, attempts: int) -> str:
        for _ in range(attempts):
            code = self.generate()
            if not self._is_taken(code, deadline):
                return code
        raise CodeSpaceExhausted(f"no unique short code after {attempts} attempts")

    def allocate(self, long_url: str, deadline: Deadline) -> str:
        """Allocate a code for long_url and persist the mapping.

        Returns:
            The stored short code

        Raises:
            CodeSpaceExhausted: every candidate collided; nothing was written
            StorageError: the insert failed (DuplicateCodeError and
                DeadlineExceeded included)
        """
        try:
            code = self._find_free_code(deadline, self.max_attempts)
        except CodeSpaceExhausted:
            logger.error(f"Failed to generate a unique short code after {self.max_attempts} attempts")
            raise

        try:
            self.store.insert(code, long_url, deadline)
        except DuplicateCodeError:
            if not self.retry_on_conflict:
                raise
            logger.warning(f"Short code {code} was taken concurrently, regenerating once")
            code = self._find_free_code(deadline, 1)
            self.store.insert(code, long_url, deadline)

        logger.info(f"Created short code {code}")
        return code
