"""Base template loader: read the structural seal SVG once, verify its checksum, cache it.

The template is the checksum-guarded background every seal is composed on.
A mismatch means every seal from this process would be unreliable, so it is
fatal and never retried.

Operators shipping a new template can point at it with:

    SPORESEAL_TEMPLATE         path to the SVG
    SPORESEAL_TEMPLATE_SHA256  its expected SHA-256
"""

import hashlib
import os
import threading
from dataclasses import dataclass
from pathlib import Path

from sporeseal.errors import ConfigurationIntegrityError
from sporeseal.logging import audit, get_logger

log = get_logger("template")

TEMPLATE_DIR = Path(__file__).parent / "templates"
SEAL_BASE_SVG_PATH = TEMPLATE_DIR / "seal_base.svg"
SEAL_BASE_SVG_CHECKSUM = "fb3d8990b1a719dfa5eb94ac0849d322371863d743327ea349f128e495d08252"

ENV_TEMPLATE_PATH = "SPORESEAL_TEMPLATE"
ENV_TEMPLATE_CHECKSUM = "SPORESEAL_TEMPLATE_SHA256"


@dataclass(frozen=True)
class BaseTemplate:
    text: str
    checksum: str
    path: Path


def compute_checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class TemplateLoader:
    """Loads and validates one template file, exactly once.

    The first successful ``load()`` caches an immutable BaseTemplate; later
    calls return it without touching the disk. A failed load caches nothing,
    so the next call checks the file again.
    """

    def __init__(self, path: Path | str | None = None, checksum: str | None = None):
        self.path = Path(path or os.environ.get(ENV_TEMPLATE_PATH) or SEAL_BASE_SVG_PATH)
        self.checksum = (checksum or os.environ.get(ENV_TEMPLATE_CHECKSUM) or SEAL_BASE_SVG_CHECKSUM).lower()
        self._lock = threading.Lock()
        self._cached: BaseTemplate | None = None

    def load(self) -> BaseTemplate:
        if self._cached is not None:
            return self._cached
        with self._lock:
            if self._cached is None:
                self._cached = self._read_and_verify()
            return self._cached

    def _read_and_verify(self) -> BaseTemplate:
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            log.critical("base template unreadable: %s", self.path)
            raise ConfigurationIntegrityError(f"base template unreadable at {self.path}: {e}") from e

        actual = compute_checksum(raw)
        if actual != self.checksum:
            log.critical("base template checksum mismatch: expected %s, got %s", self.checksum, actual)
            raise ConfigurationIntegrityError(
                f"base template checksum mismatch for {self.path}: expected {self.checksum}, got {actual}"
            )

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigurationIntegrityError(f"base template is not valid UTF-8: {self.path}") from e

        audit("template.validated", logger=log, path=str(self.path), checksum=actual[:16], bytes=len(raw))
        return BaseTemplate(text=text, checksum=actual, path=self.path)


_default_loader: TemplateLoader | None = None
_default_lock = threading.Lock()


def default_loader() -> TemplateLoader:
    """The process-wide loader for the shipped (or env-configured) template."""
    global _default_loader
    with _default_lock:
        if _default_loader is None:
            _default_loader = TemplateLoader()
        return _default_loader


def load_base() -> BaseTemplate:
    """Load the validated base template through the process-wide cache.

    Raises:
        ConfigurationIntegrityError: if the template is missing or its
            SHA-256 does not match the expected checksum.
    """
    return default_loader().load()
