"""
Camera lifecycle around the external QR scanner widget.

The scanner is driven through callbacks; `camera()` turns that into a scoped
resource that is always stopped, whichever way the scan ends.
"""

import logging
import queue
from contextlib import contextmanager
from typing import Callable, NamedTuple, Protocol

from . import config
from .exceptions import CameraUnavailable

logger = logging.getLogger(__name__)

DEFAULT_CAMERA_HINT = "environment"

_CANCELLED = object()


class ScannerConfig(NamedTuple):
    fps: int = config.SCANNER_FPS
    qrbox_width: int = config.SCANNER_QRBOX_SIZE
    qrbox_height: int = config.SCANNER_QRBOX_SIZE
    aspect_ratio: float = config.SCANNER_ASPECT_RATIO

    def as_options(self):
        """Option object in the shape browser scanner widgets expect."""
        return {
            "fps": self.fps,
            "qrbox": {"width": self.qrbox_width, "height": self.qrbox_height},
            "aspectRatio": self.aspect_ratio,
        }


class Scanner(Protocol):
    def start(
        self,
        camera_hint: str,
        config: ScannerConfig,
        on_decoded: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None: ...

    def stop(self) -> None: ...


class ScanCancelled(Exception):
    """The visitor backed out of scanning."""


class ScanTimeout(ScanCancelled):
    """Nothing was decoded before the deadline."""


# PUBLIC_INTERFACE
class ScanSession:
    """Collects the scanner's callbacks; the first decoded text wins."""

    def __init__(self):
        self._results = queue.Queue()

    def on_decoded(self, text):
        self._results.put(text)

    def on_error(self, message):
        # per-frame decode misses are normal while the camera is pointed around
        logger.debug("Scan frame error: %s", message)

    def cancel(self):
        self._results.put(_CANCELLED)

    def wait(self, timeout=None) -> str:
        try:
            item = self._results.get(timeout=timeout)
        except queue.Empty:
            raise ScanTimeout(f"No QR code decoded within {timeout}s") from None
        if item is _CANCELLED:
            raise ScanCancelled("Scan cancelled")
        return item


def _stop(scanner):
    try:
        scanner.stop()
    except Exception as exc:
        logger.error("Error stopping QR scanner: %s", exc)


# PUBLIC_INTERFACE
@contextmanager
def camera(scanner, camera_hint=DEFAULT_CAMERA_HINT, scanner_config=None):
    """
    Starts `scanner` and yields a ScanSession. The scanner is stopped on
    every exit path. A scanner that fails to start raises CameraUnavailable.
    """
    session = ScanSession()
    try:
        scanner.start(camera_hint, scanner_config or ScannerConfig(), session.on_decoded, session.on_error)
    except Exception as exc:
        logger.error("Error starting QR scanner: %s", exc)
        _stop(scanner)
        raise CameraUnavailable() from exc
    try:
        yield session
    finally:
        _stop(scanner)
