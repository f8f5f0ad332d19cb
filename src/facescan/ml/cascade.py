"""Cascade store: locate and load the Haar cascade classifier.

The classifier is loaded lazily on first use, once per thread, and kept for
the lifetime of the store. A failed load is logged once and never retried;
detection stays disabled for that store.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import cv2

from facescan.config import get_settings
from facescan.io.files import get_resource

if TYPE_CHECKING:
    from facescan.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cascade registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CascadeSpec:
    """Static metadata for a cascade file shipped with OpenCV."""

    name: str
    filename: str
    description: str


CASCADE_REGISTRY: dict[str, CascadeSpec] = {
    "frontalface_default": CascadeSpec(
        name="frontalface_default",
        filename="haarcascade_frontalface_default.xml",
        description="Frontal face, stump-based (Viola-Jones default)",
    ),
    "frontalface_alt": CascadeSpec(
        name="frontalface_alt",
        filename="haarcascade_frontalface_alt.xml",
        description="Frontal face, tree-based alternative",
    ),
    "frontalface_alt2": CascadeSpec(
        name="frontalface_alt2",
        filename="haarcascade_frontalface_alt2.xml",
        description="Frontal face, second tree-based alternative",
    ),
    "frontalface_alt_tree": CascadeSpec(
        name="frontalface_alt_tree",
        filename="haarcascade_frontalface_alt_tree.xml",
        description="Frontal face, tree of stage classifiers",
    ),
    "profileface": CascadeSpec(
        name="profileface",
        filename="haarcascade_profileface.xml",
        description="Profile face",
    ),
}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CascadeStore:
    """Loads the configured cascade and hands out one classifier per thread.

    ``detectMultiScale`` mutates the classifier's working buffers, so threads
    must not share an instance. The first load decides availability for all
    threads; every other thread loads its own copy from the same file.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._spec = self._get_spec(settings.cascade_model)

        self._lock = threading.Lock()
        self._local = threading.local()
        self._attempted = False
        self._path: Path | None = None
        self._load_error: str | None = None

    # -- Public API ---------------------------------------------------------

    def get(self) -> cv2.CascadeClassifier | None:
        """Return the calling thread's classifier, loading it on first use."""
        cascade: cv2.CascadeClassifier | None = getattr(self._local, "cascade", None)
        if cascade is not None:
            return cascade

        with self._lock:
            if not self._attempted:
                self._attempted = True
                cascade = self._load()
            elif self._path is not None:
                cascade = cv2.CascadeClassifier(str(self._path))
            else:
                return None

        self._local.cascade = cascade
        return cascade

    @property
    def load_error(self) -> str | None:
        """Why loading failed, or ``None`` if it succeeded or was not tried yet."""
        with self._lock:
            return self._load_error

    def resolve_path(self) -> Path:
        """Return the cascade file to load.

        A configured ``cascade_path`` wins; relative paths that don't exist
        are also looked up among the cascades OpenCV ships. Otherwise the
        registry file from OpenCV's data directory is used.
        """
        haarcascades = Path(cv2.data.haarcascades)
        configured = self._settings.cascade_path
        if configured is not None:
            return get_resource(configured, roots=[haarcascades], warn=False) or configured
        return haarcascades / self._spec.filename

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> CascadeSpec:
        try:
            return CASCADE_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown cascade model: {model_name}") from None

    def _load(self) -> cv2.CascadeClassifier | None:
        path = self.resolve_path()
        if not path.is_file():
            return self._fail("Can't load face cascade file since it doesn't exist: %s", path)

        try:
            cascade = cv2.CascadeClassifier(str(path))
        except Exception as exc:  # noqa: BLE001
            return self._fail("Can't parse face cascade file %s: %s", path, exc)

        if cascade.empty():
            return self._fail("Face cascade file %s contains no classifier", path)

        self._path = path
        logger.info("Loaded face cascade %s from %s", self._spec.name, path)
        return cascade

    def _fail(self, msg: str, *args: object) -> None:
        self._load_error = msg % args
        logger.warning(msg, *args)


@functools.lru_cache(maxsize=1)
def shared_cascade_store() -> CascadeStore:
    """Return the process-wide cascade store built from the environment settings."""
    return CascadeStore(get_settings())
