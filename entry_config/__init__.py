"""
entry_config -- single public entrypoint for document profiles.

Responsibility:
    Provides the ONLY way to obtain a document-kind profile at runtime,
    through ``get_profile()``.  Services never read profile files
    directly.

Architecture position:
    Configuration -- sits above ``entry_kernel`` / ``entry_engines`` and
    below ``entry_services``.  The kernel and engines MUST NEVER import
    from ``entry_config``.

Invariants enforced:
    - Single entrypoint: all runtime profiles flow through ``get_profile()``.
    - Profiles are validated on load and cached per (kind, directory).

Failure modes:
    - ``UnknownDocumentKindError`` -- no profile file for the kind.
    - ``InvalidProfileError`` -- structural validation failures, or a
      file whose ``kind`` does not match its name.

Audit relevance:
    Every ``get_profile()`` call emits an ``ENTRY_CONFIG_TRACE`` record
    carrying the profile checksum, tying entry behaviour to the exact
    profile version that governed it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from entry_config.loader import compute_checksum, load_profile_file, parse_profile
from entry_config.schema import DocumentProfile, PriceBasis
from entry_kernel.domain.types import DocumentKind
from entry_kernel.exceptions import InvalidProfileError, UnknownDocumentKindError

_logger = logging.getLogger("entry_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "profiles"

_cache: dict[tuple[str, Path], DocumentProfile] = {}
_cache_lock = threading.Lock()


def get_profile(
    kind: DocumentKind | str,
    config_dir: Path | None = None,
) -> DocumentProfile:
    """
    The ONLY public profile entrypoint.

    Args:
        kind: Document kind, as enum or its string value.
        config_dir: Override directory holding ``<kind>.yaml`` files.
            Defaults to entry_config/profiles/.

    Raises:
        UnknownDocumentKindError: If the kind is unknown or has no file.
        InvalidProfileError: If the file fails validation.
    """
    kind_value = kind.value if isinstance(kind, DocumentKind) else str(kind)
    directory = (config_dir or _DEFAULT_CONFIG_DIR).resolve()

    with _cache_lock:
        profile = _cache.get((kind_value, directory))
    if profile is None:
        path = directory / f"{kind_value}.yaml"
        if not path.is_file():
            raise UnknownDocumentKindError(kind_value)
        profile = load_profile_file(path)
        if profile.kind.value != kind_value:
            raise InvalidProfileError(
                str(path), [f"kind: file declares {profile.kind.value!r}"]
            )
        with _cache_lock:
            _cache[(kind_value, directory)] = profile

    _logger.info(
        "ENTRY_CONFIG_TRACE",
        extra={
            "trace_type": "ENTRY_CONFIG_TRACE",
            "document_kind": profile.kind.value,
            "checksum": profile.checksum,
            "config_dir": str(directory),
            "commit_checks": list(profile.commit_checks),
        },
    )
    return profile


def clear_profile_cache() -> None:
    """Forget cached profiles. FOR TESTING ONLY."""
    with _cache_lock:
        _cache.clear()


__all__ = [
    "DocumentProfile",
    "PriceBasis",
    "clear_profile_cache",
    "compute_checksum",
    "get_profile",
    "parse_profile",
]
