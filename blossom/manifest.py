"""Persisted build manifest for incremental builds.

The manifest lives outside the output directory and records, for the last
successful build, each document's content hash, the site-version fingerprint
and the explicit records for derived images (responsive variants and Open
Graph cards).

Reuse rules always fail toward rebuilding: a missing or unreadable manifest
means a full build, and any mismatch means regeneration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .utils import hash_paths, hash_text, write_atomic

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 2
PACKAGE_DIR = Path(__file__).resolve().parent


@dataclass
class Manifest:
    """State carried between builds.

    Attributes:
        site_version: Fingerprint of generator code, templates, rendering
            configuration and asset bundle.
        documents: Slug to content hash at the last successful build.
        images: Source key to responsive-variant record.
        og: Slug to Open Graph card fingerprint.
        generated_at: When the manifest was written (ISO 8601, UTC).
    """

    site_version: str = ""
    documents: dict[str, str] = field(default_factory=dict)
    images: dict[str, dict[str, Any]] = field(default_factory=dict)
    og: dict[str, str] = field(default_factory=dict)
    generated_at: str = ""

    @classmethod
    def load(cls, path: Path) -> Manifest | None:
        """Read a manifest.

        Returns:
            The manifest, or None when it is absent or cannot be trusted.
        """
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable manifest %s (%s); doing a full build", path, exc)
            return None
        if not isinstance(payload, dict) or payload.get("version") != MANIFEST_VERSION:
            logger.warning("Ignoring manifest %s with unknown format; doing a full build", path)
            return None
        documents = payload.get("documents")
        if not isinstance(documents, dict):
            return None
        return cls(
            site_version=str(payload.get("siteVersion", "")),
            documents={str(k): str(v) for k, v in documents.items()},
            images=_dict_or_empty(payload.get("images")),
            og={str(k): str(v) for k, v in _dict_or_empty(payload.get("og")).items()},
            generated_at=str(payload.get("generatedAt", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "generatedAt": self.generated_at,
            "siteVersion": self.site_version,
            "documents": dict(sorted(self.documents.items())),
            "images": dict(sorted(self.images.items())),
            "og": dict(sorted(self.og.items())),
        }

    def save(self, path: Path) -> None:
        """Write the manifest atomically, stamping ``generated_at``."""
        self.generated_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        write_atomic(path, json.dumps(self.to_dict(), indent=2, ensure_ascii=True) + "\n")


def can_reuse(
    manifest: Manifest | None,
    site_changed: bool,
    slug: str,
    content_hash: str,
    output_file: Path,
) -> bool:
    """Decide whether a document's previous output page can be kept.

    True only when a manifest exists, the site version is unchanged, the
    recorded hash matches and the page is still on disk.
    """
    return (
        manifest is not None
        and not site_changed
        and manifest.documents.get(slug) == content_hash
        and output_file.is_file()
    )


def generator_sources() -> list[Path]:
    """Files whose content defines the generator's behaviour."""
    files = [p for p in PACKAGE_DIR.rglob("*.py") if "__pycache__" not in p.parts]
    templates = PACKAGE_DIR / "templates"
    if templates.is_dir():
        files.extend(p for p in templates.rglob("*") if p.is_file())
    return files


def compute_site_version(rendering_inputs: dict[str, Any], asset_fingerprint: str) -> str:
    """Fingerprint everything that shapes every page.

    Args:
        rendering_inputs: Configuration values that affect output.
        asset_fingerprint: Fingerprint of the current asset bundle.

    Returns:
        Hex digest; any change invalidates all cached pages.
    """
    code = hash_paths(generator_sources(), base=PACKAGE_DIR)
    config = json.dumps(rendering_inputs, sort_keys=True, default=str)
    return hash_text("\n".join([code, config, asset_fingerprint]))


def _dict_or_empty(value: Any) -> dict:
    return value if isinstance(value, dict) else {}
