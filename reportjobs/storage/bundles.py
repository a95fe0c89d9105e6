"""Export artifact storage: per-job staging directories and zip bundles."""

import logging
import os
import re
import shutil
import time
import zipfile
from dataclasses import dataclass
from typing import Collection, List, Optional

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class Bundle:
    """A zip archive assembled from a job's staged artifacts."""
    path: str
    filename: str
    size_bytes: int


def safe_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return cleaned or "file"


class BundleStore:
    """Manages export files on disk.

    Each export job owns one directory under ``base_dir``: per-report files are
    staged there while the job runs, then zipped into a single bundle. Releasing
    a job removes its whole directory.
    """

    def __init__(self, base_dir: str):
        self._base_dir = base_dir
        os.makedirs(self._base_dir, exist_ok=True)

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def get_job_dir(self, job_id: str) -> str:
        """Get or create directory for a job's files."""
        job_dir = os.path.join(self._base_dir, safe_filename(job_id))
        os.makedirs(job_dir, exist_ok=True)
        return job_dir

    def stage_artifact(self, job_id: str, filename: str, content: bytes) -> str:
        """Write one rendered report into the job's staging directory.

        Returns the stored filename, suffixed if the name is already taken.
        """
        staging = os.path.join(self.get_job_dir(job_id), "items")
        os.makedirs(staging, exist_ok=True)
        stem, ext = os.path.splitext(safe_filename(filename))
        candidate = stem + ext
        n = 2
        while os.path.exists(os.path.join(staging, candidate)):
            candidate = f"{stem}-{n}{ext}"
            n += 1
        with open(os.path.join(staging, candidate), "wb") as fh:
            fh.write(content)
        return candidate

    def assemble(self, job_id: str, artifact_refs: List[str], bundle_name: str) -> Bundle:
        """Zip the given staged artifacts into the job's bundle and drop the staging files."""
        job_dir = self.get_job_dir(job_id)
        staging = os.path.join(job_dir, "items")
        filename = safe_filename(bundle_name)
        bundle_path = os.path.join(job_dir, filename)

        with zipfile.ZipFile(bundle_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for ref in artifact_refs:
                src = os.path.join(staging, ref)
                if not os.path.isfile(src):
                    raise FileNotFoundError(f"Staged artifact missing: {ref}")
                zf.write(src, arcname=ref)

        shutil.rmtree(staging, ignore_errors=True)
        size = os.path.getsize(bundle_path)
        logger.info(f"Assembled bundle {filename} for job {job_id} ({size} bytes, {len(artifact_refs)} file(s))")
        return Bundle(path=bundle_path, filename=filename, size_bytes=size)

    def exists(self, bundle_ref: Optional[str]) -> bool:
        return bool(bundle_ref) and os.path.isfile(bundle_ref)

    def release(self, job_id: str) -> None:
        """Delete everything stored for a job. Safe to call more than once."""
        job_dir = os.path.join(self._base_dir, safe_filename(job_id))
        if os.path.isdir(job_dir):
            shutil.rmtree(job_dir, ignore_errors=True)
            logger.info(f"Released export storage for job {job_id}")

    def cleanup_orphans(self, keep: Collection[str], min_age_seconds: float = 0) -> int:
        """Remove job directories not owned by any known job. Returns count of removed dirs."""
        now = time.time()
        keep_dirs = {safe_filename(job_id) for job_id in keep}
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            job_dir = os.path.join(self._base_dir, entry)
            if not os.path.isdir(job_dir) or entry in keep_dirs:
                continue
            if now - os.path.getmtime(job_dir) < min_age_seconds:
                continue
            shutil.rmtree(job_dir, ignore_errors=True)
            removed += 1
        return removed
