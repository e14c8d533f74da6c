"""Deployment archive packaging."""

from __future__ import annotations

import hashlib
import io
import logging
import stat
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from lambdaship.core.errors import ArchiveWriteFailed, SourceBinaryUnreadable

logger = logging.getLogger(__name__)

# Custom runtimes exec a file with this name from the archive root.
BOOTSTRAP_ENTRY = "bootstrap"
ENTRY_MODE = stat.S_IFREG | 0o755
# Earliest timestamp the zip format can represent.
NORMALIZED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_UNIX_SYSTEM = 3


@dataclass(frozen=True)
class Artifact:
    data: bytes = field(repr=False)
    entry_name: str
    entry_mode: int
    path: Path | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


def package_binary(
    binary_path: Path,
    *,
    entry_name: str = BOOTSTRAP_ENTRY,
    output_path: Path | None = None,
) -> Artifact:
    """Wrap one binary into a single-entry zip archive.

    Identical binaries always produce identical archive bytes.
    """
    binary_path = Path(binary_path)
    try:
        payload = binary_path.read_bytes()
    except OSError as exc:
        raise SourceBinaryUnreadable(binary_path, exc) from exc

    info = zipfile.ZipInfo(entry_name, date_time=NORMALIZED_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.create_system = _UNIX_SYSTEM
    info.external_attr = ENTRY_MODE << 16

    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr(info, payload)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise ArchiveWriteFailed(exc) from exc
    data = buffer.getvalue()

    if output_path is not None:
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(data)
        except OSError as exc:
            raise ArchiveWriteFailed(exc) from exc
        logger.info("Wrote %s (%d bytes)", output_path, len(data))

    return Artifact(data=data, entry_name=entry_name, entry_mode=ENTRY_MODE, path=output_path)


def read_archive_entry(data: bytes) -> tuple[str, int, bytes]:
    """Return (name, mode, content) of the single entry of an archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        infos = archive.infolist()
        if len(infos) != 1:
            raise ValueError(f"expected exactly one archive entry, found {len(infos)}")
        info = infos[0]
        return info.filename, info.external_attr >> 16, archive.read(info)
