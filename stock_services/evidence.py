"""
FileSystemEvidenceStore -- content-addressed storage for delivery photos.

Responsibility:
    Implements the EvidenceStore port.  The kernel only ever sees the
    returned reference string; the binary stays on disk.

Layout:
    <root>/<first two hex chars>/<sha256 hex>

    The reference is ``sha256:<hex>``.  Storing the same bytes twice
    returns the same reference and writes nothing the second time.

Failure modes:
    - ValidationError: payload is not bytes or is empty.
    - OSError: the directory is not writable (propagates).
    - KeyError: ``load`` of a reference that was never stored.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.utils.hashing import hash_bytes

logger = get_logger("services.evidence")

REF_PREFIX = "sha256:"


class FileSystemEvidenceStore:
    """Write-once, content-addressed file store."""

    def __init__(self, root: Path | str):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def reference_for(self, payload: bytes) -> str:
        return REF_PREFIX + self._payload_digest(payload)

    def store(self, payload: bytes) -> str:
        digest = self._payload_digest(payload)
        path = self._path(digest)
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file in the same directory, then rename
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            logger.info(
                "evidence_stored",
                extra={"evidence_ref": REF_PREFIX + digest, "size": len(payload)},
            )
        return REF_PREFIX + digest

    def load(self, ref: str) -> bytes:
        path = self._path(self._digest(ref))
        if not path.exists():
            raise KeyError(ref)
        return path.read_bytes()

    def exists(self, ref: str) -> bool:
        return self._path(self._digest(ref)).exists()

    def _payload_digest(self, payload) -> str:
        if not isinstance(payload, (bytes, bytearray)):
            raise ValidationError("payload", "evidence must be bytes")
        if not payload:
            raise ValidationError("payload", "evidence is empty")
        return hash_bytes(bytes(payload))

    def _digest(self, ref: str) -> str:
        if not ref.startswith(REF_PREFIX):
            raise ValidationError("evidence_ref", f"not a store reference: {ref!r}")
        digest = ref[len(REF_PREFIX):]
        if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
            raise ValidationError("evidence_ref", f"malformed digest in {ref!r}")
        return digest

    def _path(self, digest: str) -> Path:
        return self._root / digest[:2] / digest
