# Overview: Receipt image storage behind a small upload interface.

from __future__ import annotations

import os
import secrets
import time
from typing import BinaryIO

from flask import current_app
from werkzeug.utils import secure_filename


RECEIPT_PREFIX = "screenshots"


class BlobUploadError(RuntimeError):
    """The receipt could not be stored; the submission must fail."""


class UnsupportedReceiptError(BlobUploadError):
    """Rejected before any I/O (bad name or extension)."""


class BlobStore:
    """Store a blob and return a URL anyone can dereference."""

    def upload(self, stream: BinaryIO, filename: str, content_type: str | None = None) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """
    Files under <root>/screenshots/<millis>_<8 hex>_<name>, served by GET /uploads/<path>.
    """

    def __init__(self, root: str, *, base_url: str = "", allowed_extensions=None):
        self.root = root
        self.base_url = base_url.rstrip("/")
        self.allowed_extensions = {ext.lower() for ext in (allowed_extensions or ())}

    def _check_name(self, filename: str) -> str:
        safe = secure_filename(filename or "")
        if not safe or "." not in safe:
            raise UnsupportedReceiptError("receipt file name is missing an extension")
        ext = safe.rsplit(".", 1)[1].lower()
        if self.allowed_extensions and ext not in self.allowed_extensions:
            raise UnsupportedReceiptError(
                f"receipt type '.{ext}' not allowed. Allowed: {', '.join(sorted(self.allowed_extensions))}"
            )
        return safe

    def upload(self, stream, filename, content_type=None):
        safe = self._check_name(filename)
        relative = f"{RECEIPT_PREFIX}/{int(time.time() * 1000)}_{secrets.token_hex(4)}_{safe}"
        target = os.path.join(self.root, *relative.split("/"))

        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as fh:
                while True:
                    chunk = stream.read(64 * 1024)
                    if not chunk:
                        break
                    fh.write(chunk)
        except OSError as exc:
            raise BlobUploadError(f"could not store receipt: {exc}") from exc

        return f"{self.base_url}/uploads/{relative}"


def get_blob_store() -> BlobStore:
    config = current_app.config
    return LocalBlobStore(
        config["UPLOAD_FOLDER"],
        base_url=config.get("PUBLIC_BASE_URL", ""),
        allowed_extensions=config.get("ALLOWED_RECEIPT_EXTENSIONS"),
    )
