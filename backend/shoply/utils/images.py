"""Helpers for validating and storing uploaded product images."""

from __future__ import annotations

import io
from pathlib import Path
from uuid import uuid4

from fastapi import HTTPException
from PIL import Image


def validate_upload_filename(filename: str) -> None:
    if not filename or len(filename) > 200:
        raise HTTPException(status_code=400, detail="invalid filename")
    if "/" in filename or "\\" in filename:
        raise HTTPException(status_code=400, detail="invalid filename path")


def ensure_image(payload: bytes) -> None:
    """Reject payloads that Pillow cannot identify as an image (HTTP 415)."""
    try:
        Image.open(io.BytesIO(payload)).verify()
    except Exception:
        raise HTTPException(status_code=415, detail="unsupported file content; expected an image")


def upload_image(directory: str, payload: bytes, filename: str) -> str:
    """Write `payload` under `directory` with a random name and return that name.

    The uploaded file's extension is kept so static serving picks the right
    content type; the directory is created on first use.
    """
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)
    stored_name = f"{uuid4()}{Path(filename).suffix.lower()}"
    (root / stored_name).write_bytes(payload)
    return stored_name
