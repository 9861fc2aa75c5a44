"""Validation of files attached to documents before they are uploaded."""

from __future__ import annotations

from dataclasses import dataclass

from tablesync.client.errors import InputValidationError


ALLOWED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/jpg")
MAX_IMAGE_SIZE = 5 * 1024 * 1024
MAX_FILE_SIZE = 10 * 1024 * 1024


@dataclass(frozen=True)
class UploadRequest:
    data: bytes
    filename: str
    type_tag: str
    image: bool


def validate_upload(data: bytes, filename: str, type_tag: str, image: bool = False) -> UploadRequest:
    name = filename.strip()
    if not name:
        raise InputValidationError("File name is required")
    if not data:
        raise InputValidationError("File is empty")
    tag = type_tag.strip().lower() or "application/octet-stream"
    if image:
        if tag not in ALLOWED_IMAGE_TYPES:
            raise InputValidationError("Only PNG and JPG images are allowed")
        if len(data) > MAX_IMAGE_SIZE:
            raise InputValidationError("Image must be less than 5MB")
    elif len(data) > MAX_FILE_SIZE:
        raise InputValidationError("File must be less than 10MB")
    return UploadRequest(data=bytes(data), filename=name, type_tag=tag, image=image)
