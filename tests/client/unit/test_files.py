import pytest

from tablesync.client.errors import InputValidationError
from tablesync.client.files import MAX_FILE_SIZE, MAX_IMAGE_SIZE, validate_upload


def test_validate_upload_normalises_name_and_type() -> None:
    upload = validate_upload(b"data", "  rules.pdf ", " Application/PDF ")

    assert upload.filename == "rules.pdf"
    assert upload.type_tag == "application/pdf"
    assert upload.image is False


@pytest.mark.parametrize(
    ("data", "filename", "type_tag", "image", "message"),
    [
        (b"data", " ", "text/plain", False, "File name is required"),
        (b"", "a.txt", "text/plain", False, "File is empty"),
        (b"data", "a.gif", "image/gif", True, "Only PNG and JPG images are allowed"),
        (b"x" * (MAX_IMAGE_SIZE + 1), "a.png", "image/png", True, "Image must be less than 5MB"),
        (b"x" * (MAX_FILE_SIZE + 1), "a.bin", "application/octet-stream", False, "File must be less than 10MB"),
    ],
)
def test_validate_upload_rejects_invalid_files(
    data: bytes, filename: str, type_tag: str, image: bool, message: str
) -> None:
    with pytest.raises(InputValidationError) as excinfo:
        validate_upload(data, filename, type_tag, image=image)

    assert str(excinfo.value) == message
