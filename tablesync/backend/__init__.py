"""Development session authority."""

from .config import BackendSettings, load_settings
from .security import generate_identity, hash_password, verify_password

__all__ = [
    "BackendSettings",
    "generate_identity",
    "hash_password",
    "load_settings",
    "verify_password",
]
