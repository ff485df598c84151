"""
Encryption of partner secrets at rest.

Handles cross-database encryption (PostgreSQL pgcrypto, SQLite plaintext for testing).
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import get_config
from ..exceptions import BaseError, ErrorCode


def _key_for(data_source_id: str, key_suffix: str) -> str:
    encryption_key = get_config().security.encryption_key
    if not encryption_key:
        raise BaseError(
            "No encryption key configured for secrets at rest",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            data_source_id=data_source_id,
        )
    return f"{encryption_key}_{data_source_id}_{key_suffix}"


def encrypt_value(session: Session, value: str, data_source_id: str, key_suffix: str = "") -> bytes:
    """
    Encrypt a value using database-specific encryption.

    Args:
        session: Database session
        value: Value to encrypt
        data_source_id: Data source the value belongs to, used for key isolation
        key_suffix: Additional key suffix for different data types

    Returns:
        Encrypted bytes
    """
    if session.bind.dialect.name == "postgresql":
        return session.execute(
            text("SELECT pgp_sym_encrypt(:data, :key)"),
            {"data": value, "key": _key_for(data_source_id, key_suffix)},
        ).scalar()
    # SQLite for testing - return as-is
    return value.encode() if isinstance(value, str) else value


def decrypt_value(
    session: Session, encrypted_value: bytes, data_source_id: str, key_suffix: str = ""
) -> Optional[str]:
    """Decrypt a value produced by encrypt_value."""
    if not encrypted_value:
        return None

    if session.bind.dialect.name == "postgresql":
        return session.execute(
            text("SELECT pgp_sym_decrypt(:data, :key)"),
            {"data": encrypted_value, "key": _key_for(data_source_id, key_suffix)},
        ).scalar()
    if isinstance(encrypted_value, bytes):
        return encrypted_value.decode()
    return encrypted_value


def encrypt_secret(session: Session, secret: str, data_source_id: str) -> bytes:
    """Encrypt a data source client secret."""
    return encrypt_value(session, secret, data_source_id, "secret")


def decrypt_secret(session: Session, encrypted: bytes, data_source_id: str) -> Optional[str]:
    """Decrypt a data source client secret."""
    return decrypt_value(session, encrypted, data_source_id, "secret")
