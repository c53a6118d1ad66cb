"""Tables holding encrypted columns, built for a specific key.

Only the columns relevant to field encryption are modelled. Encrypted
columns take their mode, width, nullability and uniqueness from the field
policy, so the table definitions cannot drift from it.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, MetaData, String, Table

from fieldseal.services.cipher import EncryptionKey
from fieldseal.services.codec import EncryptedString
from fieldseal.services.policy import FIELD_POLICIES, FieldPolicy, codec_for, policy_for


@dataclass(frozen=True)
class Schema:
    metadata: MetaData
    users: Table
    verification_codes: Table
    refresh_tokens: Table
    pending_registrations: Table


def _encrypted_column(policy: FieldPolicy, key: EncryptionKey) -> Column:
    return Column(
        policy.column,
        EncryptedString(codec_for(policy, key), policy.allocated_width),
        nullable=policy.nullable,
        unique=policy.unique,
    )


def build_schema(key: EncryptionKey, policies: tuple[FieldPolicy, ...] = FIELD_POLICIES) -> Schema:
    metadata = MetaData()

    def enc(table: str, column: str) -> Column:
        return _encrypted_column(policy_for(table, column, policies), key)

    users = Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(200), nullable=False),
        enc("users", "email"),
        Column("created_at", DateTime(timezone=True)),
    )
    verification_codes = Table(
        "verification_codes",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
        enc("verification_codes", "code"),
        Column("purpose", String(50), nullable=False),
        Column("expires_at", DateTime(timezone=True)),
        Column("used", Boolean, nullable=False, default=False),
    )
    refresh_tokens = Table(
        "refresh_tokens",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
        enc("refresh_tokens", "token"),
        Column("jwt_id", String(200), nullable=False),
        Column("expires_at", DateTime(timezone=True)),
        Column("revoked", Boolean, nullable=False, default=False),
        enc("refresh_tokens", "replaced_by"),
        enc("refresh_tokens", "created_by_ip"),
    )
    pending_registrations = Table(
        "pending_registrations",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(200), nullable=False),
        enc("pending_registrations", "email"),
        enc("pending_registrations", "verification_code"),
        Column("expires_at", DateTime(timezone=True)),
        Column("verification_attempts", Integer, nullable=False, default=0),
    )
    return Schema(
        metadata=metadata,
        users=users,
        verification_codes=verification_codes,
        refresh_tokens=refresh_tokens,
        pending_registrations=pending_registrations,
    )
