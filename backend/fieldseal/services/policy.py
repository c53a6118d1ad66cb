"""Which columns are encrypted, in which mode, and how wide they must be.

Mode follows query need: a column used in an equality lookup or a unique
constraint must be deterministic; a column that is only displayed must be
non-deterministic so repeated values cannot be correlated across rows.

Every encrypted column must be wide enough for the envelope of its longest
plaintext: base64(IV + PKCS7-padded ciphertext).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from fieldseal.services.backfill import MigrationTarget
from fieldseal.services.cipher import CipherMode, EncryptionKey
from fieldseal.services.codec import FieldCodec
from fieldseal.utils.crypto import BLOCK_SIZE, IV_SIZE


class PolicyViolation(ValueError):
    """Raised when the field policy breaks a mode or width rule."""


@dataclass(frozen=True, slots=True)
class FieldPolicy:
    entity: str
    table: str
    column: str
    mode: CipherMode
    lookup: bool  # filtered on by value
    unique: bool
    nullable: bool
    max_plaintext_bytes: int
    allocated_width: int
    label: str
    id_column: str = "id"

    @property
    def queried(self) -> bool:
        return self.lookup or self.unique

    @property
    def required_width(self) -> int:
        return envelope_width(self.max_plaintext_bytes)


def envelope_width(max_plaintext_bytes: int) -> int:
    """Characters needed to store the envelope of a plaintext of this size."""
    if max_plaintext_bytes < 0:
        raise ValueError("max_plaintext_bytes must be >= 0")
    # PKCS7 always adds at least one byte of padding
    ciphertext = (max_plaintext_bytes // BLOCK_SIZE + 1) * BLOCK_SIZE
    raw = IV_SIZE + ciphertext
    return -(-raw // 3) * 4


FIELD_POLICIES: tuple[FieldPolicy, ...] = (
    FieldPolicy(
        entity="User",
        table="users",
        column="email",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=True,
        nullable=False,
        max_plaintext_bytes=320,
        allocated_width=600,
        label="User emails",
    ),
    FieldPolicy(
        entity="VerificationCode",
        table="verification_codes",
        column="code",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=False,
        nullable=False,
        max_plaintext_bytes=64,
        allocated_width=200,
        label="Verification codes",
    ),
    FieldPolicy(
        entity="RefreshToken",
        table="refresh_tokens",
        column="token",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=True,
        nullable=False,
        max_plaintext_bytes=512,
        allocated_width=800,
        label="Refresh tokens",
    ),
    FieldPolicy(
        entity="RefreshToken",
        table="refresh_tokens",
        column="replaced_by",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=False,
        nullable=True,
        max_plaintext_bytes=512,
        allocated_width=800,
        label="Superseding refresh tokens",
    ),
    FieldPolicy(
        entity="RefreshToken",
        table="refresh_tokens",
        column="created_by_ip",
        mode=CipherMode.NON_DETERMINISTIC,
        lookup=False,
        unique=False,
        nullable=True,
        max_plaintext_bytes=45,  # longest textual IPv6 form
        allocated_width=200,
        label="Refresh token creation IPs",
    ),
    FieldPolicy(
        entity="PendingRegistration",
        table="pending_registrations",
        column="email",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=True,
        nullable=False,
        max_plaintext_bytes=320,
        allocated_width=600,
        label="Pending registration emails",
    ),
    FieldPolicy(
        entity="PendingRegistration",
        table="pending_registrations",
        column="verification_code",
        mode=CipherMode.DETERMINISTIC,
        lookup=True,
        unique=False,
        nullable=False,
        max_plaintext_bytes=64,
        allocated_width=200,
        label="Pending registration codes",
    ),
)


def validate_policy(policies: Iterable[FieldPolicy] = FIELD_POLICIES) -> None:
    """Raise PolicyViolation on the first rule a policy row breaks."""
    seen: set[tuple[str, str]] = set()
    for p in policies:
        name = f"{p.table}.{p.column}"
        if (p.table, p.column) in seen:
            raise PolicyViolation(f"{name} is listed more than once")
        seen.add((p.table, p.column))

        if p.queried and p.mode is not CipherMode.DETERMINISTIC:
            raise PolicyViolation(
                f"{name} is used for lookup or uniqueness and must be deterministic"
            )
        if not p.queried and p.mode is not CipherMode.NON_DETERMINISTIC:
            raise PolicyViolation(
                f"{name} is never queried and must be non-deterministic"
            )
        if p.allocated_width < p.required_width:
            raise PolicyViolation(
                f"{name} is {p.allocated_width} characters wide but envelopes of "
                f"{p.max_plaintext_bytes}-byte values need {p.required_width}"
            )


def policy_for(
    table: str, column: str, policies: Iterable[FieldPolicy] = FIELD_POLICIES
) -> FieldPolicy:
    for p in policies:
        if p.table == table and p.column == column:
            return p
    raise KeyError(f"No encryption policy for {table}.{column}")


def codec_for(policy: FieldPolicy, key: EncryptionKey) -> FieldCodec:
    return FieldCodec(key=key, mode=policy.mode, nullable=policy.nullable)


def backfill_targets(
    policies: Sequence[FieldPolicy] = FIELD_POLICIES,
) -> list[MigrationTarget]:
    """Migration targets for the given policy rows, in policy order."""
    return [
        MigrationTarget(
            table=p.table,
            id_column=p.id_column,
            value_column=p.column,
            mode=p.mode,
            label=p.label,
            width=p.allocated_width,
        )
        for p in policies
    ]
