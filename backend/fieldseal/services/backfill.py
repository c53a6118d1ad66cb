"""One-time backfill that encrypts legacy plaintext already in the database.

Run once after field encryption is enabled and before support for reading
unencrypted values is removed. The run is idempotent: each stored value is
classified from its content alone, so envelopes are skipped and a second run
writes nothing. There is no run-wide transaction; every row update commits
on its own, so an interrupted run can simply be started again.

Precondition: no other writer inserts plaintext into a target column while
the backfill runs. A value written between the read and the update of its
row is not re-checked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from fieldseal.services.cipher import (
    CipherMode,
    EncryptionKey,
    decrypt,
    encrypt,
    has_envelope_shape,
)

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ValueClass(str, Enum):
    ALREADY_ENCRYPTED = "already_encrypted"
    LEGACY_PLAINTEXT = "legacy_plaintext"


@dataclass(frozen=True, slots=True)
class MigrationTarget:
    table: str
    id_column: str
    value_column: str
    mode: CipherMode
    label: str
    width: int | None = None  # declared column width to enforce, if any

    def __post_init__(self) -> None:
        for name in (self.table, self.id_column, self.value_column):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid SQL identifier in migration target: {name!r}")


@dataclass(slots=True)
class TargetReport:
    label: str
    table: str
    column: str
    migrated: int = 0
    skipped: int = 0  # already encrypted
    failed: int = 0
    widened: bool | None = None  # None when no ALTER was attempted
    error: str | None = None  # set when the column could not be read at all


@dataclass(slots=True)
class BackfillReport:
    targets: list[TargetReport] = field(default_factory=list)
    dry_run: bool = False

    @property
    def migrated(self) -> int:
        return sum(t.migrated for t in self.targets)

    @property
    def skipped(self) -> int:
        return sum(t.skipped for t in self.targets)

    @property
    def failed(self) -> int:
        return sum(t.failed for t in self.targets)

    @property
    def errored(self) -> list[TargetReport]:
        return [t for t in self.targets if t.error is not None]


def classify_value(value: str, key: EncryptionKey) -> ValueClass:
    """Decide whether a stored value is already an envelope.

    A value that decrypts to something different is a genuine envelope.
    Otherwise a value shaped like an envelope (base64, IV plus whole blocks)
    is also treated as encrypted, which guards against double encryption
    at the price of possibly skipping short base64-looking plaintext.
    """
    if decrypt(value, key) != value:
        return ValueClass.ALREADY_ENCRYPTED
    if has_envelope_shape(value):
        return ValueClass.ALREADY_ENCRYPTED
    return ValueClass.LEGACY_PLAINTEXT


def alter_width_sql(dialect_name: str, table: str, column: str, width: int) -> str | None:
    """ALTER statement that sets a varchar width, or None if not applicable.

    SQLite does not enforce varchar widths, so nothing is needed there.
    """
    if dialect_name == "sqlite":
        return None
    return f"ALTER TABLE {table} ALTER COLUMN {column} TYPE varchar({int(width)})"


class BackfillMigrator:
    """Sequential, row-at-a-time encryption of legacy plaintext columns.

    Uses one connection for the whole run and processes targets in the
    order given. A failing row is logged and counted, and a column that
    cannot be read is recorded on its report; neither stops the run.
    """

    def __init__(self, engine: Engine, key: EncryptionKey, dry_run: bool = False) -> None:
        self.engine = engine
        self.key = key
        self.dry_run = dry_run

    def run(self, targets: Sequence[MigrationTarget]) -> BackfillReport:
        report = BackfillReport(dry_run=self.dry_run)
        logger.info(
            "Starting encryption backfill of %d column(s)%s",
            len(targets),
            " (dry run)" if self.dry_run else "",
        )
        with self.engine.connect() as conn:
            for target in targets:
                report.targets.append(self.migrate_target(conn, target))
        logger.info(
            "Encryption backfill finished: %d migrated, %d already encrypted, %d failed, "
            "%d column(s) unreadable",
            report.migrated,
            report.skipped,
            report.failed,
            len(report.errored),
        )
        return report

    def migrate_target(self, conn: Connection, target: MigrationTarget) -> TargetReport:
        result = TargetReport(
            label=target.label, table=target.table, column=target.value_column
        )
        logger.info("Migrating %s (%s.%s)...", target.label, target.table, target.value_column)

        # Widen first so envelopes longer than a legacy width still fit.
        if target.width is not None and not self.dry_run:
            result.widened = self.widen_column(conn, target)

        quote = conn.dialect.identifier_preparer.quote
        table = quote(target.table)
        id_col = quote(target.id_column)
        value_col = quote(target.value_column)

        try:
            rows = conn.execute(
                text(f"SELECT {id_col}, {value_col} FROM {table} WHERE {value_col} IS NOT NULL")
            ).all()
            conn.commit()
        except Exception as exc:
            conn.rollback()
            result.error = str(exc)
            logger.exception(
                "Could not read %s from %s.%s, skipping column",
                target.label,
                target.table,
                target.value_column,
            )
            return result

        update = text(f"UPDATE {table} SET {value_col} = :value WHERE {id_col} = :id")
        for row_id, value in rows:
            try:
                if classify_value(value, self.key) is ValueClass.ALREADY_ENCRYPTED:
                    result.skipped += 1
                    continue
                envelope = encrypt(value, self.key, target.mode)
                if not self.dry_run:
                    conn.execute(update, {"value": envelope, "id": row_id})
                    conn.commit()
                result.migrated += 1
            except Exception:
                conn.rollback()
                result.failed += 1
                logger.exception(
                    "Failed to encrypt %s row %s=%s", target.label, target.id_column, row_id
                )

        logger.info(
            "  %s: %d migrated, %d already encrypted, %d failed",
            target.label,
            result.migrated,
            result.skipped,
            result.failed,
        )
        return result

    def widen_column(self, conn: Connection, target: MigrationTarget) -> bool:
        """Set the declared width of the target column.

        Safe to repeat. Failures (column already altered differently,
        missing privileges) are logged as warnings and reported as False.
        """
        quote = conn.dialect.identifier_preparer.quote
        sql = alter_width_sql(
            conn.dialect.name,
            quote(target.table),
            quote(target.value_column),
            target.width,
        )
        if sql is None:
            logger.debug(
                "Skipping width change for %s.%s on %s",
                target.table,
                target.value_column,
                conn.dialect.name,
            )
            return False
        try:
            conn.execute(text(sql))
            conn.commit()
        except Exception as exc:
            conn.rollback()
            logger.warning(
                "Could not widen %s.%s to %d: %s",
                target.table,
                target.value_column,
                target.width,
                exc,
            )
            return False
        return True
