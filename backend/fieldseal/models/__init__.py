from __future__ import annotations

from fieldseal.models.schema import Schema, build_schema  # noqa: F401
