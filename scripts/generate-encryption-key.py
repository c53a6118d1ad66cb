#!/usr/bin/env python3
"""Print a new random field encryption key for ENCRYPTION_KEY.

Generate once per deployment and keep it in the environment or a secrets
store. Losing the key makes every encrypted column unreadable.
"""

from __future__ import annotations

import os
import sys

# Allow running from repo root: add backend/ to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from fieldseal.services.cipher import generate_key_b64


def main() -> int:
    print(generate_key_b64())
    return 0


if __name__ == "__main__":
    sys.exit(main())
