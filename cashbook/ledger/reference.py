"""
Reference code generation.

Codes look like ``TRX-20260131-9F2C04AB``: a prefix, the creation date and
eight random hex characters. Uniqueness is enforced by storage; this module
only proposes candidates.
"""

import re
import secrets
from datetime import date


REFERENCE_PATTERN = re.compile(r"^(?P<prefix>[A-Z0-9]+)-(?P<date>\d{8})-(?P<suffix>[0-9A-F]{8})$")


def generate_reference_code(prefix: str, day: date) -> str:
    """Propose a reference code for an entry created on ``day``."""
    return f"{prefix}-{day:%Y%m%d}-{secrets.token_hex(4).upper()}"


def is_reference_code(value: str) -> bool:
    """Check whether ``value`` is shaped like a reference code."""
    return REFERENCE_PATTERN.match(value) is not None
