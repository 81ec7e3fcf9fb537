"""
Identifier allow-list for schema, table, column and store alias names.

Names coming from the job catalog are untrusted. They are checked here and
then only ever handed to SQLAlchemy as identifiers (reflected tables), never
spliced into SQL text. Values (cutoff, batch size) are always bound.
"""
import re
from typing import Optional

from core.errors import IdentifierError

MAX_IDENTIFIER_LENGTH = 128

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*", re.ASCII)


def validate_identifier(name: str, field_name: str = "identifier") -> str:
    """Return `name` unchanged if it is a safe identifier, else raise IdentifierError."""
    if not isinstance(name, str) or not name:
        raise IdentifierError(f"Invalid {field_name}: a name is required")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise IdentifierError(
            f"Invalid {field_name} '{name[:32]}...': longer than {MAX_IDENTIFIER_LENGTH} characters"
        )
    if not IDENTIFIER_RE.fullmatch(name):
        raise IdentifierError(
            f"Invalid {field_name} '{name}'. Use ASCII letters, numbers and underscore, "
            "starting with a letter or underscore."
        )
    return name


def validate_optional_identifier(name: Optional[str], field_name: str = "identifier") -> Optional[str]:
    if name is None:
        return None
    return validate_identifier(name, field_name)
