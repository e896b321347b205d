"""
Airtable Edge Proxy — Resource Access Policy
=============================================

What:  Strict allow-list check for the Airtable base/table a request targets.
Why:   The proxy holds a token that can reach far more than the frontend
       needs. Only explicitly listed bases and tables may be reached.
How:   Parses the requested path into (base, table, optional record) and
       checks base and table against fixed sets. Fail closed: no wildcards,
       no prefix matching, no case folding.

Two path forms are supported:

    SEGMENTS  /api/airtable/{base}/{table}[/{record}]
              Path already URL-decoded by the router; table must match exactly.

    EMBEDDED  /api/airtable?path={base}/{table}[/{record}]
              The path is an opaque string that may still carry percent
              escapes. The table matches when either its literal form or its
              decoded form is listed, so operators list both spellings
              (e.g. "Team Members" and "Team%20Members").

Record identifiers are otherwise opaque and Airtable validates them itself.
The dot segments "." and ".." are refused because they would climb out of
the allow-listed table once the upstream URL is normalised.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
from urllib.parse import unquote

logger = logging.getLogger(__name__)


class PathForm(str, Enum):
    SEGMENTS = "segments"
    EMBEDDED = "embedded"


# Reason strings returned to the client
MISSING_PATH = "Missing path parameter"
INVALID_FORMAT = "Invalid path format"
BASE_NOT_ALLOWED = "Base not allowed"
TABLE_NOT_ALLOWED = "Table not allowed"

# Record ids that URL normalisation would resolve to a parent path
DOT_SEGMENTS = frozenset({".", ".."})


@dataclass(frozen=True)
class ResourcePath:
    """A validated upstream resource. Table and record are always decoded."""

    base_id: str
    table_name: str
    record_id: Optional[str] = None


@dataclass(frozen=True)
class PathValidation:
    valid: bool
    error: Optional[str] = None
    resource: Optional[ResourcePath] = None

    @classmethod
    def reject(cls, reason: str) -> "PathValidation":
        return cls(valid=False, error=reason)

    @classmethod
    def accept(cls, resource: ResourcePath) -> "PathValidation":
        return cls(valid=True, resource=resource)


class AccessPolicy:
    """
    Allow-list validator for one path form.

    Args:
        allowed_bases: Base ids that may be reached
        allowed_tables: Table names that may be reached (exact spelling)
        form: Which inbound path form this policy parses
    """

    def __init__(
        self,
        allowed_bases: Iterable[str],
        allowed_tables: Iterable[str],
        form: PathForm = PathForm.SEGMENTS,
    ):
        self.allowed_bases = frozenset(allowed_bases)
        self.allowed_tables = frozenset(allowed_tables)
        self.form = PathForm(form)

    def validate(self, raw_path: Optional[str]) -> PathValidation:
        if self.form is PathForm.EMBEDDED:
            result = self._validate_embedded(raw_path)
        else:
            result = self._validate_segments(raw_path or "")

        if not result.valid:
            logger.info("Rejected %s path %r: %s", self.form.value, raw_path, result.error)
        return result

    # ── Segment form ──────────────────────────────────────────────────────

    def _validate_segments(self, raw_path: str) -> PathValidation:
        parts = _split(raw_path)
        if len(parts) < 2 or len(parts) > 3:
            return PathValidation.reject(INVALID_FORMAT)

        base_id, table_name = parts[0], parts[1]
        if base_id not in self.allowed_bases:
            return PathValidation.reject(BASE_NOT_ALLOWED)
        if table_name not in self.allowed_tables:
            return PathValidation.reject(TABLE_NOT_ALLOWED)

        record_id = parts[2] if len(parts) == 3 else None
        if record_id in DOT_SEGMENTS:
            return PathValidation.reject(INVALID_FORMAT)
        return PathValidation.accept(ResourcePath(base_id, table_name, record_id))

    # ── Embedded (?path=) form ────────────────────────────────────────────

    def _validate_embedded(self, raw_path: Optional[str]) -> PathValidation:
        if not raw_path:
            return PathValidation.reject(MISSING_PATH)

        base_id = self._matching_base(raw_path)
        if base_id is None:
            return PathValidation.reject(BASE_NOT_ALLOWED)

        parts = _split(raw_path[len(base_id) + 1:])
        if len(parts) < 1 or len(parts) > 2:
            return PathValidation.reject(INVALID_FORMAT)

        table_literal = parts[0]
        table_decoded = unquote(table_literal)
        if (
            table_literal not in self.allowed_tables
            and table_decoded not in self.allowed_tables
        ):
            return PathValidation.reject(TABLE_NOT_ALLOWED)

        record_id = unquote(parts[1]) if len(parts) == 2 else None
        if record_id in DOT_SEGMENTS:
            return PathValidation.reject(INVALID_FORMAT)
        return PathValidation.accept(ResourcePath(base_id, table_decoded, record_id))

    def _matching_base(self, raw_path: str) -> Optional[str]:
        for base_id in self.allowed_bases:
            if raw_path.startswith(base_id + "/"):
                return base_id
        return None


def _split(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]
