"""
Field Extractor
═══════════════

Turns a terminal Content Understanding job result into the flat string map
written onto the blob as metadata.

Expected payload shape:

    {
      "status": "Succeeded",
      "result": {
        "contents": [
          {"fields": {"total_amount_due": {"type": "number", "valueNumber": 1234.5}, ...}}
        ]
      }
    }

Guarantees
──────────
  • All-or-nothing: a structurally invalid payload yields ok=False and an
    empty map. A valid payload yields every schema slot, "" where a slot is
    absent or carries the wrong typed sub-value.
  • Deterministic: numbers are rendered without locale, so the same input
    always produces byte-identical output.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from taxdoc.extraction.schema import TAX_NOTICE_SCHEMA, FieldSpec, ValueKind
from taxdoc.schemas.documents import JobStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    """
    fields : schema name → string value ("" for empty slots)
    ok     : False when the payload was structurally invalid
    """
    fields: dict[str, str] = field(default_factory=dict)
    ok:     bool = False


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------

def render_number(value: Any) -> str:
    """
    Canonical decimal rendering: 100 → "100", 100.0 → "100", 1234.5 → "1234.5",
    1e23 → "100000000000000000000000", 1e-05 → "0.00001".

    Floats go through repr() (the shortest string that round-trips) and then
    Decimal, so the digits are the ones the service sent and the output never
    switches to exponent notation.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ""
    if isinstance(value, int):
        return str(value)
    if value != value or value in (float("inf"), float("-inf")):
        return ""
    if value == 0:
        return "0"
    return format(Decimal(repr(value)).normalize(), "f")


def _render(spec: FieldSpec, raw: Any) -> str:
    if spec.kind is ValueKind.NUMBER:
        return render_number(raw)
    if spec.kind is ValueKind.BOOLEAN:
        return ("true" if raw else "false") if isinstance(raw, bool) else ""
    # valueString / valueDate are carried verbatim
    return raw if isinstance(raw, str) else ""


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class FieldExtractor:
    """
    Stateless — one instance may be shared by any number of invocations.

    Usage:
        result = FieldExtractor().extract(job_status_json)
        if result.ok:
            metadata.update(result.fields)
    """

    def __init__(self, schema: tuple[FieldSpec, ...] = TAX_NOTICE_SCHEMA) -> None:
        self._schema = schema

    @property
    def schema(self) -> tuple[FieldSpec, ...]:
        return self._schema

    def extract(self, payload: str | bytes | Mapping[str, Any]) -> ExtractionResult:
        fields_obj = self._locate_fields(payload)
        if fields_obj is None:
            return ExtractionResult(fields={}, ok=False)

        extracted: dict[str, str] = {}
        for spec in self._schema:
            slot = fields_obj.get(spec.source_key)
            if isinstance(slot, Mapping) and spec.kind.value in slot:
                extracted[spec.name] = _render(spec, slot[spec.kind.value])
            else:
                extracted[spec.name] = ""

        filled = sum(1 for v in extracted.values() if v)
        logger.info(
            "Extraction | fields=%d filled=%d empty=%d",
            len(extracted), filled, len(extracted) - filled,
        )
        return ExtractionResult(fields=extracted, ok=True)

    @staticmethod
    def _locate_fields(payload: str | bytes | Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Return result.contents[0].fields, or None if the shape is wrong."""
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError:
                logger.warning("Extraction | payload is not valid JSON")
                return None

        if not isinstance(payload, Mapping):
            logger.warning("Extraction | payload is not a JSON object")
            return None

        status = payload.get("status")
        if status != JobStatus.SUCCEEDED.value:
            logger.warning("Extraction | job status=%r, expected Succeeded", status)
            return None

        result = payload.get("result")
        contents = result.get("contents") if isinstance(result, Mapping) else None
        if not isinstance(contents, list) or not contents:
            logger.warning("Extraction | result.contents missing or empty")
            return None

        first = contents[0]
        fields_obj = first.get("fields") if isinstance(first, Mapping) else None
        if not isinstance(fields_obj, Mapping):
            logger.warning("Extraction | result.contents[0].fields missing")
            return None
        return fields_obj
