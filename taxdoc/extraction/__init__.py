from taxdoc.extraction.extractor import ExtractionResult, FieldExtractor, render_number
from taxdoc.extraction.schema import TAX_NOTICE_SCHEMA, FieldSpec, ValueKind

__all__ = [
    "ExtractionResult",
    "FieldExtractor",
    "render_number",
    "TAX_NOTICE_SCHEMA",
    "FieldSpec",
    "ValueKind",
]
