"""
Tax notice field schema.

Each FieldSpec maps one metadata name written onto the blob to the key the
analyzer emits under result.contents[0].fields, and the typed sub-value
expected there. Adding a field is a change to TAX_NOTICE_SCHEMA only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ValueKind(str, Enum):
    """Typed sub-value keys emitted by Content Understanding."""
    STRING  = "valueString"
    NUMBER  = "valueNumber"
    DATE    = "valueDate"
    BOOLEAN = "valueBoolean"


@dataclass(frozen=True)
class FieldSpec:
    name:       str        # metadata key on the blob, e.g. "TotalAmountDue"
    source_key: str        # analyzer field name, e.g. "total_amount_due"
    kind:       ValueKind = ValueKind.STRING


TAX_NOTICE_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("TaxpayerName",                "taxpayer_name"),
    FieldSpec("TaxJurisdiction",             "tax_jurisdiction"),
    FieldSpec("NoticeType",                  "notice_type"),
    FieldSpec("EinTaxId",                    "ein_tax_id"),
    FieldSpec("TotalAmountDue",              "total_amount_due",               ValueKind.NUMBER),
    FieldSpec("FilingDeadline",              "filing_deadline",                ValueKind.DATE),
    FieldSpec("NoticeNumber",                "notice_number"),
    FieldSpec("NoticeDate",                  "notice_date",                    ValueKind.DATE),
    FieldSpec("TaxpayerAddress",             "taxpayer_address"),
    FieldSpec("TaxAuthorityAddress",         "tax_authority_address"),
    FieldSpec("TaxPeriod",                   "tax_period"),
    FieldSpec("ActionNeeded",                "action_needed"),
    FieldSpec("PaymentInstructions",         "payment_instructions"),
    FieldSpec("PaymentInterestBreakdown",    "payment_interest_breakdown"),
    FieldSpec("AssessmentCodeOrFormNumber",  "assessment_code_or_form_number"),
    FieldSpec("TaxAuthority",                "tax_authority"),
    FieldSpec("DisputeOrAppealDeadline",     "dispute_or_appeal_deadline",     ValueKind.DATE),
    FieldSpec("PaymentCouponRemittanceSlip", "payment_coupon_remittance_slip", ValueKind.BOOLEAN),
    FieldSpec("Description",                 "description"),
    FieldSpec("EinTaxIdNotes",               "ein_tax_id_notes"),
    FieldSpec("EmployeeIdNumber",            "employee_id_number",             ValueKind.NUMBER),
    FieldSpec("ContactPhoneNumber",          "contact_phone_number"),
    FieldSpec("ContactFaxNumber",            "contact_fax_number"),
    FieldSpec("ContactEmailAddress",         "contact_email_address"),
)


def field_names(schema: tuple[FieldSpec, ...] = TAX_NOTICE_SCHEMA) -> list[str]:
    return [spec.name for spec in schema]
