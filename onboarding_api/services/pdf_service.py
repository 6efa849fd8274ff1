"""
Application Form PDF Generation.

Renders a submitted onboarding form with reportlab. Sections are laid out as
label/value tables; uploaded documents are listed by file name only. Sensitive
numbers (government IDs, bank accounts) are masked to their last 4 characters.
"""

import io
import re
from typing import Any, Callable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from onboarding_api.db.models import Onboarding
from onboarding_api.utils.dates import utcnow

HEADER_COLOR = colors.HexColor("#1e3a8a")
GRID_COLOR = colors.HexColor("#e2e8f0")
ROW_ALT_COLOR = colors.HexColor("#f8fafc")

SUBSIDIARY_TITLES = {
    "INDIA": "Employee Application Form - India",
    "CANADA": "Employee Application Form - Canada",
    "USA": "Employee Application Form - United States",
}

# Keys whose values are masked in the rendered form
MASKED_KEYS = {
    "aadhaarNumber",
    "panNumber",
    "sinNumber",
    "ssnNumber",
    "passportNumber",
    "licenseNumber",
    "accountNumber",
    "routingNumber",
    "transitNumber",
    "institutionNumber",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _label(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(" ", key).replace("_", " ").strip().capitalize()


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


def _is_file_asset(value: Any) -> bool:
    return isinstance(value, dict) and "s3Key" in value and "mimeType" in value


def _format_scalar(key: str, value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    text = str(value)
    if key in MASKED_KEYS:
        return _mask(text)
    return text


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten a nested section into (label, value) rows."""
    rows: list[tuple[str, str]] = []
    for key, value in data.items():
        label = f"{prefix}{_label(key)}"
        if _is_file_asset(value):
            rows.append((label, value.get("originalName") or "Uploaded document"))
        elif isinstance(value, dict):
            rows.extend(_flatten(value, f"{label} / "))
        elif isinstance(value, list):
            if not value:
                rows.append((label, "-"))
            for index, item in enumerate(value, start=1):
                if isinstance(item, dict):
                    rows.extend(_flatten(item, f"{label} #{index} / "))
                else:
                    rows.append((f"{label} #{index}", _format_scalar(key, item)))
        else:
            rows.append((label, _format_scalar(key, value)))
    return rows


def _section_table(rows: list[tuple[str, str]], cell_style: ParagraphStyle) -> Table:
    data = [[Paragraph(escape(label), cell_style), Paragraph(escape(value), cell_style)] for label, value in rows]
    table = Table(data, colWidths=[2.6 * inch, 4.4 * inch])
    table.setStyle(
        TableStyle(
            [
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
                ("ROWBACKGROUNDS", (0, 0), (-1, -1), [colors.white, ROW_ALT_COLOR]),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    return table


SECTIONS: list[tuple[str, Callable[[dict[str, Any]], Any]]] = [
    ("Personal Information", lambda data: data.get("personalInfo")),
    ("Government Identification", lambda data: data.get("governmentIds")),
    ("Education", lambda data: {"education": data.get("education") or []}),
    (
        "Employment History",
        lambda data: {
            "hasPreviousEmployment": data.get("hasPreviousEmployment"),
            "employmentHistory": data.get("employmentHistory") or [],
        },
    ),
    ("Bank Details", lambda data: data.get("bankDetails")),
    ("Declaration", lambda data: data.get("declaration")),
]


def generate_application_form_pdf(
    onboarding: Onboarding,
    on_progress: Callable[[int], None] | None = None,
) -> bytes:
    """
    Render the onboarding's current form data as a PDF document.

    Args:
        onboarding: Record with decrypted form data available
        on_progress: Called with a 0-100 percentage as sections are laid out

    Raises:
        ValueError: Record has no form data
    """
    form_data = onboarding.form_data
    if not form_data:
        raise ValueError("Onboarding has no form data")

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=0.6 * inch,
        leftMargin=0.6 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        title=f"Application Form - {onboarding.first_name} {onboarding.last_name}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "FormTitle", parent=styles["Heading1"], fontSize=18, textColor=HEADER_COLOR, spaceAfter=6
    )
    heading_style = ParagraphStyle(
        "SectionHeading", parent=styles["Heading2"], fontSize=12, textColor=HEADER_COLOR, spaceBefore=10, spaceAfter=6
    )
    meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=9, textColor=colors.gray)
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=9, leading=11)

    elements: list[Any] = [
        Paragraph(SUBSIDIARY_TITLES.get(onboarding.subsidiary, "Employee Application Form"), title_style),
        Paragraph(
            f"{escape(onboarding.first_name)} {escape(onboarding.last_name)} &lt;{escape(onboarding.email)}&gt; | "
            f"Status: {onboarding.status}",
            meta_style,
        ),
        Paragraph(f"Generated {utcnow().strftime('%Y-%m-%d %H:%M')} UTC", meta_style),
        Spacer(1, 12),
    ]

    for index, (title, extract) in enumerate(SECTIONS, start=1):
        section = extract(form_data)
        elements.append(Paragraph(title, heading_style))
        rows = _flatten(section) if isinstance(section, dict) else []
        if rows:
            elements.append(_section_table(rows, cell_style))
        else:
            elements.append(Paragraph("Not provided", cell_style))
        if on_progress:
            on_progress(int(index * 80 / len(SECTIONS)))

    doc.build(elements)
    return buffer.getvalue()
