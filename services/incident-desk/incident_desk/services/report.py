import logging
import re
from pathlib import Path

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from incident_desk.mirror.rows import TICKET_COLUMNS, ticket_to_row
from incident_desk.schemas.ticket import TicketRecord
from incident_desk.services.uploads import is_image

logger = logging.getLogger(__name__)

SKIPPED_COLUMNS = {"ticket_id", "attachments", "reported_by"}
TIMESTAMP_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}):(\d{2})")


def pretty_key(column: str) -> str:
    words = re.sub(r"([a-z])([A-Z])", r"\1_\2", column).split("_")
    return " ".join("SLA" if word.lower() == "sla" else word.capitalize() for word in words)


def short_timestamp(value: str) -> str:
    match = TIMESTAMP_PATTERN.match(value)
    if match:
        return f"{match.group(1)} {match.group(2)}:{match.group(3)}"
    return value


def _latin1(text: str) -> str:
    # core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


class _TicketPDF(FPDF):
    def footer(self) -> None:
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}", align="C")


def render_ticket_pdf(record: TicketRecord, uploads_dir: Path) -> bytes:
    """One-ticket summary: every field, then one page per image attachment."""
    pdf = _TicketPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.set_title(record.ticket_id)
    pdf.add_page()

    pdf.set_font("Helvetica", "BU", 18)
    pdf.multi_cell(0, 10, _latin1(f"Ticket ID: {record.ticket_id}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    row = ticket_to_row(record)
    pdf.set_font("Helvetica", size=11)
    for column in TICKET_COLUMNS:
        if column in SKIPPED_COLUMNS:
            continue
        line = f"{pretty_key(column)}: {short_timestamp(row[column])}"
        pdf.multi_cell(0, 6, _latin1(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(1)

    if record.attachments:
        pdf.add_page()
        pdf.set_font("Helvetica", "BU", 14)
        pdf.multi_cell(0, 8, "Attachments:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font("Helvetica", size=11)
        for name in record.attachments:
            if not is_image(name):
                pdf.multi_cell(0, 6, _latin1(f"Attached file: {name} (download via /uploads)"),
                               new_x=XPos.LMARGIN, new_y=YPos.NEXT)
                continue
            pdf.add_page()
            pdf.set_font("Helvetica", "BU", 12)
            pdf.multi_cell(0, 8, _latin1(f"Image: {name}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            pdf.set_font("Helvetica", size=11)
            try:
                pdf.image(str(uploads_dir / name), w=pdf.epw, h=pdf.eph - 20, keep_aspect_ratio=True)
            except Exception as exc:
                logger.warning("Could not embed %s in %s: %s", name, record.ticket_id, exc)
                pdf.multi_cell(0, 6, _latin1(f"Failed to embed image: {exc}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    return bytes(pdf.output())
