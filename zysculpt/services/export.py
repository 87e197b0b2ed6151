"""
EXPORT MODULE
=============

Turns a session's sculpted Markdown (final_resume) into a downloadable file.

  parse_markdown(text)       - Markdown -> list of Block (heading 1-3, bullet,
                               paragraph, blank), each with inline runs for
                               **bold** and *italic*.
  export_docx(session)       - Word document via python-docx, using the
                               session's StylePrefs font and bullet glyph.
  export_pdf(session)        - PDF via reportlab, A4 with fixed 15 mm margins.
  export_filename(session, ext)

Only the small Markdown subset the sculpt prompts ask for is understood;
anything else is exported as a plain paragraph.
"""

import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import List, Tuple
from urllib.parse import quote
from xml.sax.saxutils import escape

from docx import Document
from docx.shared import Mm, Pt
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from config import EXPORT_MARGIN_MM
from zysculpt.models import ChatSession, StylePrefs

logger = logging.getLogger("Zysculpt")

Run = Tuple[str, bool, bool]  # (text, bold, italic)

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET = re.compile(r"^\s*(?:[-*+•])\s+(.*)$")
_INLINE = re.compile(r"\*\*(.+?)\*\*|\*(.+?)\*")
_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


@dataclass
class Block:
    kind: str  # heading | bullet | paragraph | blank
    runs: List[Run] = field(default_factory=list)
    level: int = 0

    @property
    def text(self) -> str:
        return "".join(run[0] for run in self.runs)


# ==============================================================================
# MARKDOWN PARSING
# ==============================================================================

def parse_inline(text: str) -> List[Run]:
    runs: List[Run] = []
    pos = 0
    for match in _INLINE.finditer(text):
        if match.start() > pos:
            runs.append((text[pos:match.start()], False, False))
        if match.group(1) is not None:
            runs.append((match.group(1), True, False))
        else:
            runs.append((match.group(2), False, True))
        pos = match.end()
    if pos < len(text):
        runs.append((text[pos:], False, False))
    return runs


def parse_markdown(text: str) -> List[Block]:
    blocks = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped:
            blocks.append(Block("blank"))
            continue
        heading = _HEADING.match(stripped)
        if heading:
            level = min(len(heading.group(1)), 3)
            blocks.append(Block("heading", parse_inline(heading.group(2).strip()), level))
            continue
        bullet = _BULLET.match(line)
        if bullet:
            blocks.append(Block("bullet", parse_inline(bullet.group(1).strip())))
            continue
        blocks.append(Block("paragraph", parse_inline(stripped)))
    return blocks


def _document_text(session: ChatSession) -> str:
    if not session.final_resume:
        raise ValueError(f"Session {session.id} has no sculpted document to export")
    return session.final_resume


def export_filename(session: ChatSession, ext: str) -> str:
    """Title with whitespace replaced by underscores; cover letters get a prefix."""
    title = _UNSAFE_FILENAME.sub("", session.title).strip()
    base = re.sub(r"\s+", "_", title) or "Document"
    if session.type == "cover-letter":
        base = f"Cover_Letter_{base}"
    return f"{base}.{ext.lstrip('.')}"


def content_disposition(filename: str) -> str:
    """
    Attachment header for any title. Header values travel as Latin-1, so the
    plain `filename` gets an ASCII version and `filename*` carries the real
    name percent-encoded as UTF-8 (RFC 5987).
    """
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    ascii_name = _UNSAFE_FILENAME.sub("", ascii_name) or "Document"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


# ==============================================================================
# WORD
# ==============================================================================

HEADING_SIZES = {1: 18, 2: 14, 3: 12}
BODY_SIZE = 11


def _add_runs(paragraph, runs: List[Run], font_name: str, size: int, bold: bool = False) -> None:
    for text, run_bold, run_italic in runs:
        run = paragraph.add_run(text)
        run.font.name = font_name
        run.font.size = Pt(size)
        run.bold = bold or run_bold
        run.italic = run_italic


def export_docx(session: ChatSession) -> bytes:
    blocks = parse_markdown(_document_text(session))
    prefs = session.style_prefs or StylePrefs()

    doc = Document()
    doc.styles["Normal"].paragraph_format.space_before = Pt(0)
    doc.styles["Normal"].paragraph_format.space_after = Pt(2)
    for section in doc.sections:
        section.page_width = Mm(210)
        section.page_height = Mm(297)
        section.top_margin = section.bottom_margin = Mm(EXPORT_MARGIN_MM)
        section.left_margin = section.right_margin = Mm(EXPORT_MARGIN_MM)

    for block in blocks:
        if block.kind == "blank":
            continue
        p = doc.add_paragraph()
        if block.kind == "heading":
            p.paragraph_format.space_before = Pt(8)
            _add_runs(p, block.runs, prefs.font_family, HEADING_SIZES[block.level], bold=True)
        elif block.kind == "bullet":
            p.paragraph_format.left_indent = Pt(14)
            p.paragraph_format.first_line_indent = Pt(-10)
            _add_runs(p, [(f"{prefs.bullet} ", False, False)] + block.runs, prefs.font_family, BODY_SIZE)
        else:
            _add_runs(p, block.runs, prefs.font_family, BODY_SIZE)

    buffer = io.BytesIO()
    doc.save(buffer)
    logger.info("Exported DOCX for session %s (%s bytes)", session.id, buffer.tell())
    return buffer.getvalue()


# ==============================================================================
# PDF
# ==============================================================================

# reportlab only ships the 14 standard fonts; map the preferred family onto one.
_PDF_FONTS = {
    "serif": ("Times-Roman", "Times-Bold"),
    "mono": ("Courier", "Courier-Bold"),
    "sans": ("Helvetica", "Helvetica-Bold"),
}
_SERIF_HINTS = ("times", "georgia", "garamond", "cambria", "serif")


def _pdf_fonts(font_family: str) -> Tuple[str, str]:
    name = font_family.lower()
    if "courier" in name or "mono" in name:
        return _PDF_FONTS["mono"]
    if any(hint in name for hint in _SERIF_HINTS) and "sans" not in name:
        return _PDF_FONTS["serif"]
    return _PDF_FONTS["sans"]


def _markup(runs: List[Run]) -> str:
    parts = []
    for text, bold, italic in runs:
        chunk = escape(text)
        if italic:
            chunk = f"<i>{chunk}</i>"
        if bold:
            chunk = f"<b>{chunk}</b>"
        parts.append(chunk)
    return "".join(parts)


def export_pdf(session: ChatSession) -> bytes:
    blocks = parse_markdown(_document_text(session))
    prefs = session.style_prefs or StylePrefs()
    regular, bold = _pdf_fonts(prefs.font_family)

    styles = {
        "body": ParagraphStyle(name="Body", fontName=regular, fontSize=10, leading=13, alignment=TA_LEFT),
        "bullet": ParagraphStyle(
            name="Bullet", fontName=regular, fontSize=10, leading=13, leftIndent=14, firstLineIndent=-10,
        ),
        1: ParagraphStyle(name="H1", fontName=bold, fontSize=18, leading=22, spaceBefore=4, spaceAfter=4),
        2: ParagraphStyle(name="H2", fontName=bold, fontSize=13, leading=16, spaceBefore=8, spaceAfter=3),
        3: ParagraphStyle(name="H3", fontName=bold, fontSize=11, leading=14, spaceBefore=6, spaceAfter=2),
    }

    flowables = []
    for block in blocks:
        if block.kind == "blank":
            flowables.append(Spacer(1, 4))
        elif block.kind == "heading":
            flowables.append(Paragraph(_markup(block.runs), styles[block.level]))
        elif block.kind == "bullet":
            flowables.append(Paragraph(f"{escape(prefs.bullet)} {_markup(block.runs)}", styles["bullet"]))
        else:
            flowables.append(Paragraph(_markup(block.runs), styles["body"]))

    buffer = io.BytesIO()
    margin = EXPORT_MARGIN_MM * mm
    doc = SimpleDocTemplate(
        buffer, pagesize=A4,
        leftMargin=margin, rightMargin=margin, topMargin=margin, bottomMargin=margin,
        title=session.title,
    )
    doc.build(flowables)
    logger.info("Exported PDF for session %s (%s bytes)", session.id, buffer.tell())
    return buffer.getvalue()
