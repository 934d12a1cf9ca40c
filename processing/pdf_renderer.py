import io
from functools import lru_cache
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from config import config
from utils.logger import logger

MARGIN = 50
DEFAULT_FONT = "Helvetica"
CUSTOM_FONT = "DocumentFont"


class RenderError(Exception):
    """The PDF could not be produced from the given text."""


@lru_cache(maxsize=1)
def resolve_font_name(font_path: str = config.FONT_PATH) -> str:
    """
    Register the configured TTF once and return the font name to draw with.
    Falls back to Helvetica, which only covers Latin-1.
    """
    if not font_path:
        return DEFAULT_FONT
    try:
        pdfmetrics.registerFont(TTFont(CUSTOM_FONT, font_path))
    except Exception as e:
        logger.warning(f"Could not load font {font_path}, using {DEFAULT_FONT}: {e}")
        return DEFAULT_FONT
    logger.info(f"Registered document font: {font_path}")
    return CUSTOM_FONT


def render_text_pdf(text: str) -> bytes:
    """
    Render plain text onto a PDF page and return the file bytes.
    Each input line becomes its own paragraph; long lines wrap and overflow onto new pages.
    """
    buffer = io.BytesIO()
    try:
        doc = SimpleDocTemplate(
            buffer,
            pagesize=(config.PAGE_WIDTH, config.PAGE_HEIGHT),
            rightMargin=MARGIN,
            leftMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
        )

        styles = getSampleStyleSheet()
        body_style = ParagraphStyle(
            'DocumentBody',
            parent=styles['Normal'],
            fontSize=config.FONT_SIZE,
            leading=config.FONT_SIZE * 1.3,
            fontName=resolve_font_name(),
            textColor=colors.black,
        )

        story = []
        for line in text.splitlines():
            if line.strip():
                story.append(Paragraph(escape(line), body_style))
            else:
                story.append(Spacer(1, config.FONT_SIZE))

        doc.build(story)
    except Exception as e:
        logger.error(f"Error generating PDF: {str(e)}")
        raise RenderError(f"PDF generation failed: {str(e)}") from e

    return buffer.getvalue()
