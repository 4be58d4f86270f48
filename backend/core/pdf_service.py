"""
Biodata PDF Generation Service

Renders a biodata record with one of the catalogue templates:
- Page border / background from the template style
- Optional profile photo (side or centred, square or round)
- One block per form section, "Label : Value" rows

Preview mode prints at most two fields per section, masks vowels and stamps
a PREVIEW watermark on every page.
"""

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Image as RLImage, Table, TableStyle, KeepTogether
from PIL import Image as PILImage, ImageDraw
from xml.sax.saxutils import escape
from typing import Dict, List, Any, Optional, Iterable
from urllib.parse import urlparse
from io import BytesIO
import base64
import logging

import httpx

from .biodata_templates import TemplateStyle, get_template
from .form_data import (
    normalize_sections, visible_fields, get_label, get_value,
    get_front_details, contains_devanagari, mask_vowels
)

logger = logging.getLogger(__name__)

DEVANAGARI_FONT = "NotoSansDevanagari"
PROFILE_SIZE = 1.6 * inch
MAX_IMAGE_PIXELS = 800
DEFAULT_IMAGE_HOSTS = ("res.cloudinary.com",)


class ImageSourceError(ValueError):
    """Profile image reference that is neither inline data nor an allowed URL"""
    pass


class BiodataPDFGenerator:
    """Generate biodata PDFs from form data and a template style"""

    def __init__(
        self,
        devanagari_font_path: Optional[str] = None,
        image_timeout: float = 10.0,
        allowed_image_hosts: Iterable[str] = DEFAULT_IMAGE_HOSTS
    ):
        self.page_width, self.page_height = A4
        self.image_timeout = image_timeout
        self.allowed_image_hosts = {h.strip().lower() for h in allowed_image_hosts if h.strip()}
        self.devanagari_font = None
        if devanagari_font_path:
            self._register_devanagari_font(devanagari_font_path)

    def _register_devanagari_font(self, path: str):
        try:
            pdfmetrics.registerFont(TTFont(DEVANAGARI_FONT, path))
            self.devanagari_font = DEVANAGARI_FONT
        except Exception as e:
            logger.error(f"Failed to register Devanagari font {path}: {e}")

    def _content_width(self, style: TemplateStyle) -> float:
        return self.page_width - style.padding[1] - style.padding[3]

    def _build_styles(self, style: TemplateStyle) -> Dict[str, ParagraphStyle]:
        base = getSampleStyleSheet()
        center = style.layout != "default"
        return {
            "name": ParagraphStyle(
                name="BiodataName",
                parent=base["Heading1"],
                fontName=style.bold_font,
                fontSize=22,
                alignment=TA_CENTER,
                spaceAfter=14,
                textColor=colors.HexColor(style.section_color if not style.band_color else style.band_color),
            ),
            "section": ParagraphStyle(
                name="BiodataSection",
                parent=base["Heading2"],
                fontName=style.bold_font,
                fontSize=14,
                alignment=TA_CENTER if center else TA_LEFT,
                spaceBefore=8,
                spaceAfter=10,
                textColor=colors.HexColor(style.section_color),
            ),
            "label": ParagraphStyle(
                name="BiodataLabel",
                parent=base["Normal"],
                fontName=style.bold_font,
                fontSize=11,
                leading=15,
                textColor=colors.HexColor(style.label_color),
            ),
            "value": ParagraphStyle(
                name="BiodataValue",
                parent=base["Normal"],
                fontName=style.font,
                fontSize=11,
                leading=15,
                textColor=colors.HexColor(style.value_color),
            ),
            "caption": ParagraphStyle(
                name="BiodataCaption",
                parent=base["Normal"],
                fontName=style.font,
                fontSize=10,
                alignment=TA_CENTER,
                textColor=colors.HexColor("#718096"),
            ),
        }

    def render(
        self,
        template_id: str,
        form_data: Any,
        image_path: Optional[str] = None,
        preview: bool = False
    ) -> bytes:
        """
        Generate the complete biodata PDF.

        Raises InvalidTemplateError for unknown template ids.
        """
        style = get_template(template_id)
        styles = self._build_styles(style)
        sections = normalize_sections(form_data)

        buffer = BytesIO()
        top, right, bottom, left = style.padding
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            topMargin=top,
            rightMargin=right,
            bottomMargin=bottom,
            leftMargin=left,
            title="Biodata",
        )

        side_image = image_path if style.layout == "default" else None

        story = []
        story.extend(self._build_header(style, styles, sections, image_path, preview))
        for section in sections:
            section_story = self._build_section(style, styles, section, preview, side_image)
            if section_story:
                story.extend(section_story)
                side_image = None

        if not story:
            story.append(Paragraph("No details provided.", styles["caption"]))

        def decorate(canvas, _doc):
            self._draw_page(canvas, style, preview)

        doc.build(story, onFirstPage=decorate, onLaterPages=decorate)

        pdf_bytes = buffer.getvalue()
        buffer.close()

        return pdf_bytes

    def _draw_page(self, canvas, style: TemplateStyle, preview: bool):
        canvas.saveState()
        if style.background_color:
            canvas.setFillColor(colors.HexColor(style.background_color))
            canvas.rect(0, 0, self.page_width, self.page_height, stroke=0, fill=1)

        inset = 18
        canvas.setStrokeColor(colors.HexColor(style.border_color))
        canvas.setLineWidth(3)
        canvas.rect(inset, inset, self.page_width - 2 * inset, self.page_height - 2 * inset)
        canvas.setLineWidth(0.8)
        canvas.rect(inset + 6, inset + 6, self.page_width - 2 * (inset + 6), self.page_height - 2 * (inset + 6))

        if preview:
            canvas.setFillColor(colors.Color(0.6, 0.6, 0.6, alpha=0.25))
            canvas.setFont("Helvetica-Bold", 72)
            canvas.translate(self.page_width / 2, self.page_height / 2)
            canvas.rotate(45)
            canvas.drawCentredString(0, 0, "PREVIEW")
        canvas.restoreState()

    def _build_header(
        self,
        style: TemplateStyle,
        styles: Dict[str, ParagraphStyle],
        sections: List[Dict[str, Any]],
        image_path: Optional[str],
        preview: bool = False
    ) -> List:
        """Name banner and, for centred layouts, the profile photo"""
        elements = []

        if style.layout != "default":
            if image_path:
                elements.append(self._profile_image(image_path, style, styles))
                elements.append(Spacer(1, 12))
            name = get_front_details(sections)["name"]
            if name and preview:
                name = mask_vowels(name)
            if name and style.name_highlight:
                elements.append(Paragraph(escape(name), styles["name"]))

        if style.band_color:
            band = Table([[""]], colWidths=[self._content_width(style)], rowHeights=[4])
            band.setStyle(TableStyle([("BACKGROUND", (0, 0), (-1, -1), colors.HexColor(style.band_color))]))
            elements.append(band)
            elements.append(Spacer(1, 10))

        return elements

    def _build_section(
        self,
        style: TemplateStyle,
        styles: Dict[str, ParagraphStyle],
        section: Dict[str, Any],
        preview: bool,
        image_path: Optional[str] = None
    ) -> List:
        fields = visible_fields(section, preview)
        if not fields:
            return []

        heading = Paragraph(escape(section["key"]), styles["section"])
        if style.band_color:
            heading = Table([[heading]], colWidths=[self._content_width(style)])
            heading.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor(style.band_color)),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
            ]))

        rows = []
        for field in fields:
            value = get_value(field, masked=preview)
            value_style = styles["value"]
            if self.devanagari_font and contains_devanagari(value):
                value_style = ParagraphStyle(name="BiodataValueDeva", parent=value_style, fontName=self.devanagari_font)
            rows.append([
                Paragraph(escape(get_label(field)), styles["label"]),
                Paragraph(":", styles["label"]),
                Paragraph(escape(value), value_style),
            ])

        width = self._content_width(style)
        if image_path:
            width -= PROFILE_SIZE + 12

        table = Table(rows, colWidths=[1.9 * inch, 0.2 * inch, width - 2.1 * inch])
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ]))

        if image_path:
            table = Table(
                [[table, self._profile_image(image_path, style, styles)]],
                colWidths=[width, PROFILE_SIZE + 12]
            )
            table.setStyle(TableStyle([
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 0),
            ]))

        return [KeepTogether([heading, table]), Spacer(1, 14)]

    # =========================================================================
    # PROFILE IMAGE
    # =========================================================================

    def _profile_image(self, image_path: str, style: TemplateStyle, styles: Dict[str, ParagraphStyle]):
        try:
            raw = self._read_image(image_path)
            img_buffer = self._normalize_image(raw, round_crop=style.image_variant != "default")
            img = RLImage(img_buffer, width=PROFILE_SIZE, height=PROFILE_SIZE)
            img.hAlign = "CENTER"
            return img
        except Exception as e:
            logger.error(f"Failed to process profile image: {e}")
            return Paragraph("[Image could not be processed]", styles["caption"])

    def _read_image(self, image_path: str) -> bytes:
        """
        Resolve a client-supplied image reference.

        Accepts data URLs, bare base64 and http(s) URLs on an allowed host.
        Server-side paths are never read; redirects are not followed.
        """
        if image_path.startswith("data:"):
            image_path = image_path.split(",", 1)[1] if "," in image_path else ""
            return base64.b64decode(image_path, validate=True)

        if image_path.startswith(("http://", "https://")):
            host = (urlparse(image_path).hostname or "").lower()
            if host not in self.allowed_image_hosts:
                raise ImageSourceError(f"Image host not allowed: {host or image_path!r}")
            response = httpx.get(image_path, timeout=self.image_timeout, follow_redirects=False)
            response.raise_for_status()
            return response.content

        try:
            return base64.b64decode(image_path, validate=True)
        except ValueError:
            raise ImageSourceError("Image must be a data URL, base64 data or an allowed http(s) URL")

    def _normalize_image(self, raw: bytes, round_crop: bool) -> BytesIO:
        """Square-crop, downscale and optionally circle-mask the photo"""
        with PILImage.open(BytesIO(raw)) as source:
            image = source.convert("RGB")

        side = min(image.size)
        left = (image.width - side) // 2
        top = (image.height - side) // 2
        image = image.crop((left, top, left + side, top + side))
        image.thumbnail((MAX_IMAGE_PIXELS, MAX_IMAGE_PIXELS))

        if round_crop:
            mask = PILImage.new("L", image.size, 0)
            ImageDraw.Draw(mask).ellipse((0, 0, image.width, image.height), fill=255)
            rounded = PILImage.new("RGB", image.size, "white")
            rounded.paste(image, mask=mask)
            image = rounded

        out = BytesIO()
        image.save(out, format="PNG")
        out.seek(0)
        return out

    def get_filename(self, record_id: str) -> str:
        return f"biodata-{record_id}.pdf"
