# avotrace/services/reports/pdf_layout.py
"""
Fixed-position page drawing on top of Pillow, saved as PDF.

Pages are A4 at 150 dpi (1240 x 1754 px). Coordinates are pixels from the
top-left corner.
"""
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

PAGE_SIZE = (1240, 1754)
DPI = 150.0
MARGIN = 80

_FONT_CACHE: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}


def _font(size: int, bold: bool = False):
    key = (size, bold)
    if key not in _FONT_CACHE:
        names = ("DejaVuSans-Bold.ttf", "arialbd.ttf") if bold else ("DejaVuSans.ttf", "arial.ttf")
        font = None
        for name in names:
            try:
                font = ImageFont.truetype(name, size)
                break
            except OSError:
                continue
        if font is None:
            font = ImageFont.load_default(size=size)
        _FONT_CACHE[key] = font
    return _FONT_CACHE[key]


class PdfPage:
    def __init__(self):
        self.image = Image.new("RGB", PAGE_SIZE, "white")
        self.draw = ImageDraw.Draw(self.image)

    def text(self, x: int, y: int, value, size: int = 22, bold: bool = False, fill: str = "black") -> int:
        """Draw one line of text; returns the y coordinate below it."""
        font = _font(size, bold)
        s = "" if value is None else str(value)
        self.draw.text((x, y), s, fill=fill, font=font)
        return y + int(size * 1.5)

    def rect(self, x: int, y: int, w: int, h: int, outline: str = "black",
             fill: Optional[str] = None, width: int = 2) -> None:
        self.draw.rectangle([x, y, x + w, y + h], outline=outline, fill=fill, width=width)

    def line(self, x1: int, y1: int, x2: int, y2: int, fill: str = "black", width: int = 2) -> None:
        self.draw.line([x1, y1, x2, y2], fill=fill, width=width)

    def header(self, title: str, subtitle: str = "") -> int:
        self.rect(MARGIN, MARGIN, PAGE_SIZE[0] - 2 * MARGIN, 110, fill="#1f5130", outline="#1f5130")
        self.text(MARGIN + 30, MARGIN + 20, title, size=40, bold=True, fill="white")
        if subtitle:
            self.text(MARGIN + 30, MARGIN + 70, subtitle, size=20, fill="white")
        return MARGIN + 140

    def section(self, y: int, title: str, rows: Sequence[Tuple[str, object]], label_width: int = 340) -> int:
        """Boxed key/value block; returns the y coordinate below it."""
        row_h = 34
        height = 50 + row_h * max(len(rows), 1)
        self.rect(MARGIN, y, PAGE_SIZE[0] - 2 * MARGIN, height, outline="#9ab39f")
        self.rect(MARGIN, y, PAGE_SIZE[0] - 2 * MARGIN, 42, fill="#e3efe6", outline="#9ab39f")
        self.text(MARGIN + 16, y + 8, title, size=22, bold=True)
        cy = y + 52
        for label, value in rows:
            self.text(MARGIN + 16, cy, label, size=19, fill="#444444")
            self.text(MARGIN + 16 + label_width, cy, "-" if value in (None, "", []) else value, size=19)
            cy += row_h
        return y + height + 20


def render_pdf(pages: List[PdfPage]) -> bytes:
    if not pages:
        raise ValueError("at least one page is required")
    buf = BytesIO()
    first, rest = pages[0].image, [p.image for p in pages[1:]]
    first.save(buf, "PDF", resolution=DPI, save_all=True, append_images=rest)
    return buf.getvalue()
