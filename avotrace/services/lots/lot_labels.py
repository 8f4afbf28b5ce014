# avotrace/services/lots/lot_labels.py

from io import BytesIO

import qrcode
from PIL import Image, ImageDraw, ImageFont


def lot_qr_png(lot_number: str, url: str) -> bytes:
    """QR code for the lot's public page with the lot number printed below it."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(url)
    qr.make(fit=True)
    qr_img = qr.make_image(fill_color="black", back_color="white").convert("RGB")

    # lot number under the code
    qr_width, qr_height = qr_img.size
    final_img = Image.new("RGB", (qr_width, qr_height + 50), "white")
    final_img.paste(qr_img, (0, 0))

    draw = ImageDraw.Draw(final_img)
    try:
        font = ImageFont.truetype("arial.ttf", 18)
    except OSError:
        font = ImageFont.load_default()

    bbox = draw.textbbox((0, 0), lot_number, font=font)
    text_width = bbox[2] - bbox[0]
    x = max((qr_width - text_width) // 2, 0)
    draw.text((x, qr_height + 10), lot_number, fill="black", font=font)

    buf = BytesIO()
    final_img.save(buf, "PNG")
    return buf.getvalue()
