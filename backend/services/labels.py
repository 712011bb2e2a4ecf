"""
Blood unit labels.
"""
import base64
import json
from io import BytesIO

import qrcode


def generate_qr_base64(data: str) -> str:
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


def unit_label_payload(unit: dict) -> str:
    return json.dumps({
        "unit": unit.get("unit_code") or unit["id"],
        "blood_type": unit["blood_type"],
        "component": unit.get("component"),
        "collected": unit["collection_date"],
        "expires": unit["expiry_date"],
    }, separators=(",", ":"))
