"""QR rendering for the pairing flow."""

from __future__ import annotations

import base64

import qrcode


def qr_svg_data_url(qr_text: str) -> str:
    """Render a pairing QR string as an SVG data URL.

    Uses the module matrix directly so no imaging backend is required.
    """
    qr = qrcode.QRCode(border=1)
    qr.add_data(qr_text)
    qr.make(fit=True)
    matrix = qr.get_matrix()
    size = len(matrix)
    cells = [
        f"<rect x='{x}' y='{y}' width='1' height='1'/>"
        for y, row in enumerate(matrix)
        for x, dark in enumerate(row)
        if dark
    ]
    svg = (
        f"<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 {size} {size}' shape-rendering='crispEdges'>"
        "<rect width='100%' height='100%' fill='white'/>"
        f"<g fill='black'>{''.join(cells)}</g></svg>"
    )
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
