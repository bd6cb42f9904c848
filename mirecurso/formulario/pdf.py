from __future__ import annotations

import textwrap
from io import BytesIO

from mirecurso.formulario.documento import Documento, lineas

PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 57
FONT_SIZE = 11
LEADING = 16
WRAP_COLUMNS = 92


def _pdf_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _wrap(lines: list[str]) -> list[str]:
    wrapped: list[str] = []
    for line in lines:
        if not line:
            wrapped.append("")
            continue
        indent = " " * (len(line) - len(line.lstrip(" ")))
        wrapped.extend(
            textwrap.wrap(line, width=WRAP_COLUMNS, subsequent_indent=indent + ("  " if indent else ""))
            or [""]
        )
    return wrapped


def _paginate(lines: list[str]) -> list[list[str]]:
    per_page = (PAGE_HEIGHT - 2 * MARGIN) // LEADING
    pages = [lines[start : start + per_page] for start in range(0, len(lines), per_page)]
    return pages or [[]]


def _page_stream(lines: list[str], page_number: int, page_count: int) -> bytes:
    text_ops = ["BT", f"/F1 {FONT_SIZE} Tf", f"{MARGIN} {PAGE_HEIGHT - MARGIN} Td"]
    for line in lines:
        text_ops.append(f"({_pdf_escape(line)}) Tj")
        text_ops.append(f"0 -{LEADING} Td")
    text_ops.append("ET")
    text_ops.extend(
        [
            "BT",
            "/F1 9 Tf",
            f"{PAGE_WIDTH - MARGIN - 40} {MARGIN // 2} Td",
            f"({page_number}/{page_count}) Tj",
            "ET",
        ]
    )
    return "\n".join(text_ops).encode("latin-1", errors="replace")


def simple_pdf(lines: list[str], title: str = "") -> bytes:
    """Minimal multi-page PDF with Helvetica text, one wrapped line per row."""
    pages = _paginate(_wrap(lines))
    page_count = len(pages)
    # Objects: 1 catalog, 2 pages, 3 font, 4 info, then a (page, contents) pair per page.
    first_page_obj = 5
    kids = " ".join(f"{first_page_obj + 2 * index} 0 R" for index in range(page_count))

    objects: list[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {page_count} >>".encode("ascii"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
        f"<< /Title ({_pdf_escape(title)}) /Producer (mirecurso) >>".encode("latin-1", errors="replace"),
    ]
    for index, page_lines in enumerate(pages):
        page_obj = first_page_obj + 2 * index
        stream = _page_stream(page_lines, index + 1, page_count)
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
            f"/Contents {page_obj + 1} 0 R /Resources << /Font << /F1 3 0 R >> >> >>".encode("ascii")
        )
        objects.append(f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"\nendstream")

    pdf = BytesIO()
    pdf.write(b"%PDF-1.4\n")
    offsets = [0]
    for idx, obj in enumerate(objects, start=1):
        offsets.append(pdf.tell())
        pdf.write(f"{idx} 0 obj\n".encode("ascii"))
        pdf.write(obj)
        pdf.write(b"\nendobj\n")

    xref_start = pdf.tell()
    pdf.write(f"xref\n0 {len(objects) + 1}\n".encode("ascii"))
    pdf.write(b"0000000000 65535 f \n")
    for off in offsets[1:]:
        pdf.write(f"{off:010d} 00000 n \n".encode("ascii"))
    pdf.write(f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R /Info 4 0 R >>\n".encode("ascii"))
    pdf.write(f"startxref\n{xref_start}\n%%EOF".encode("ascii"))
    return pdf.getvalue()


def render_pdf(documento: Documento) -> bytes:
    return simple_pdf(lineas(documento), title=documento.titulo)
