"""
Helpers that build small WordprocessingML timetables in memory.

Only the markup the scanner cares about is produced; everything is plain
strings so tests can also build broken variants by hand.
"""

from __future__ import annotations

import io
import zipfile
from typing import Optional
from xml.sax.saxutils import escape

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
XML_DECL = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'


def cell(text: str = "", span: int = 1, vmerge: Optional[str] = None) -> str:
    """
    One <w:tc>. Lines of text become separate paragraphs.
    vmerge: None, "restart" or "continue" (written as a bare <w:vMerge/>).
    """
    props = ['<w:tcW w:w="1200" w:type="dxa"/>']
    if span > 1:
        props.append(f'<w:gridSpan w:val="{span}"/>')
    if vmerge == "restart":
        props.append('<w:vMerge w:val="restart"/>')
    elif vmerge == "continue":
        props.append("<w:vMerge/>")

    paragraphs = []
    for line in text.split("\n") if text else [""]:
        if line:
            paragraphs.append(
                '<w:p><w:pPr><w:jc w:val="center"/></w:pPr>'
                f'<w:r><w:rPr><w:sz w:val="18"/></w:rPr><w:t xml:space="preserve">{escape(line)}</w:t></w:r></w:p>'
            )
        else:
            paragraphs.append("<w:p/>")
    return f"<w:tc><w:tcPr>{''.join(props)}</w:tcPr>{''.join(paragraphs)}</w:tc>"


def row(*cells: str) -> str:
    return "<w:tr><w:trPr><w:trHeight w:val=\"400\"/></w:trPr>" + "".join(cells) + "</w:tr>"


def table(*rows: str) -> str:
    return (
        '<w:tbl><w:tblPr><w:tblW w:w="0" w:type="auto"/></w:tblPr>'
        '<w:tblGrid><w:gridCol w:w="1200"/></w:tblGrid>' + "".join(rows) + "</w:tbl>"
    )


def paragraph(text: str) -> str:
    return f"<w:p><w:r><w:t>{escape(text)}</w:t></w:r></w:p>"


def document(*body: str, title: str = "") -> str:
    title_xml = paragraph(title) if title else ""
    return (
        f"{XML_DECL}\n"
        f'<w:document xmlns:w="{W_NS}"><w:body>{title_xml}{"".join(body)}<w:sectPr/></w:body></w:document>'
    )


def body_xml(document_xml: str) -> str:
    """document.xml without its XML declaration (as embedded in Flat OPC)."""
    return document_xml.split("\n", 1)[1] if document_xml.startswith("<?xml") else document_xml


def flat_opc(document_xml: Optional[str]) -> str:
    parts = [
        '<pkg:part pkg:name="/_rels/.rels" pkg:contentType="application/vnd.openxmlformats-package.relationships+xml">'
        "<pkg:xmlData><Relationships/></pkg:xmlData></pkg:part>"
    ]
    if document_xml is not None:
        parts.append(
            '<pkg:part pkg:name="/word/document.xml" '
            'pkg:contentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml">'
            f"<pkg:xmlData>{body_xml(document_xml)}</pkg:xmlData></pkg:part>"
        )
    return (
        f"{XML_DECL}\n"
        '<?mso-application progid="Word.Document"?>\n'
        '<pkg:package xmlns:pkg="http://schemas.microsoft.com/office/2006/xmlPackage">'
        + "".join(parts)
        + "</pkg:package>"
    )


def docx_bytes(
    document_xml: Optional[str],
    compression: int = zipfile.ZIP_DEFLATED,
) -> bytes:
    """A minimal .docx; document_xml=None leaves word/document.xml out."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        zf.writestr("[Content_Types].xml", f"{XML_DECL}<Types/>")
        zf.writestr("_rels/.rels", f"{XML_DECL}<Relationships/>")
        if document_xml is not None:
            zf.writestr("word/document.xml", document_xml)
        zf.writestr("word/styles.xml", f"{XML_DECL}<w:styles/>")
    return buf.getvalue()


def simple_timetable(course_cell: str = "1-16/高等数学/张三/A101/60", title: str = "") -> str:
    """Header ["", "星期一"] plus one period row."""
    return document(
        table(
            row(cell(""), cell("星期一")),
            row(cell("第1节 08:00~08:45"), cell(course_cell)),
        ),
        title=title,
    )
