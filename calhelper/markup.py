"""
Shallow WordprocessingML scanner (document.xml -> tables, rows, cells).

This is not an XML parser. A small tokenizer walks the markup once and the
helpers below only react to the handful of element names the timetable
export uses:

    w:tbl  table         w:tc        cell
    w:tr   row           w:p         paragraph
    w:t    text run      w:gridSpan  column span (w:val)
                         w:vMerge    vertical merge (w:val)

Nesting is not validated. Broken markup leads to truncated or empty text,
not to an exception.
"""

from __future__ import annotations

import re
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from calhelper.model import RawCell

TEXT = "text"
START = "start"
END = "end"
EMPTY = "empty"

TAG_TABLE = "w:tbl"
TAG_ROW = "w:tr"
TAG_CELL = "w:tc"
TAG_PARAGRAPH = "w:p"
TAG_TEXT = "w:t"
TAG_GRID_SPAN = "w:gridSpan"
TAG_VMERGE = "w:vMerge"
ATTR_VAL = "w:val"

_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_ENTITY_RE = re.compile(r"&(#[0-9]+|#[xX][0-9a-fA-F]+|lt|gt|amp|quot|apos);")
_NAMED_ENTITIES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"', "apos": "'"}


class Token(NamedTuple):
    kind: str
    name: str
    body: str
    start: int
    end: int


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def iter_tokens(xml: str) -> Iterator[Token]:
    """
    Yield text runs and tags in document order.

    For TEXT tokens body is the raw (still entity-encoded) text; for tags it
    is the raw attribute string. Comments, processing instructions and
    declarations are skipped. An unterminated tag ends the scan.
    """
    pos = 0
    n = len(xml)
    while pos < n:
        lt = xml.find("<", pos)
        if lt == -1:
            yield Token(TEXT, "", xml[pos:], pos, n)
            return
        if lt > pos:
            yield Token(TEXT, "", xml[pos:lt], pos, lt)

        if xml.startswith("<!--", lt):
            close = xml.find("-->", lt + 4)
            if close == -1:
                return
            pos = close + 3
            continue

        gt = xml.find(">", lt + 1)
        if gt == -1:
            return
        inner = xml[lt + 1 : gt]
        pos = gt + 1

        if inner.startswith(("?", "!")):
            continue
        if inner.startswith("/"):
            yield Token(END, inner[1:].strip(), "", lt, pos)
            continue

        kind = START
        if inner.endswith("/"):
            kind = EMPTY
            inner = inner[:-1]
        parts = inner.split(None, 1)
        if not parts:
            continue
        yield Token(kind, parts[0], parts[1] if len(parts) > 1 else "", lt, pos)


def parse_attributes(body: str) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for m in _ATTR_RE.finditer(body):
        value = m.group(2) if m.group(2) is not None else m.group(3)
        attrs[m.group(1)] = value
    return attrs


def _replace_entity(m: "re.Match[str]") -> str:
    ref = m.group(1)
    if ref in _NAMED_ENTITIES:
        return _NAMED_ENTITIES[ref]
    try:
        if ref[1:2] in ("x", "X"):
            return chr(int(ref[2:], 16))
        return chr(int(ref[1:]))
    except (ValueError, OverflowError):
        return m.group(0)


def decode_entities(raw: str) -> str:
    """Decode the predefined XML entities and character references (single pass)."""
    if not raw:
        return ""
    return _ENTITY_RE.sub(_replace_entity, raw)


def _iter_text_runs(tokens: Iterator[Token]) -> Iterator[Tuple[Token, Optional[str]]]:
    """
    Pass tokens through, pairing each closing w:t with the decoded run text.
    """
    inside = False
    fragments: List[str] = []
    for tok in tokens:
        if tok.name == TAG_TEXT:
            if tok.kind == START:
                inside = True
                fragments = []
            elif tok.kind == END and inside:
                inside = False
                yield tok, decode_entities("".join(fragments))
                continue
        elif tok.kind == TEXT and inside:
            fragments.append(tok.body)
            continue
        yield tok, None


# ---------------------------------------------------------------------------
# Document level
# ---------------------------------------------------------------------------


def collect_texts(xml: str) -> List[str]:
    """All w:t run texts in a markup segment, in order."""
    return [run for _, run in _iter_text_runs(iter_tokens(xml)) if run is not None]


def extract_title(document_xml: str) -> str:
    """
    Join every text run found before the first table (trimmed, space separated).
    """
    pieces: List[str] = []
    for tok, run in _iter_text_runs(iter_tokens(document_xml)):
        if tok.name == TAG_TABLE and tok.kind in (START, EMPTY):
            break
        if run is not None and run.strip():
            pieces.append(run.strip())
    return " ".join(pieces)


def extract_tables(document_xml: str) -> List[str]:
    """
    Return the markup of every top-level w:tbl element, in document order.
    """
    tables: List[str] = []
    depth = 0
    start = 0
    for tok in iter_tokens(document_xml):
        if tok.name != TAG_TABLE:
            continue
        if tok.kind == START:
            if depth == 0:
                start = tok.start
            depth += 1
        elif tok.kind == END and depth:
            depth -= 1
            if depth == 0:
                tables.append(document_xml[start : tok.end])
    return tables


# ---------------------------------------------------------------------------
# Table level
# ---------------------------------------------------------------------------


def parse_table(table_xml: str) -> List[List[RawCell]]:
    """
    Split one table into rows of RawCell.

    Only rows and cells of this table count; rows of nested tables stay part
    of the enclosing cell's markup.
    """
    rows: List[List[RawCell]] = []
    current: Optional[List[RawCell]] = None
    depth = 0
    cell_start: Optional[int] = None

    for tok in iter_tokens(table_xml):
        if tok.name == TAG_TABLE:
            if tok.kind == START:
                depth += 1
            elif tok.kind == END and depth:
                depth -= 1
            continue
        if depth != 1:
            continue

        if tok.name == TAG_ROW:
            if tok.kind == START:
                current = []
            elif tok.kind == END and current is not None:
                rows.append(current)
                current = None
        elif tok.name == TAG_CELL and current is not None:
            if tok.kind == START:
                cell_start = tok.start
            elif tok.kind == END and cell_start is not None:
                current.append(build_raw_cell(table_xml[cell_start : tok.end]))
                cell_start = None

    return rows


def build_raw_cell(cell_xml: str) -> RawCell:
    text, paragraphs = extract_cell_content(cell_xml)
    colspan, vmerge = extract_cell_properties(cell_xml)
    return RawCell(text=text, paragraphs=paragraphs, colspan=colspan, vmerge=vmerge)


def extract_cell_content(cell_xml: str) -> Tuple[str, List[str]]:
    """
    Return (text, paragraphs) for one cell.

    Each non-blank paragraph is trimmed and kept; vertical tabs (soft line
    breaks in some exports) become newlines. text is the paragraphs joined by
    newlines.
    """
    paragraphs: List[str] = []
    fragments: Optional[List[str]] = None

    for tok, run in _iter_text_runs(iter_tokens(cell_xml)):
        if run is not None:
            if fragments is not None:
                fragments.append(run)
            continue
        if tok.name != TAG_PARAGRAPH:
            continue
        if tok.kind == START:
            fragments = []
        elif tok.kind == END and fragments is not None:
            text = "".join(fragments).replace("\x0b", "\n").strip()
            if text:
                paragraphs.append(text)
            fragments = None

    return "\n".join(paragraphs), paragraphs


def extract_cell_properties(cell_xml: str) -> Tuple[int, Optional[str]]:
    """
    Return (colspan, vmerge) from the cell's own properties.

    colspan defaults to 1. vmerge is None without a w:vMerge element,
    "continue" for a bare <w:vMerge/>, otherwise its w:val.
    """
    colspan = 1
    vmerge: Optional[str] = None
    seen_span = seen_merge = False
    depth = 0

    for tok in iter_tokens(cell_xml):
        if tok.name == TAG_TABLE:
            if tok.kind == START:
                depth += 1
            elif tok.kind == END and depth:
                depth -= 1
            continue
        if depth or tok.kind == END:
            continue

        if tok.name == TAG_GRID_SPAN and not seen_span:
            seen_span = True
            val = parse_attributes(tok.body).get(ATTR_VAL, "")
            if val.isdecimal():
                colspan = max(1, int(val))
        elif tok.name == TAG_VMERGE and not seen_merge:
            seen_merge = True
            vmerge = parse_attributes(tok.body).get(ATTR_VAL) or "continue"

    return colspan, vmerge
