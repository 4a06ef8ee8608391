"""
Unit tests for the shallow document scanner.
"""

import unittest

from calhelper.markup import (
    END,
    START,
    TEXT,
    collect_texts,
    decode_entities,
    extract_cell_content,
    extract_cell_properties,
    extract_tables,
    extract_title,
    iter_tokens,
    parse_table,
)

from docx_fixtures import cell, document, paragraph, row, table


class TestTokenizer(unittest.TestCase):
    def test_tokens_in_order(self) -> None:
        toks = list(iter_tokens('<w:p><w:t xml:space="preserve">a b</w:t></w:p>'))
        self.assertEqual([(t.kind, t.name) for t in toks], [
            (START, "w:p"),
            (START, "w:t"),
            (TEXT, ""),
            (END, "w:t"),
            (END, "w:p"),
        ])
        self.assertEqual(toks[1].body, 'xml:space="preserve"')
        self.assertEqual(toks[2].body, "a b")

    def test_comments_and_declarations_are_skipped(self) -> None:
        xml = '<?xml version="1.0"?><!-- <w:t>hidden</w:t> --><w:t>shown</w:t>'
        self.assertEqual(collect_texts(xml), ["shown"])

    def test_unterminated_tag_stops_scan(self) -> None:
        toks = list(iter_tokens("<w:t>ok</w:t><w:p"))
        self.assertEqual(toks[-1].name, "w:t")


class TestEntities(unittest.TestCase):
    def test_named_and_numeric(self) -> None:
        self.assertEqual(decode_entities("A&amp;B &lt;x&gt; &quot;&apos; &#65;&#x42;"), "A&B <x> \"' AB")

    def test_single_pass(self) -> None:
        self.assertEqual(decode_entities("&amp;lt;"), "&lt;")

    def test_invalid_reference_is_kept(self) -> None:
        self.assertEqual(decode_entities("&#x110000;"), "&#x110000;")


class TestDocumentLevel(unittest.TestCase):
    def test_title_is_text_before_first_table(self) -> None:
        xml = document(
            paragraph("  2025-2026学年第一学期 "),
            paragraph("计算机 1班"),
            table(row(cell("星期一"))),
            paragraph("after the table"),
        )
        self.assertEqual(extract_title(xml), "2025-2026学年第一学期 计算机 1班")

    def test_title_ignores_paragraph_properties(self) -> None:
        xml = (
            '<w:p><w:pPr><w:tabs><w:tab w:val="left" w:pos="720"/></w:tabs></w:pPr>'
            "<w:r><w:t>课表</w:t></w:r></w:p><w:tbl></w:tbl>"
        )
        self.assertEqual(extract_title(xml), "课表")

    def test_title_empty_without_text(self) -> None:
        self.assertEqual(extract_title(document(table(row(cell("x"))))), "")

    def test_extract_tables_top_level_only(self) -> None:
        nested = table(row(cell("inner")))
        outer = "<w:tbl><w:tr><w:tc>" + nested + "<w:p/></w:tc></w:tr></w:tbl>"
        xml = document(outer, paragraph("gap"), table(row(cell("second"))))
        tables = extract_tables(xml)
        self.assertEqual(len(tables), 2)
        self.assertTrue(tables[0].startswith("<w:tbl>"))
        self.assertTrue(tables[0].endswith("</w:tbl>"))
        self.assertIn("inner", tables[0])
        self.assertIn("second", tables[1])

    def test_no_tables(self) -> None:
        self.assertEqual(extract_tables(document(paragraph("nothing here"))), [])


class TestTableLevel(unittest.TestCase):
    def test_rows_and_cells(self) -> None:
        xml = table(
            row(cell(""), cell("星期一", span=2)),
            row(cell("第1节 08:00~08:45"), cell("a", vmerge="restart"), cell("b")),
            row(cell("第2节 08:55~09:40"), cell("", vmerge="continue"), cell("c")),
        )
        rows = parse_table(xml)
        self.assertEqual([len(r) for r in rows], [2, 3, 3])
        self.assertEqual(rows[0][1].colspan, 2)
        self.assertEqual(rows[0][1].text, "星期一")
        self.assertIsNone(rows[0][0].vmerge)
        self.assertEqual(rows[1][1].vmerge, "restart")
        self.assertEqual(rows[2][1].vmerge, "continue")
        self.assertEqual(rows[2][2].text, "c")

    def test_nested_table_rows_stay_in_cell(self) -> None:
        nested = table(row(cell("inner 1")), row(cell("inner 2")))
        outer = "<w:tbl><w:tr><w:tc><w:tcPr/>" + nested + "</w:tc></w:tr></w:tbl>"
        rows = parse_table(outer)
        self.assertEqual(len(rows), 1)
        self.assertEqual(len(rows[0]), 1)
        self.assertEqual(rows[0][0].paragraphs, ["inner 1", "inner 2"])

    def test_truncated_table_is_tolerated(self) -> None:
        self.assertEqual(parse_table("<w:tbl><w:tr><w:tc><w:p><w:r><w:t>x"), [])


class TestCellLevel(unittest.TestCase):
    def test_paragraphs_trimmed_and_blank_skipped(self) -> None:
        xml = cell("  1-16/高等数学/张三/A101/60  \n\n1-8/线性代数/李四/B202/45")
        text, paragraphs = extract_cell_content(xml)
        self.assertEqual(paragraphs, ["1-16/高等数学/张三/A101/60", "1-8/线性代数/李四/B202/45"])
        self.assertEqual(text, "1-16/高等数学/张三/A101/60\n1-8/线性代数/李四/B202/45")

    def test_runs_are_joined_inside_paragraph(self) -> None:
        xml = "<w:tc><w:p><w:r><w:t>1-16/高等</w:t></w:r><w:r><w:t>数学/张三/A101/60</w:t></w:r></w:p></w:tc>"
        self.assertEqual(extract_cell_content(xml)[1], ["1-16/高等数学/张三/A101/60"])

    def test_vertical_tab_becomes_newline(self) -> None:
        xml = "<w:tc><w:p><w:r><w:t>a/b/c/d/e&#11;f/g/h/i/j</w:t></w:r></w:p></w:tc>"
        self.assertEqual(extract_cell_content(xml)[0], "a/b/c/d/e\nf/g/h/i/j")

    def test_entities_in_text(self) -> None:
        xml = "<w:tc><w:p><w:r><w:t>R&amp;D 实验室</w:t></w:r></w:p></w:tc>"
        self.assertEqual(extract_cell_content(xml)[0], "R&D 实验室")

    def test_empty_cell(self) -> None:
        self.assertEqual(extract_cell_content(cell("")), ("", []))

    def test_properties_defaults(self) -> None:
        self.assertEqual(extract_cell_properties(cell("x")), (1, None))

    def test_properties_span_and_merge(self) -> None:
        self.assertEqual(extract_cell_properties(cell("x", span=3, vmerge="restart")), (3, "restart"))
        self.assertEqual(extract_cell_properties(cell("", vmerge="continue")), (1, "continue"))

    def test_explicit_continue_value(self) -> None:
        xml = '<w:tc><w:tcPr><w:vMerge w:val="continue"/></w:tcPr><w:p/></w:tc>'
        self.assertEqual(extract_cell_properties(xml), (1, "continue"))

    def test_non_numeric_span_defaults_to_one(self) -> None:
        xml = '<w:tc><w:tcPr><w:gridSpan w:val="two"/></w:tcPr><w:p/></w:tc>'
        self.assertEqual(extract_cell_properties(xml), (1, None))


if __name__ == "__main__":
    unittest.main()
