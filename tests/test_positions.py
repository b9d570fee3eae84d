"""Tests for offset tables and the 0-based/1-based wire conversion."""

from codeintel_mcp.models import (
    FileOutline,
    Location,
    ProjectInfo,
    Symbol,
    SymbolKind,
    SymbolNode,
)
from codeintel_mcp.positions import LineIndex, location_from_wire, to_internal, to_wire


class TestLineIndex:
    def test_offsets_round_trip(self):
        index = LineIndex("ab\ncd\n")

        assert index.line_count == 2
        assert index.offset_for(0, 0) == 0
        assert index.offset_for(1, 1) == 4
        assert index.position_of(4) == (1, 1)

    def test_end_of_line_is_addressable(self):
        index = LineIndex("ab\ncd")

        assert index.offset_for(0, 2) == 2
        assert index.offset_for(0, 3) is None
        assert index.offset_for(1, 2) == 5
        assert index.position_of(5) == (1, 2)

    def test_trailing_newline_does_not_add_a_line(self):
        index = LineIndex("a\nb\n")

        assert index.line_count == 2
        assert index.offset_for(2, 0) is None

    def test_out_of_range(self):
        index = LineIndex("abc")

        assert index.offset_for(-1, 0) is None
        assert index.offset_for(0, -1) is None
        assert index.offset_for(5, 0) is None
        assert index.position_of(-1) is None
        assert index.position_of(4) is None

    def test_empty_document(self):
        index = LineIndex("")

        assert index.line_count == 0
        assert index.offset_for(0, 0) is None
        assert index.position_of(0) is None

    def test_crlf_line_text(self):
        index = LineIndex("one\r\ntwo\r\n")

        assert index.line_text(0) == "one"
        assert index.line_text(1) == "two"
        assert index.offset_for(0, 4) is None

    def test_from_file(self, tmp_path):
        path = tmp_path / "sample.txt"
        path.write_text("first\nsecond\n", encoding="utf-8")

        index = LineIndex.from_file(path)
        assert index.line_text(1) == "second"


class TestWireConversion:
    def test_to_internal(self):
        assert to_internal(1, 1) == (0, 0)
        assert to_internal(10, 4) == (9, 3)

    def test_location_is_one_based_on_the_wire(self):
        location = Location(file_path="/a.py", line=0, column=4, end_line=2, end_column=0)

        assert to_wire(location) == {
            "filePath": "/a.py",
            "line": 1,
            "column": 5,
            "endLine": 3,
            "endColumn": 1,
        }

    def test_location_from_wire_inverts(self):
        location = Location(file_path="/a.py", line=3, column=7, end_line=4, end_column=1)
        shifted = location_from_wire(location)

        assert (shifted.line, shifted.column, shifted.end_line, shifted.end_column) == (2, 6, 3, 0)

    def test_none_fields_dropped_and_enums_rendered(self):
        symbol = Symbol(
            name="Widget",
            kind=SymbolKind.CLASS,
            language="python",
            location=Location(file_path="/w.py", line=9, column=0),
        )

        assert to_wire(symbol) == {
            "name": "Widget",
            "kind": "CLASS",
            "language": "python",
            "location": {"filePath": "/w.py", "line": 10, "column": 1},
        }

    def test_nested_records_are_converted(self):
        child = Symbol(
            name="draw",
            kind=SymbolKind.METHOD,
            language="python",
            name_location=Location(file_path="/w.py", line=3, column=8),
        )
        outline = FileOutline(
            file_path="/w.py",
            language="python",
            symbols=[SymbolNode(
                symbol=Symbol(name="Widget", kind=SymbolKind.CLASS, language="python"),
                children=[SymbolNode(symbol=child)],
            )],
        )

        wire = to_wire(outline)

        assert wire["filePath"] == "/w.py"
        assert wire["imports"] == []
        node = wire["symbols"][0]["children"][0]
        assert node["symbol"]["nameLocation"] == {"filePath": "/w.py", "line": 4, "column": 9}
        assert node["children"] == []

    def test_lists_and_plain_values(self):
        projects = [ProjectInfo(name="app", base_path="/src/app", is_active=True)]

        assert to_wire(projects) == [{"name": "app", "basePath": "/src/app", "isActive": True}]
        assert to_wire({"count": 2}) == {"count": 2}
        assert to_wire("text") == "text"
