import json

import pytest

from nyxlsp.protocol import (
    CodeAction,
    CompletionItem,
    CompletionItemKind,
    Diagnostic,
    DiagnosticSeverity,
    Hover,
    Location,
    Position,
    Range,
    ServerCapabilities,
    TextDocumentIdentifier,
    TextDocumentItem,
    TextDocumentSyncKind,
    TextEdit,
    VersionedTextDocumentIdentifier,
    WorkspaceEdit,
    char_offset_to_lsp_position,
    lsp_position_to_char_offset,
    parse_completion_response,
    parse_definition_response,
)


def test_position_conversion_ascii():
    text = "hello\nworld\nfoo"
    assert char_offset_to_lsp_position(text, 6) == Position(1, 0)
    assert lsp_position_to_char_offset(text, Position(1, 0)) == 6


def test_position_conversion_unicode():
    text = "åäö\nhej"
    assert char_offset_to_lsp_position(text, 4) == Position(1, 0)
    assert lsp_position_to_char_offset(text, Position(1, 0)) == 4


def test_position_conversion_emoji():
    text = "a😀b\nc"
    assert char_offset_to_lsp_position(text, 2) == Position(0, 3)
    assert lsp_position_to_char_offset(text, Position(0, 3)) == 2


def test_position_start_of_file():
    text = "hello"
    assert char_offset_to_lsp_position(text, 0) == Position(0, 0)
    assert lsp_position_to_char_offset(text, Position(0, 0)) == 0


def test_position_past_end_clamps_to_text_length():
    assert lsp_position_to_char_offset("ab\ncd", Position(5, 0)) == 5


def test_completion_item_text_to_insert():
    item = CompletionItem(
        label="println!", kind=CompletionItemKind.FUNCTION, insert_text="println!($0)"
    )
    assert item.text_to_insert() == "println!($0)"
    item2 = CompletionItem(label="String", kind=CompletionItemKind.STRUCT)
    assert item2.text_to_insert() == "String"


def test_server_capabilities_from_value():
    caps = ServerCapabilities.from_value(
        json.loads('{"textDocumentSync": 1, "completionProvider": {"triggerCharacters": ["."]}}')
    )
    assert caps.text_document_sync is TextDocumentSyncKind.FULL
    assert caps.completion_provider is True
    assert caps.hover_provider is False


def test_server_capabilities_object_sync():
    caps = ServerCapabilities.from_value(json.loads('{"textDocumentSync": {"change": 2}}'))
    assert caps.text_document_sync is TextDocumentSyncKind.INCREMENTAL
    assert caps.completion_provider is False


def test_server_capabilities_provider_presence_only():
    caps = ServerCapabilities.from_value({"hoverProvider": False, "renameProvider": None})
    assert caps.hover_provider is True
    assert caps.rename_provider is True
    assert caps.text_document_sync is TextDocumentSyncKind.NONE


def test_completion_item_kind_icons():
    assert CompletionItemKind.FUNCTION.icon() == "fn"
    assert CompletionItemKind.METHOD.icon() == "fn"
    assert CompletionItemKind.CLASS.icon() == "st"
    assert CompletionItemKind.CONSTANT.icon() == "cn"
    assert CompletionItemKind.TEXT.icon() == "  "


def test_completion_item_from_dict():
    item = CompletionItem.from_dict(
        {"label": "foo", "kind": 3, "insertText": "foo()", "filterText": "foo", "detail": None}
    )
    assert item == CompletionItem(
        label="foo", kind=CompletionItemKind.FUNCTION, insert_text="foo()", filter_text="foo"
    )


def test_completion_item_requires_label():
    with pytest.raises(ValueError):
        CompletionItem.from_dict({"kind": 3})


def test_parse_completion_response_array_and_list():
    array = parse_completion_response([{"label": "a"}, {"label": "b"}])
    assert [i.label for i in array] == ["a", "b"]
    listed = parse_completion_response({"isIncomplete": False, "items": [{"label": "c"}]})
    assert [i.label for i in listed] == ["c"]


def test_parse_completion_response_needs_is_incomplete():
    with pytest.raises(ValueError):
        parse_completion_response({"items": [{"label": "c"}]})


def test_diagnostic_from_dict():
    diag = Diagnostic.from_dict(
        {
            "range": {"start": {"line": 1, "character": 2}, "end": {"line": 1, "character": 5}},
            "severity": 2,
            "message": "unused",
        }
    )
    assert diag.range == Range(Position(1, 2), Position(1, 5))
    assert diag.severity is DiagnosticSeverity.WARNING
    assert diag.message == "unused"
    assert diag.source is None


def test_diagnostic_without_severity():
    diag = Diagnostic.from_dict(
        {"range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 1}}, "message": "x"}
    )
    assert diag.severity is None


def test_position_rejects_negative():
    with pytest.raises(ValueError):
        Position.from_dict({"line": -1, "character": 0})


def test_hover_variants():
    assert Hover.from_dict({"contents": "plain"}).to_plain_text() == "plain"
    assert Hover.from_dict({"contents": {"language": "rust", "value": "fn x()"}}).to_plain_text() == "fn x()"
    assert (
        Hover.from_dict({"contents": ["a", {"language": "rust", "value": "b"}]}).to_plain_text()
        == "a\nb"
    )
    assert Hover.from_dict({"contents": {"kind": "markdown", "value": "**m**"}}).to_plain_text() == "**m**"


def test_hover_invalid_contents():
    with pytest.raises(ValueError):
        Hover.from_dict({"contents": 5})


def test_parse_definition_single_and_array():
    loc = {"uri": "file:///a.rs", "range": {"start": {"line": 3, "character": 4}, "end": {"line": 3, "character": 8}}}
    single = parse_definition_response(loc)
    assert single == [Location("file:///a.rs", Range(Position(3, 4), Position(3, 8)))]
    assert parse_definition_response([loc, loc]) == single * 2


def test_workspace_edit_and_code_action():
    edit = {
        "changes": {
            "file:///a.rs": [
                {"range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 3}}, "newText": "bar"}
            ]
        }
    }
    action = CodeAction.from_dict({"title": "Rename", "kind": "quickfix", "edit": edit})
    assert action.title == "Rename"
    assert action.kind == "quickfix"
    assert action.edit == WorkspaceEdit(
        {"file:///a.rs": [TextEdit(Range(Position(0, 0), Position(0, 3)), "bar")]}
    )
    assert WorkspaceEdit.from_dict({}).changes is None


def test_serialisation_dicts():
    assert Range(Position(1, 2), Position(3, 4)).to_dict() == {
        "start": {"line": 1, "character": 2},
        "end": {"line": 3, "character": 4},
    }
    assert TextDocumentIdentifier("file:///x").to_dict() == {"uri": "file:///x"}
    assert VersionedTextDocumentIdentifier("file:///x", 3).to_dict() == {"uri": "file:///x", "version": 3}
    assert TextDocumentItem("file:///x", "rust", 1, "fn").to_dict() == {
        "uri": "file:///x",
        "languageId": "rust",
        "version": 1,
        "text": "fn",
    }


def test_position_roundtrip_dict():
    pos = Position(7, 9)
    assert Position.from_dict(pos.to_dict()) == pos


def test_conversion_roundtrip_every_offset():
    text = "a😀b\nåc\n\nxyz"
    for offset in range(len(text) + 1):
        pos = char_offset_to_lsp_position(text, offset)
        assert lsp_position_to_char_offset(text, pos) == offset