"""LSP data types and position conversions between char offsets and UTF-16."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Union

_U32_MAX = 0xFFFFFFFF
_BMP_MAX = 0xFFFF


def _mapping(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object")
    return value


def _uint(value: Any, what: str, limit: int = _U32_MAX) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= limit:
        raise ValueError(f"{what} must be an unsigned integer")
    return value


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string or null")
    return value


@dataclass(frozen=True)
class Position:
    """0-based line and UTF-16 character offset."""

    line: int = 0
    character: int = 0

    def to_dict(self) -> dict:
        return {"line": self.line, "character": self.character}

    @classmethod
    def from_dict(cls, data: Any) -> Position:
        data = _mapping(data, "position")
        return cls(
            line=_uint(data.get("line"), "line"),
            character=_uint(data.get("character"), "character"),
        )


@dataclass(frozen=True)
class Range:
    start: Position = Position()
    end: Position = Position()

    def to_dict(self) -> dict:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> Range:
        data = _mapping(data, "range")
        return cls(start=Position.from_dict(data.get("start")), end=Position.from_dict(data.get("end")))


@dataclass(frozen=True)
class TextDocumentIdentifier:
    uri: str

    def to_dict(self) -> dict:
        return {"uri": self.uri}


@dataclass(frozen=True)
class VersionedTextDocumentIdentifier:
    uri: str
    version: int

    def to_dict(self) -> dict:
        return {"uri": self.uri, "version": self.version}


@dataclass(frozen=True)
class TextDocumentItem:
    """Document contents sent with didOpen."""

    uri: str
    language_id: str
    version: int
    text: str

    def to_dict(self) -> dict:
        return {
            "uri": self.uri,
            "languageId": self.language_id,
            "version": self.version,
            "text": self.text,
        }


class DiagnosticSeverity(IntEnum):
    ERROR = 1
    WARNING = 2
    INFORMATION = 3
    HINT = 4


@dataclass(frozen=True)
class Diagnostic:
    range: Range
    severity: DiagnosticSeverity | None
    message: str
    source: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Diagnostic:
        data = _mapping(data, "diagnostic")
        raw = data.get("severity")
        severity = None
        if raw is not None:
            raw = _uint(raw, "severity", 0xFF)
            if raw in DiagnosticSeverity._value2member_map_:
                severity = DiagnosticSeverity(raw)
        return cls(
            range=Range.from_dict(data.get("range")),
            severity=severity,
            message=_required_str(data, "message"),
            source=_optional_str(data, "source"),
        )


_KIND_ICONS = {
    2: "fn",
    3: "fn",
    4: "ct",
    5: "fd",
    10: "fd",
    6: "vr",
    7: "st",
    22: "st",
    8: "if",
    9: "md",
    13: "en",
    14: "kw",
    15: "sn",
    21: "cn",
}


class CompletionItemKind(IntEnum):
    TEXT = 1
    METHOD = 2
    FUNCTION = 3
    CONSTRUCTOR = 4
    FIELD = 5
    VARIABLE = 6
    CLASS = 7
    INTERFACE = 8
    MODULE = 9
    PROPERTY = 10
    UNIT = 11
    VALUE = 12
    ENUM = 13
    KEYWORD = 14
    SNIPPET = 15
    COLOR = 16
    FILE = 17
    REFERENCE = 18
    FOLDER = 19
    ENUM_MEMBER = 20
    CONSTANT = 21
    STRUCT = 22
    EVENT = 23
    OPERATOR = 24
    TYPE_PARAMETER = 25

    def icon(self) -> str:
        """Two-character tag shown next to the completion label."""
        return _KIND_ICONS.get(int(self), "  ")


@dataclass(frozen=True)
class CompletionItem:
    label: str
    kind: CompletionItemKind | None = None
    detail: str | None = None
    insert_text: str | None = None
    filter_text: str | None = None
    sort_text: str | None = None

    def text_to_insert(self) -> str:
        """The text to insert when this completion is accepted."""
        return self.insert_text if self.insert_text is not None else self.label

    @classmethod
    def from_dict(cls, data: Any) -> CompletionItem:
        data = _mapping(data, "completion item")
        raw = data.get("kind")
        kind = None
        if raw is not None:
            raw = _uint(raw, "kind", 0xFF)
            if raw in CompletionItemKind._value2member_map_:
                kind = CompletionItemKind(raw)
        return cls(
            label=_required_str(data, "label"),
            kind=kind,
            detail=_optional_str(data, "detail"),
            insert_text=_optional_str(data, "insertText"),
            filter_text=_optional_str(data, "filterText"),
            sort_text=_optional_str(data, "sortText"),
        )


def parse_completion_response(value: Any) -> list[CompletionItem]:
    """Parse a completion result: an array of items or a CompletionList."""
    if isinstance(value, list):
        return [CompletionItem.from_dict(item) for item in value]
    data = _mapping(value, "completion response")
    if not isinstance(data.get("isIncomplete"), bool):
        raise ValueError("field 'isIncomplete' must be a boolean")
    items = data.get("items")
    if not isinstance(items, list):
        raise ValueError("field 'items' must be an array")
    return [CompletionItem.from_dict(item) for item in items]


@dataclass(frozen=True)
class Location:
    uri: str
    range: Range

    @classmethod
    def from_dict(cls, data: Any) -> Location:
        data = _mapping(data, "location")
        return cls(uri=_required_str(data, "uri"), range=Range.from_dict(data.get("range")))


@dataclass(frozen=True)
class _LanguageString:
    language: str
    value: str


@dataclass(frozen=True)
class _MarkupContent:
    kind: str
    value: str


_MarkedString = Union[str, _LanguageString]
_HoverContents = Union[_MarkedString, list, _MarkupContent]


def _parse_marked_string(value: Any) -> _MarkedString:
    if isinstance(value, str):
        return value
    if (
        isinstance(value, dict)
        and isinstance(value.get("language"), str)
        and isinstance(value.get("value"), str)
    ):
        return _LanguageString(value["language"], value["value"])
    raise ValueError("invalid marked string")


def _marked_text(ms: _MarkedString) -> str:
    return ms if isinstance(ms, str) else ms.value


@dataclass(frozen=True)
class Hover:
    contents: _HoverContents

    @classmethod
    def from_dict(cls, data: Any) -> Hover:
        data = _mapping(data, "hover")
        raw = data.get("contents")
        try:
            return cls(_parse_marked_string(raw))
        except ValueError:
            pass
        if isinstance(raw, list):
            return cls([_parse_marked_string(item) for item in raw])
        if isinstance(raw, dict) and isinstance(raw.get("kind"), str) and isinstance(raw.get("value"), str):
            return cls(_MarkupContent(raw["kind"], raw["value"]))
        raise ValueError("invalid hover contents")

    def to_plain_text(self) -> str:
        """Extract plain text from any variant of hover contents."""
        contents = self.contents
        if isinstance(contents, list):
            return "\n".join(_marked_text(ms) for ms in contents)
        if isinstance(contents, _MarkupContent):
            return contents.value
        return _marked_text(contents)


@dataclass(frozen=True)
class TextEdit:
    range: Range
    new_text: str

    @classmethod
    def from_dict(cls, data: Any) -> TextEdit:
        data = _mapping(data, "text edit")
        return cls(range=Range.from_dict(data.get("range")), new_text=_required_str(data, "newText"))


@dataclass(frozen=True)
class WorkspaceEdit:
    """Workspace edit restricted to per-document text changes."""

    changes: dict[str, list[TextEdit]] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> WorkspaceEdit:
        data = _mapping(data, "workspace edit")
        raw = data.get("changes")
        if raw is None:
            return cls(None)
        raw = _mapping(raw, "changes")
        changes: dict[str, list[TextEdit]] = {}
        for uri, edits in raw.items():
            if not isinstance(edits, list):
                raise ValueError("changes must map URIs to arrays of edits")
            changes[uri] = [TextEdit.from_dict(edit) for edit in edits]
        return cls(changes)


@dataclass(frozen=True)
class CodeAction:
    title: str
    kind: str | None = None
    edit: WorkspaceEdit | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CodeAction:
        data = _mapping(data, "code action")
        edit = data.get("edit")
        return cls(
            title=_required_str(data, "title"),
            kind=_optional_str(data, "kind"),
            edit=WorkspaceEdit.from_dict(edit) if edit is not None else None,
        )


def parse_definition_response(value: Any) -> list[Location]:
    """Parse a definition result: a single Location or an array of them."""
    if isinstance(value, list):
        return [Location.from_dict(item) for item in value]
    return [Location.from_dict(value)]


class TextDocumentSyncKind(Enum):
    NONE = 0
    FULL = 1
    INCREMENTAL = 2

    @classmethod
    def from_value(cls, value: Any) -> TextDocumentSyncKind:
        if isinstance(value, int) and not isinstance(value, bool):
            if value == 1:
                return cls.FULL
            if value == 2:
                return cls.INCREMENTAL
        return cls.NONE


@dataclass(frozen=True)
class ServerCapabilities:
    """The capabilities from the initialize response that the editor uses."""

    text_document_sync: TextDocumentSyncKind = TextDocumentSyncKind.NONE
    completion_provider: bool = False
    definition_provider: bool = False
    references_provider: bool = False
    hover_provider: bool = False
    rename_provider: bool = False
    code_action_provider: bool = False

    @classmethod
    def from_value(cls, caps: Any) -> ServerCapabilities:
        if not isinstance(caps, dict):
            caps = {}
        sync = TextDocumentSyncKind.NONE
        if "textDocumentSync" in caps:
            raw = caps["textDocumentSync"]
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                sync = TextDocumentSyncKind.from_value(raw)
            elif isinstance(raw, dict) and "change" in raw:
                sync = TextDocumentSyncKind.from_value(raw["change"])
        return cls(
            text_document_sync=sync,
            completion_provider="completionProvider" in caps,
            definition_provider="definitionProvider" in caps,
            references_provider="referencesProvider" in caps,
            hover_provider="hoverProvider" in caps,
            rename_provider="renameProvider" in caps,
            code_action_provider="codeActionProvider" in caps,
        )


def char_offset_to_lsp_position(text: str, char_offset: int) -> Position:
    """Convert a char offset in ``text`` to an LSP position (line, UTF-16 column)."""
    line = 0
    col = 0
    for ch in text[:char_offset]:
        if ch == "\n":
            line += 1
            col = 0
        else:
            # Characters outside the BMP take a surrogate pair in UTF-16.
            col += 2 if ord(ch) > _BMP_MAX else 1
    return Position(line, col)


def lsp_position_to_char_offset(text: str, pos: Position) -> int:
    """Convert an LSP position to a char offset in ``text``."""
    line = 0
    col = 0
    offset = 0
    for ch in text:
        if line == pos.line and col >= pos.character:
            break
        if line > pos.line:
            break
        if ch == "\n":
            line += 1
            col = 0
        else:
            col += 2 if ord(ch) > _BMP_MAX else 1
        offset += 1
    return offset