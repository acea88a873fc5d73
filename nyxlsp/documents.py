"""Editor-side document state: popups, diagnostics, locations, URIs and text edits."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .protocol import (
    CodeAction,
    CompletionItem,
    Diagnostic,
    DiagnosticSeverity,
    Location,
    Position,
    TextEdit,
    char_offset_to_lsp_position,
    lsp_position_to_char_offset,
)

_FILE_SCHEME = "file://"
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _clamped(selected: int, delta: int, length: int) -> int:
    return max(0, min(selected + delta, length - 1))


@dataclass
class CompletionState:
    """State of an open completion popup."""

    items: list[CompletionItem] = field(default_factory=list)
    selected: int = 0
    anchor_line: int = 0
    anchor_col: int = 0
    filter_text: str = ""

    def filtered_items(self) -> list[CompletionItem]:
        """Items whose filter text contains the typed prefix, exact matches excluded."""
        if not self.filter_text:
            return list(self.items)
        wanted = self.filter_text.lower()
        matches = []
        for item in self.items:
            text = (item.filter_text if item.filter_text is not None else item.label).lower()
            if wanted in text and text != wanted:
                matches.append(item)
        return matches

    def move_selection(self, delta: int) -> None:
        """Move the selection by ``delta``, staying within the filtered items."""
        count = len(self.filtered_items())
        if count == 0:
            return
        self.selected = _clamped(self.selected, delta, count)

    def selected_item(self) -> CompletionItem | None:
        filtered = self.filtered_items()
        if 0 <= self.selected < len(filtered):
            return filtered[self.selected]
        return None


@dataclass
class CodeActionState:
    """State of an open code action popup."""

    actions: list[CodeAction] = field(default_factory=list)
    selected: int = 0
    line: int = 0
    col: int = 0

    def move_selection(self, delta: int) -> None:
        """Move the selection by ``delta``, staying within the actions."""
        if not self.actions:
            return
        self.selected = _clamped(self.selected, delta, len(self.actions))


@dataclass(frozen=True)
class NyxDiagnostic:
    """A diagnostic resolved to 0-based line and char column positions."""

    start_line: int
    start_col: int
    end_line: int
    end_col: int
    severity: DiagnosticSeverity
    message: str


@dataclass(frozen=True)
class HoverState:
    text: str
    line: int = 0
    col: int = 0


@dataclass(frozen=True)
class GotoLocation:
    """A jump target: file path with 0-based line and column."""

    file_path: str
    line: int
    col: int


def _lines(text: str) -> list[str]:
    """Split into lines on newlines, dropping carriage returns and a final empty line."""
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
        return [p[:-1] if p.endswith("\r") else p for p in parts]
    body = [p[:-1] if p.endswith("\r") else p for p in parts[:-1]]
    body.append(parts[-1])
    return body


def _line_at(text: str, index: int) -> str:
    lines = _lines(text)
    return lines[index] if 0 <= index < len(lines) else ""


def find_completion_anchor_col(text: str, cursor_line: int, cursor_col: int) -> int:
    """Column where the identifier ending at the cursor starts."""
    line = _line_at(text, cursor_line)
    col = min(cursor_col, len(line))
    while col > 0:
        ch = line[col - 1]
        if ch.isalnum() or ch == "_":
            col -= 1
        else:
            break
    return col


def completion_filter_text(text: str, cursor_line: int, anchor_col: int, cursor_col: int) -> str:
    """The text typed between the completion anchor and the cursor."""
    line = _line_at(text, cursor_line)
    count = max(cursor_col - anchor_col, 0)
    return line[anchor_col:anchor_col + count]


def _cursor_char_offset(text: str, cursor_line: int, cursor_col: int) -> int:
    offset = 0
    for index, line in enumerate(_lines(text)):
        if index == cursor_line:
            return offset + cursor_col
        offset += len(line) + 1
    return offset


def cursor_to_lsp_position(text: str, cursor_line: int, cursor_col: int) -> Position:
    """Convert a cursor (line, char column) to an LSP position."""
    return char_offset_to_lsp_position(text, _cursor_char_offset(text, cursor_line, cursor_col))


def offset_to_line_col(text: str, char_offset: int) -> tuple[int, int]:
    """Convert a char offset to a 0-based (line, column) pair."""
    line = 0
    col = 0
    for ch in text[:char_offset]:
        if ch == "\n":
            line += 1
            col = 0
        else:
            col += 1
    return line, col


def resolve_location(loc: Location, document_texts: dict[str, str]) -> GotoLocation:
    """Turn an LSP location into a jump target with char-based columns where the text is known."""
    file_path = uri_to_path(loc.uri)
    text = document_texts.get(normalize_uri(loc.uri))
    if text is not None:
        line, col = offset_to_line_col(text, lsp_position_to_char_offset(text, loc.range.start))
        return GotoLocation(file_path, line, col)
    return GotoLocation(file_path, loc.range.start.line, loc.range.start.character)


def apply_workspace_edit_to_text(text: str, edits: list[TextEdit]) -> str:
    """Apply ``edits`` to ``text``, last position first so earlier edits keep their offsets."""
    ordered = sorted(
        edits,
        key=lambda edit: (edit.range.start.line, edit.range.start.character),
        reverse=True,
    )
    result = text
    for edit in ordered:
        start = lsp_position_to_char_offset(result, edit.range.start)
        end = lsp_position_to_char_offset(result, edit.range.end)
        if start > end:
            raise ValueError("text edit range ends before it starts")
        result = result[:start] + edit.new_text + result[end:]
    return result


def percent_decode(value: str) -> str:
    """Decode %XX escapes; malformed escapes are kept as they are."""
    data = value.encode("utf-8")
    out = bytearray()
    i = 0
    while i < len(data):
        if data[i] == ord("%") and i + 2 < len(data):
            pair = data[i + 1:i + 3].decode("latin-1")
            if all(ch in _HEX_DIGITS for ch in pair):
                out.append(int(pair, 16))
                i += 3
                continue
        out.append(data[i])
        i += 1
    return out.decode("utf-8", errors="replace")


def uri_to_path(uri: str) -> str:
    """The file path of a file:// URI; other strings are returned unchanged."""
    if uri.startswith(_FILE_SCHEME):
        return percent_decode(uri[len(_FILE_SCHEME):])
    return uri


def normalize_uri(value: str) -> str:
    """A canonical file:// URI for a path or URI, made absolute against the working directory."""
    if value.startswith(_FILE_SCHEME):
        path_part = percent_decode(value[len(_FILE_SCHEME):])
    else:
        path_part = value

    if os.path.isabs(path_part):
        absolute = path_part
    else:
        try:
            absolute = os.path.join(os.getcwd(), path_part)
        except OSError:
            absolute = path_part

    try:
        canonical = str(Path(absolute).resolve(strict=True))
    except (OSError, RuntimeError):
        canonical = absolute
    return f"{_FILE_SCHEME}{canonical}"


def path_to_uri(path: str) -> str:
    """Convert a file path (or file:// URI) to a normalised file:// URI."""
    return normalize_uri(path)


def resolve_diagnostic(diag: Diagnostic, text: str) -> NyxDiagnostic:
    """Resolve an LSP diagnostic to char-based positions in ``text``."""
    start_line, start_col = offset_to_line_col(text, lsp_position_to_char_offset(text, diag.range.start))
    end_line, end_col = offset_to_line_col(text, lsp_position_to_char_offset(text, diag.range.end))
    return NyxDiagnostic(
        start_line=start_line,
        start_col=start_col,
        end_line=end_line,
        end_col=end_col,
        severity=diag.severity if diag.severity is not None else DiagnosticSeverity.ERROR,
        message=diag.message,
    )