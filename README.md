# nyxlsp

A small, dependency-free toolkit for talking to language servers from an
editor:

- `nyxlsp.transport`: Content-Length framed JSON-RPC (`write_message`,
  `read_message`, `TransportError`).
- `nyxlsp.protocol`: LSP types (`Position`, `Range`, `Diagnostic`,
  `CompletionItem`, `Location`, `Hover`, `TextEdit`, `WorkspaceEdit`,
  `CodeAction`, `ServerCapabilities`, …), parsers for completion and
  definition results, and conversion between character offsets and UTF-16
  based LSP positions.
- `nyxlsp.client`: starts a language server process, performs the
  initialize handshake on a background thread and exchanges typed requests
  and responses through queues.
- `nyxlsp.documents`: completion and code action popup state, hover and
  goto targets, `file://` URI helpers, diagnostic resolution and applying
  text edits.

## Installation

```
pip install .
```

For the test suite:

```
pip install .[test]
pytest
```

## Framing messages

```python
import io
from nyxlsp.transport import write_message, read_message

buf = io.BytesIO()
write_message(buf, {"jsonrpc": "2.0", "method": "test", "params": {}})
buf.seek(0)
print(read_message(buf)["method"])  # test
```

`read_message` raises `TransportError` at end of input, when the
`Content-Length` header is missing, or when the body is not JSON.

## Positions

LSP positions count columns in UTF-16 code units; editors usually count
characters. The protocol module converts between the two:

```python
from nyxlsp.protocol import Position, char_offset_to_lsp_position, lsp_position_to_char_offset

text = "a😀b\nc"
char_offset_to_lsp_position(text, 2)               # Position(line=0, character=3)
lsp_position_to_char_offset(text, Position(0, 3))  # 2
```

## Running a server

```python
from nyxlsp.client import spawn_client, DidOpen, CompletionRequest, Completions
from nyxlsp.protocol import Position

handle = spawn_client("pyright", "pyright-langserver", ["--stdio"], "file:///project")
handle.send(DidOpen("file:///project/main.py", "python", 1, "import os\nos."))
handle.send(CompletionRequest("file:///project/main.py", Position(1, 3)))

# later, e.g. once per frame
for response in handle.poll_responses():
    if isinstance(response, Completions):
        print([item.label for item in response.items])
```

The first response is `Initialized` (carrying the server's capabilities) or
`ServerError` if the handshake fails. Others are `Diagnostics`,
`Completions`, `Definition`, `References`, `HoverResult`, `RenameResult`,
`CodeActions`, `ServerError` and `ServerStopped`. Sending `Shutdown()` ends
the session. `build_message` and `handle_server_message` expose the
request-to-JSON and JSON-to-response steps on their own.

## Editor-side helpers

```python
from nyxlsp.documents import path_to_uri, apply_workspace_edit_to_text, offset_to_line_col
from nyxlsp.protocol import Position, Range, TextEdit

edit = TextEdit(Range(Position(0, 0), Position(0, 5)), "howdy")
apply_workspace_edit_to_text("hello world", [edit])  # "howdy world"
offset_to_line_col("hello\nworld", 8)                # (1, 2)
path_to_uri("/tmp")                                   # "file:///tmp" (canonicalised)
```

`CompletionState.filtered_items()` keeps items whose filter text contains
the typed prefix, leaving out exact matches; `move_selection` clamps the
selection to the list.

## What this package does not do

There is no list of known language servers, no lookup of server binaries on
`PATH`, no downloading or installing of servers, and no manager that picks a
server per language or debounces change notifications. The caller chooses
the command to run and drives `LspClientHandle` itself. There is no
command-line program.