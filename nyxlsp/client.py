"""Language server client: a server process driven over JSON-RPC from a background thread."""

from __future__ import annotations

import os
import queue
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from .protocol import (
    CodeAction,
    CompletionItem,
    Diagnostic,
    Hover,
    Location,
    Position,
    Range,
    ServerCapabilities,
    TextDocumentIdentifier,
    TextDocumentItem,
    VersionedTextDocumentIdentifier,
    WorkspaceEdit,
    parse_completion_response,
    parse_definition_response,
)
from .transport import read_message, write_message

_HANDSHAKE_ATTEMPTS = 20
_STDERR_READ_SIZE = 1024
_TRACKED_METHODS = frozenset(
    {
        "textDocument/completion",
        "textDocument/definition",
        "textDocument/references",
        "textDocument/hover",
        "textDocument/rename",
        "textDocument/codeAction",
    }
)


# Requests sent from the editor to the client thread.


@dataclass(frozen=True)
class DidOpen:
    uri: str
    language_id: str
    version: int
    text: str


@dataclass(frozen=True)
class DidChange:
    uri: str
    version: int
    text: str


@dataclass(frozen=True)
class DidClose:
    uri: str


@dataclass(frozen=True)
class DidSave:
    uri: str
    text: str


@dataclass(frozen=True)
class CompletionRequest:
    uri: str
    position: Position


@dataclass(frozen=True)
class GotoDefinition:
    uri: str
    position: Position


@dataclass(frozen=True)
class ReferencesRequest:
    uri: str
    position: Position


@dataclass(frozen=True)
class HoverRequest:
    uri: str
    position: Position


@dataclass(frozen=True)
class RenameRequest:
    uri: str
    position: Position
    new_name: str


@dataclass(frozen=True)
class CodeActionRequest:
    uri: str
    range: Range


@dataclass(frozen=True)
class Shutdown:
    pass


LspRequest = Union[
    DidOpen,
    DidChange,
    DidClose,
    DidSave,
    CompletionRequest,
    GotoDefinition,
    ReferencesRequest,
    HoverRequest,
    RenameRequest,
    CodeActionRequest,
    Shutdown,
]

_REQUEST_TYPES = (
    DidOpen,
    DidChange,
    DidClose,
    DidSave,
    CompletionRequest,
    GotoDefinition,
    ReferencesRequest,
    HoverRequest,
    RenameRequest,
    CodeActionRequest,
    Shutdown,
)


# Responses sent from the client thread back to the editor.


@dataclass(frozen=True)
class Initialized:
    capabilities: ServerCapabilities


@dataclass(frozen=True)
class Diagnostics:
    uri: str
    diagnostics: list[Diagnostic]


@dataclass(frozen=True)
class Completions:
    items: list[CompletionItem]


@dataclass(frozen=True)
class Definition:
    locations: list[Location]


@dataclass(frozen=True)
class References:
    locations: list[Location]


@dataclass(frozen=True)
class HoverResult:
    hover: Hover | None


@dataclass(frozen=True)
class RenameResult:
    edit: WorkspaceEdit | None


@dataclass(frozen=True)
class CodeActions:
    actions: list[CodeAction]


@dataclass(frozen=True)
class ServerError:
    message: str


@dataclass(frozen=True)
class ServerStopped:
    pass


LspResponse = Union[
    Initialized,
    Diagnostics,
    Completions,
    Definition,
    References,
    HoverResult,
    RenameResult,
    CodeActions,
    ServerError,
    ServerStopped,
]


@dataclass(eq=False)
class LspClientHandle:
    """The editor's side of a running client: a request queue and a response queue."""

    server_name: str
    capabilities: ServerCapabilities | None = None
    request_queue: queue.Queue = field(default_factory=queue.Queue, repr=False)
    response_queue: queue.Queue = field(default_factory=queue.Queue, repr=False)
    _thread: threading.Thread | None = field(default=None, init=False, repr=False)

    def send(self, request: LspRequest) -> None:
        """Queue ``request`` for the client thread."""
        if not isinstance(request, _REQUEST_TYPES):
            raise TypeError(f"not an LSP request: {request!r}")
        self.request_queue.put(request)

    def poll_responses(self) -> list[LspResponse]:
        """Every response that has arrived so far, oldest first, without blocking."""
        responses: list[LspResponse] = []
        while True:
            try:
                responses.append(self.response_queue.get_nowait())
            except queue.Empty:
                return responses


def initialize_message(request_id: int, root_uri: str) -> dict:
    """The ``initialize`` request announcing the capabilities the editor supports."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "processId": os.getpid(),
            "rootUri": root_uri,
            "capabilities": {
                "textDocument": {
                    "completion": {"completionItem": {"snippetSupport": False}},
                    "publishDiagnostics": {"relatedInformation": False},
                    "synchronization": {"didSave": True},
                    "hover": {"contentFormat": ["plaintext"]},
                    "definition": {},
                    "references": {},
                    "rename": {},
                    "codeAction": {},
                }
            },
        },
    }


def _notification(method: str, params: Any) -> dict:
    return {"jsonrpc": "2.0", "method": method, "params": params}


def _call(request_id: int, method: str, params: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}


def build_message(request: LspRequest, request_id: int) -> list[dict]:
    """The JSON-RPC messages that carry ``request``; calls use ``request_id``."""
    match request:
        case DidOpen(uri, language_id, version, text):
            item = TextDocumentItem(uri, language_id, version, text)
            return [_notification("textDocument/didOpen", {"textDocument": item.to_dict()})]
        case DidChange(uri, version, text):
            ident = VersionedTextDocumentIdentifier(uri, version)
            return [
                _notification(
                    "textDocument/didChange",
                    {"textDocument": ident.to_dict(), "contentChanges": [{"text": text}]},
                )
            ]
        case DidClose(uri):
            return [
                _notification(
                    "textDocument/didClose", {"textDocument": TextDocumentIdentifier(uri).to_dict()}
                )
            ]
        case DidSave(uri, text):
            return [
                _notification(
                    "textDocument/didSave",
                    {"textDocument": TextDocumentIdentifier(uri).to_dict(), "text": text},
                )
            ]
        case CompletionRequest(uri, position):
            return [_call(request_id, "textDocument/completion", _position_params(uri, position))]
        case GotoDefinition(uri, position):
            return [_call(request_id, "textDocument/definition", _position_params(uri, position))]
        case ReferencesRequest(uri, position):
            params = _position_params(uri, position)
            params["context"] = {"includeDeclaration": True}
            return [_call(request_id, "textDocument/references", params)]
        case HoverRequest(uri, position):
            return [_call(request_id, "textDocument/hover", _position_params(uri, position))]
        case RenameRequest(uri, position, new_name):
            params = _position_params(uri, position)
            params["newName"] = new_name
            return [_call(request_id, "textDocument/rename", params)]
        case CodeActionRequest(uri, rng):
            params = {
                "textDocument": TextDocumentIdentifier(uri).to_dict(),
                "range": rng.to_dict(),
                "context": {"diagnostics": []},
            }
            return [_call(request_id, "textDocument/codeAction", params)]
        case Shutdown():
            return [_call(request_id, "shutdown", None), _notification("exit", None)]
    raise TypeError(f"not an LSP request: {request!r}")


def _position_params(uri: str, position: Position) -> dict:
    return {"textDocument": TextDocumentIdentifier(uri).to_dict(), "position": position.to_dict()}


_MISSING = object()


def _parse_or(parse: Callable[[Any], Any], value: Any, default: Any) -> Any:
    try:
        return parse(value)
    except (ValueError, TypeError, KeyError, AttributeError):
        return default


def _parse_list(parse_item: Callable[[Any], Any]) -> Callable[[Any], list]:
    def parse(value: Any) -> list:
        if not isinstance(value, list):
            raise ValueError("expected an array")
        return [parse_item(item) for item in value]

    return parse


_parse_diagnostics = _parse_list(Diagnostic.from_dict)
_parse_locations = _parse_list(Location.from_dict)
_parse_code_actions = _parse_list(CodeAction.from_dict)


def _message_id(msg: dict) -> int | None:
    value = msg.get("id")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _error_message(error: Any, default: str) -> str:
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return default


def handle_server_message(msg: Any, pending_requests: dict[int, str]) -> LspResponse | None:
    """Turn one message from the server into a response for the editor, if it warrants one.

    Responses are matched to requests through ``pending_requests``, from which
    the answered id is removed.
    """
    if not isinstance(msg, dict):
        return None

    if msg.get("method") == "textDocument/publishDiagnostics":
        if "params" not in msg:
            return None
        params = msg["params"] if isinstance(msg["params"], dict) else {}
        uri = params.get("uri")
        uri = uri if isinstance(uri, str) else ""
        raw = params.get("diagnostics", _MISSING)
        diagnostics = [] if raw is _MISSING else _parse_or(_parse_diagnostics, raw, [])
        return Diagnostics(uri, diagnostics)

    request_id = _message_id(msg)
    if request_id is None:
        return None

    method = pending_requests.pop(request_id, None)

    if "error" in msg:
        return ServerError(_error_message(msg["error"], "Unknown error"))

    result = msg.get("result", _MISSING)
    absent = result is _MISSING or result is None

    match method:
        case "textDocument/completion":
            if result is _MISSING:
                return None
            items = _parse_or(parse_completion_response, result, None)
            return None if items is None else Completions(items)
        case "textDocument/definition":
            return Definition([] if absent else _parse_or(parse_definition_response, result, []))
        case "textDocument/references":
            return References([] if absent else _parse_or(_parse_locations, result, []))
        case "textDocument/hover":
            return HoverResult(None if absent else _parse_or(Hover.from_dict, result, None))
        case "textDocument/rename":
            return RenameResult(None if absent else _parse_or(WorkspaceEdit.from_dict, result, None))
        case "textDocument/codeAction":
            return CodeActions([] if absent else _parse_or(_parse_code_actions, result, []))
    return None


@dataclass(frozen=True)
class _ServerMessage:
    value: Any


_SERVER_EOF = object()


def _read_stderr(process: subprocess.Popen) -> str:
    try:
        data = process.stderr.read1(_STDERR_READ_SIZE)
    except (OSError, ValueError):
        return ""
    return data.decode("utf-8", errors="replace").strip()


def _stop(process: subprocess.Popen) -> None:
    try:
        process.kill()
    except OSError:
        pass


def _send(process: subprocess.Popen, message: dict) -> None:
    try:
        write_message(process.stdin, message)
    except (OSError, ValueError):
        pass


def _pump_stdout(process: subprocess.Popen, inbox: queue.Queue) -> None:
    while True:
        try:
            value = read_message(process.stdout)
        except (OSError, ValueError):
            inbox.put(_SERVER_EOF)
            return
        inbox.put(_ServerMessage(value))


def _handshake(process: subprocess.Popen, responses: queue.Queue, init_id: int, root_uri: str) -> bool:
    try:
        write_message(process.stdin, initialize_message(init_id, root_uri))
    except (OSError, ValueError):
        detail = _read_stderr(process)
        message = f"Server error: {detail}" if detail else "Failed to send initialize"
        responses.put(ServerError(message))
        return False

    for _ in range(_HANDSHAKE_ATTEMPTS):
        try:
            reply = read_message(process.stdout)
        except (OSError, ValueError) as exc:
            detail = _read_stderr(process)
            message = (
                f"Server startup failed: {detail}"
                if detail
                else f"Failed to read initialize response: {exc}"
            )
            responses.put(ServerError(message))
            return False
        if not isinstance(reply, dict) or _message_id(reply) != init_id:
            continue
        result = reply.get("result")
        if isinstance(result, dict) and "capabilities" in result:
            responses.put(Initialized(ServerCapabilities.from_value(result["capabilities"])))
            return True
        if "error" in reply:
            responses.put(ServerError(_error_message(reply["error"], "Initialize error")))
            return False

    responses.put(ServerError("Initialize handshake timed out"))
    return False


def _client_thread(process: subprocess.Popen, handle: LspClientHandle, root_uri: str) -> None:
    responses = handle.response_queue
    inbox = handle.request_queue
    next_id = 1

    init_id = next_id
    next_id += 1
    if not _handshake(process, responses, init_id, root_uri):
        _stop(process)
        return

    _send(process, _notification("initialized", {}))

    reader = threading.Thread(
        target=_pump_stdout, args=(process, inbox), name="lsp-reader", daemon=True
    )
    reader.start()

    pending: dict[int, str] = {}
    while True:
        item = inbox.get()
        if isinstance(item, _ServerMessage):
            response = handle_server_message(item.value, pending)
            if response is not None:
                responses.put(response)
            continue
        if item is _SERVER_EOF:
            responses.put(ServerStopped())
            break

        request_id = next_id
        messages = build_message(item, request_id)
        for message in messages:
            if message.get("id") == request_id:
                next_id += 1
                if message["method"] in _TRACKED_METHODS:
                    pending[request_id] = message["method"]
                break
        for message in messages:
            _send(process, message)
        if isinstance(item, Shutdown):
            responses.put(ServerStopped())
            break

    _stop(process)
    try:
        process.wait()
    except OSError:
        pass
    reader.join(timeout=5)


def spawn_client(server_name: str, command: str, args: list[str] | tuple[str, ...], root_uri: str) -> LspClientHandle:
    """Start ``command`` as a language server and return a handle to talk to it."""
    try:
        process = subprocess.Popen(
            [command, *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise OSError(f"Failed to spawn {command}: {exc}") from exc

    handle = LspClientHandle(server_name)
    thread = threading.Thread(
        target=_client_thread,
        args=(process, handle, root_uri),
        name=f"lsp-{server_name}",
        daemon=True,
    )
    handle._thread = thread
    thread.start()
    return handle