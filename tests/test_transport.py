import io

import pytest

from nyxlsp.transport import TransportError, read_message, write_message


def test_roundtrip_message():
    msg = {"jsonrpc": "2.0", "method": "test", "params": {"hello": "world"}}
    buf = io.BytesIO()
    write_message(buf, msg)
    buf.seek(0)
    parsed = read_message(buf)
    assert parsed["method"] == "test"
    assert parsed["params"]["hello"] == "world"


def test_write_message_format():
    buf = io.BytesIO()
    write_message(buf, {"id": 1})
    output = buf.getvalue().decode("utf-8")
    assert output.startswith("Content-Length: ")
    assert "\r\n\r\n" in output
    assert output == 'Content-Length: 8\r\n\r\n{"id":1}'


def test_read_missing_content_length():
    reader = io.BytesIO(b'\r\n{"id":1}')
    with pytest.raises(TransportError):
        read_message(reader)


def test_content_length_counts_bytes():
    buf = io.BytesIO()
    write_message(buf, {"text": "åäö"})
    data = buf.getvalue()
    header, body = data.split(b"\r\n\r\n", 1)
    assert header == f"Content-Length: {len(body)}".encode()
    buf.seek(0)
    assert read_message(buf) == {"text": "åäö"}


def test_read_eof_before_headers():
    with pytest.raises(TransportError):
        read_message(io.BytesIO(b""))


def test_read_truncated_body():
    reader = io.BytesIO(b'Content-Length: 20\r\n\r\n{"id":1}')
    with pytest.raises(TransportError):
        read_message(reader)


def test_read_invalid_json():
    reader = io.BytesIO(b"Content-Length: 3\r\n\r\nabc")
    with pytest.raises(TransportError):
        read_message(reader)


def test_other_headers_ignored():
    body = b'{"id":7}'
    data = (
        b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
        + f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )
    assert read_message(io.BytesIO(data)) == {"id": 7}


def test_sequential_messages():
    buf = io.BytesIO()
    write_message(buf, {"id": 1})
    write_message(buf, {"id": 2})
    buf.seek(0)
    assert read_message(buf) == {"id": 1}
    assert read_message(buf) == {"id": 2}
    with pytest.raises(TransportError):
        read_message(buf)