"""Byte-oriented multipart/form-data decoder.

The body is scanned as raw bytes with a small state machine so that audio
payloads come out exactly as they went in. Headers are read as latin-1,
which maps every byte to one character and back.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from services.errors import ParseError

CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^;\s"]+))', re.IGNORECASE)
_DISPOSITION_RE = re.compile(r"^content-disposition:", re.IGNORECASE | re.MULTILINE)
_CONTENT_TYPE_RE = re.compile(r"^content-type:\s*([^\r\n]+)", re.IGNORECASE | re.MULTILINE)
_NAME_RE = re.compile(r'\bname="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'\bfilename="([^"]*)"', re.IGNORECASE)

# Scanner states
SEEK_BOUNDARY = "seek_boundary"
READ_HEADERS = "read_headers"
READ_BODY = "read_body"
DONE = "done"


@dataclass
class UploadedFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None


@dataclass
class MultipartForm:
    fields: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, UploadedFile] = field(default_factory=dict)


def extract_boundary(content_type: str) -> str:
    """Return the boundary parameter of a multipart content-type header."""
    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        raise ParseError("No boundary found in Content-Type header")
    boundary = match.group(1) or match.group(2)
    if not boundary:
        raise ParseError("Empty boundary in Content-Type header")
    return boundary


class MultipartDecoder:
    def __init__(self, boundary: str):
        self.delimiter = b"--" + boundary.encode("latin-1")
        # A delimiter inside the body is always preceded by a line break
        self.body_delimiter = CRLF + self.delimiter

    def decode(self, body: bytes) -> MultipartForm:
        form = MultipartForm()
        state = SEEK_BOUNDARY
        pos = 0
        headers = ""

        while state != DONE:
            if state == SEEK_BOUNDARY:
                idx = body.find(self.delimiter, pos)
                if idx == -1:
                    state = DONE
                    continue
                pos = idx + len(self.delimiter)
                if body[pos:pos + 2] == b"--":
                    state = DONE
                    continue
                line_end = body.find(CRLF, pos)
                if line_end == -1:
                    state = DONE
                    continue
                pos = line_end + len(CRLF)
                state = READ_HEADERS

            elif state == READ_HEADERS:
                if body.startswith(CRLF, pos):
                    # No headers at all; the blank line starts the content
                    headers = ""
                    pos += len(CRLF)
                    state = READ_BODY
                    continue
                header_end = body.find(HEADER_END, pos)
                if header_end == -1:
                    logging.debug("Multipart part without header terminator, stopping")
                    state = DONE
                    continue
                headers = body[pos:header_end].decode("latin-1")
                pos = header_end + len(HEADER_END)
                state = READ_BODY

            elif state == READ_BODY:
                end = body.find(self.body_delimiter, pos)
                if end == -1:
                    content = body[pos:]
                    if content.endswith(CRLF):
                        content = content[:-len(CRLF)]
                    self._store_part(form, headers, content)
                    state = DONE
                    continue
                self._store_part(form, headers, body[pos:end])
                # Leave the CRLF so the delimiter search lands on it
                pos = end + len(CRLF)
                state = SEEK_BOUNDARY

        return form

    def _store_part(self, form: MultipartForm, headers: str, content: bytes) -> None:
        if not _DISPOSITION_RE.search(headers):
            return

        name_match = _NAME_RE.search(headers)
        if not name_match:
            return
        name = name_match.group(1)

        filename_match = _FILENAME_RE.search(headers)
        if filename_match:
            type_match = _CONTENT_TYPE_RE.search(headers)
            form.files[name] = UploadedFile(
                filename=filename_match.group(1),
                data=bytes(content),
                content_type=type_match.group(1).strip() if type_match else None,
            )
        else:
            form.fields[name] = content.decode("utf-8", errors="replace")


def decode_multipart(content_type: str, body: bytes) -> MultipartForm:
    return MultipartDecoder(extract_boundary(content_type)).decode(body)
