from __future__ import annotations

import re

from .models import ManifestMetadata

_HEADER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
_KEY_RE = re.compile(r"^(\w+(?:-\w+)*):\s*(.*)$")

_RECOGNIZED = {
    "name": "name",
    "description": "description",
    "license": "license",
    "compatibility": "compatibility",
    "allowed-tools": "allowed_tools",
}


def split_manifest(text: str) -> tuple[str | None, str]:
    """
    Split manifest text into (header, body).

    header is None when the text does not open with a `---` delimited block;
    the body is then the whole input.
    """
    m = _HEADER_RE.match(text)
    if m is None:
        return None, text
    return m.group(1), m.group(2)


def parse_header(header: str) -> ManifestMetadata:
    """
    Tolerant line scanner for `key: value` headers.

    A key with an empty value collects the following lines indented by at least
    two spaces, trimmed and joined with single spaces. Never raises.
    """
    values: dict[str, str] = {}
    current_key = ""
    pending: list[str] = []

    def _commit() -> None:
        if current_key and pending:
            values[current_key] = " ".join(pending).strip()

    for line in header.splitlines():
        m = _KEY_RE.match(line)
        if m:
            _commit()
            pending = []
            current_key = m.group(1)
            value = m.group(2).strip()
            if value:
                values[current_key] = value
                current_key = ""
        elif current_key and line.startswith("  "):
            stripped = line.strip()
            if stripped:
                pending.append(stripped)
    _commit()

    known: dict[str, str] = {}
    extra: dict[str, str] = {}
    for key, value in values.items():
        attr = _RECOGNIZED.get(key)
        if attr is None:
            extra[key] = value
        else:
            known[attr] = value

    return ManifestMetadata(
        name=known.get("name", ""),
        description=known.get("description", ""),
        license=known.get("license"),
        compatibility=known.get("compatibility"),
        allowed_tools=known.get("allowed_tools"),
        extra=extra,
    )


def parse_manifest(text: str) -> tuple[ManifestMetadata, str]:
    header, body = split_manifest(text)
    if header is None:
        return ManifestMetadata(), body
    return parse_header(header), body
