"""HTTP header helpers for file downloads."""
from __future__ import annotations

from typing import Optional
from urllib.parse import quote


def sanitize_filename(filename: Optional[str], fallback: str) -> str:
    """去掉 CR/LF、引号和路径分隔符；结果为空时使用 fallback"""
    if not filename:
        return fallback
    cleaned = filename.replace("\r", " ").replace("\n", " ")
    for ch in ('"', "/", "\\"):
        cleaned = cleaned.replace(ch, "")
    return cleaned.strip() or fallback


def attachment_disposition(filename: str, fallback: str = "download") -> str:
    """Content-Disposition: attachment，同时给出 RFC 5987 编码的 filename*"""
    safe = sanitize_filename(filename, fallback)
    return f"attachment; filename=\"{safe}\"; filename*=UTF-8''{quote(safe)}"
