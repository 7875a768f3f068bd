"""Telegram message splitting: pack whole lines greedily, hard-cut lines over the limit."""

from __future__ import annotations


def split_message(text: str, max_length: int = 4096) -> list[str]:
    """Split text into chunks within Telegram's message length limit."""
    if not text:
        return []
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    buf = ""
    for piece in _pieces(text, max_length):
        candidate = f"{buf}\n{piece}" if buf else piece
        if len(candidate) <= max_length:
            buf = candidate
            continue
        if buf:
            chunks.append(buf)
        buf = piece
    if buf:
        chunks.append(buf)
    return [c.strip("\n") for c in chunks if c.strip()]


def _pieces(text: str, max_length: int) -> list[str]:
    """Break text into line-sized pieces no longer than max_length."""
    pieces: list[str] = []
    for line in text.split("\n"):
        while len(line) > max_length:
            pieces.append(line[:max_length])
            line = line[max_length:]
        pieces.append(line)
    return pieces
