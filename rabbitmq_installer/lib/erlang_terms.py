"""Structural checks for rendered configuration text.

``rabbitmq.config`` is a single Erlang term followed by ``.``; a stray comma
or an unclosed bracket keeps the broker from booting, so rendered text is
checked here before anything is written.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

_CLOSERS = {"]": "[", "}": "{", ">>": "<<"}
_ENV_LINE = re.compile(r"^[A-Z_][A-Z0-9_]*=.*$")


class TermSyntaxError(ValueError):
    pass


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    line: int


def tokenize(text: str) -> List[Token]:
    """Split Erlang term text into punctuation and value tokens (comments dropped)."""

    tokens: List[Token] = []
    i = 0
    line = 1
    n = len(text)

    while i < n:
        ch = text[i]

        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue
        if ch == "%":
            while i < n and text[i] != "\n":
                i += 1
            continue

        if text.startswith("<<", i) or text.startswith(">>", i):
            tokens.append(Token("punct", text[i : i + 2], line))
            i += 2
            continue
        if ch in "[]{},.":
            tokens.append(Token("punct", ch, line))
            i += 1
            continue

        if ch in "\"'":
            start_line = line
            j = i + 1
            while j < n and text[j] != ch:
                if text[j] == "\\":
                    j += 1
                elif text[j] == "\n":
                    line += 1
                j += 1
            if j >= n:
                what = "string" if ch == '"' else "atom"
                raise TermSyntaxError(f"line {start_line}: unterminated {what}")
            tokens.append(Token("value", text[i : j + 1], start_line))
            i = j + 1
            continue

        j = i
        while j < n and not text[j].isspace() and text[j] not in "[]{},%\"'" and not text.startswith(
            ("<<", ">>"), j
        ):
            if text[j] == "." and (j + 1 >= n or not text[j + 1].isalnum()):
                break
            j += 1
        if j == i:
            raise TermSyntaxError(f"line {line}: unexpected character {ch!r}")
        tokens.append(Token("value", text[i:j], line))
        i = j

    return tokens


def check_config_terms(text: str) -> None:
    """Raise :class:`TermSyntaxError` unless ``text`` is one well-formed term ending in ``.``."""

    tokens = tokenize(text)
    if not tokens:
        raise TermSyntaxError("empty configuration")

    if tokens[-1].text != ".":
        raise TermSyntaxError(f"line {tokens[-1].line}: configuration must end with '.'")
    if any(t.text == "." for t in tokens[:-1]):
        stray = next(t for t in tokens[:-1] if t.text == ".")
        raise TermSyntaxError(f"line {stray.line}: unexpected '.' before end of configuration")

    stack: List[Token] = []
    prev: Token | None = None
    for tok in tokens[:-1]:
        if tok.text in ("[", "{", "<<"):
            if prev is not None and (prev.kind == "value" or prev.text in _CLOSERS):
                raise TermSyntaxError(f"line {tok.line}: missing ',' before {tok.text!r}")
            stack.append(tok)
        elif tok.text in _CLOSERS:
            if not stack or stack[-1].text != _CLOSERS[tok.text]:
                raise TermSyntaxError(f"line {tok.line}: unbalanced {tok.text!r}")
            if prev is not None and prev.text == ",":
                raise TermSyntaxError(f"line {tok.line}: trailing ',' before {tok.text!r}")
            stack.pop()
        elif tok.text == ",":
            if not stack:
                raise TermSyntaxError(f"line {tok.line}: ',' outside of any list or tuple")
            if prev is None or prev.text in (",", "[", "{", "<<"):
                raise TermSyntaxError(f"line {tok.line}: dangling ','")
        else:
            if prev is not None and (prev.kind == "value" or prev.text in ("]", "}", ">>")):
                raise TermSyntaxError(f"line {tok.line}: missing ',' before {tok.text!r}")
        prev = tok

    if stack:
        raise TermSyntaxError(f"line {stack[-1].line}: unclosed {stack[-1].text!r}")

    if tokens[0].text != "[" or (len(tokens) > 1 and tokens[-2].text != "]"):
        raise TermSyntaxError("configuration must be a single list of application sections")


def check_env_text(text: str) -> None:
    """Validate ``NAME=value`` lines (blank lines and ``#`` comments allowed)."""

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if not _ENV_LINE.match(stripped):
            raise TermSyntaxError(f"line {lineno}: expected NAME=value, got {line!r}")
