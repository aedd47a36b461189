"""
apps.config_core.services.gitlab_rb_parser
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Parser for the declarative subset of the Omnibus ``gitlab.rb`` format.

Supported statements (one per line, or separated by ``;``)::

    pages_external_url 'http://127.0.0.1:5051'         # directive call
    external_url("https://gitlab.example.com")         # directive call, parenthesised
    registry['enable'] = true                          # bracketed assignment
    gitlab_rails[:env] = { 'RAILS_ENV' => 'test' }     # symbol keys, hash literal
    nginx['custom']['listen_port'] = 8080              # nested bracket keys

Directive calls are stored under the reserved :data:`TOP_LEVEL` namespace;
bracketed assignments are stored under the receiver name.

This module is **pure Python**: it has zero Django imports and can be used
from management commands, services and tests alike.

Public API
----------
Assignment          – One parsed statement
ParseResult         – Assignments, folded settings tree and duplicate report
GitlabRbParseError  – Raised with every statement error found
GitlabRbParser      – ``parse(text)`` / ``parse_file(path)``
"""
from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

#: Namespace under which directive calls (``name 'value'``) are stored.
TOP_LEVEL = "top_level"

_KEYWORDS: dict[str, object] = {"true": True, "false": False, "nil": None}

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*[?!]?")
_SYMBOL_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:[?!]|=(?!>))?")
_NUMBER_RE = re.compile(r"[-+]?\d[\d_]*(\.\d[\d_]*)?([eE][+-]?\d+)?")
_HEX_RE = re.compile(r"[0-9A-Fa-f]{2}")

_DOUBLE_QUOTE_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "s": " ",
    "e": "\x1b",
    "0": "\0",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}

_OPENERS = {"(": "lparen", "[": "lbrack", "{": "lbrace"}
_CLOSERS = {")": "rparen", "]": "rbrack", "}": "rbrace"}
_WORD_DELIMITERS = {"(": ")", "[": "]", "{": "}", "<": ">"}


# ---------------------------------------------------------------------------
# Exception
# ---------------------------------------------------------------------------

class GitlabRbParseError(Exception):
    """
    Raised by :meth:`GitlabRbParser.parse` when the text contains one or more
    statements that cannot be parsed.

    Attributes:
        errors (list[dict]): Non-empty list of error dicts shaped as
            ``{"line": int, "column": int, "message": str}``, in source order.
    """

    def __init__(self, errors: list[dict]) -> None:
        self.errors: list[dict] = errors
        super().__init__(str(errors))


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Assignment:
    """
    A single parsed key assignment.

    Attributes:
        namespace: Receiver name, or :data:`TOP_LEVEL` for directive calls.
        path: Field name followed by any deeper bracket keys.
        value: The literal value converted to a JSON-compatible Python value.
        line: 1-based source line of the statement.
        style: ``"call"`` for directives, ``"index"`` for bracketed
            assignments.
    """

    namespace: str
    path: tuple[str, ...]
    value: object
    line: int
    style: str = "index"

    @property
    def dotted(self) -> str:
        return ".".join((self.namespace,) + self.path)


@dataclass
class ParseResult:
    """
    Output of :meth:`GitlabRbParser.parse`.

    Attributes:
        assignments: Every statement in source order.
        settings: Folded ``{namespace: {field: value}}`` tree; later
            assignments replace earlier ones.
        duplicates: ``{"field", "line", "previous_line"}`` for each key that
            was assigned more than once.
    """

    assignments: list[Assignment] = field(default_factory=list)
    settings: dict[str, dict] = field(default_factory=dict)
    duplicates: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

@dataclass
class _Token:
    kind: str
    value: object
    text: str
    line: int
    column: int
    spaced: bool = False


class _FatalLexError(Exception):
    def __init__(self, line: int, column: int, message: str) -> None:
        self.error = {"line": line, "column": column, "message": message}
        super().__init__(message)


class _Lexer:
    """Turns ``gitlab.rb`` source into tokens.

    Newlines are only significant outside brackets, braces and parentheses.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.line = 1
        self.line_start = 0
        self.depth = 0
        self.spaced = False
        self.tokens: list[_Token] = []
        self.errors: list[dict] = []

    @property
    def column(self) -> int:
        return self.pos - self.line_start + 1

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def _newline(self) -> None:
        self.line += 1
        self.line_start = self.pos + 1

    def _emit(self, kind: str, value: object, start: int, line: int, column: int) -> None:
        self.tokens.append(
            _Token(kind, value, self.text[start:self.pos], line, column, self.spaced)
        )
        self.spaced = False

    def tokenize(self) -> list[_Token]:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            start, line, column = self.pos, self.line, self.column

            if ch in " \t\r":
                self.pos += 1
                self.spaced = True
            elif ch == "\\" and self._peek(1) == "\n":
                self.pos += 2
                self.line += 1
                self.line_start = self.pos
                self.spaced = True
            elif ch == "#":
                while self.pos < len(text) and text[self.pos] != "\n":
                    self.pos += 1
            elif ch == "\n":
                if self.depth <= 0:
                    self.pos += 1
                    self._emit("newline", None, start, line, column)
                else:
                    self.pos += 1
                    self.spaced = True
                self.line += 1
                self.line_start = self.pos
            elif ch == ";":
                self.pos += 1
                if self.depth <= 0:
                    self._emit("newline", None, start, line, column)
            elif ch in ("'", '"'):
                value = self._read_string(ch)
                self._emit("string", value, start, line, column)
            elif ch == "%" and self._peek(1) in ("w", "W") and self._peek(2) in _WORD_DELIMITERS:
                value = self._read_words()
                self._emit("words", value, start, line, column)
            elif ch == ":" and self._peek(1) in ("'", '"'):
                self.pos += 1
                value = self._read_string(self._peek())
                self._emit("symbol", value, start, line, column)
            elif ch == ":" and _SYMBOL_RE.match(text, self.pos + 1):
                match = _SYMBOL_RE.match(text, self.pos + 1)
                self.pos = match.end()
                self._emit("symbol", match.group(0), start, line, column)
            elif ch == "=" and self._peek(1) == ">":
                self.pos += 2
                self._emit("arrow", None, start, line, column)
            elif ch == "=" and self._peek(1) != "=":
                self.pos += 1
                self._emit("equals", None, start, line, column)
            elif ch.isdigit() or (ch in "-+" and self._peek(1).isdigit()):
                self._read_number(start, line, column)
            elif _IDENT_RE.match(text, self.pos):
                match = _IDENT_RE.match(text, self.pos)
                self.pos = match.end()
                name = match.group(0)
                if self._peek() == ":" and self._peek(1) != ":":
                    self.pos += 1
                    self._emit("label", name, start, line, column)
                else:
                    self._emit("ident", name, start, line, column)
            elif ch in _OPENERS:
                self.pos += 1
                self.depth += 1
                self._emit(_OPENERS[ch], None, start, line, column)
            elif ch in _CLOSERS:
                self.pos += 1
                self.depth -= 1
                self._emit(_CLOSERS[ch], None, start, line, column)
            elif ch == ",":
                self.pos += 1
                self._emit("comma", None, start, line, column)
            else:
                self.pos += 1
                self._emit("unknown", ch, start, line, column)

        self.tokens.append(_Token("newline", None, "", self.line, self.column))
        self.tokens.append(_Token("eof", None, "", self.line, self.column))
        return self.tokens

    def _read_number(self, start: int, line: int, column: int) -> None:
        match = _NUMBER_RE.match(self.text, self.pos)
        self.pos = match.end()
        literal = match.group(0).replace("_", "")
        if match.group(1) or match.group(2):
            value = float(literal)
            if not math.isfinite(value):
                self.errors.append({
                    "line": line,
                    "column": column,
                    "message": f"Float literal {match.group(0)} is out of range.",
                })
            self._emit("float", value, start, line, column)
        else:
            self._emit("int", int(literal), start, line, column)

    def _read_string(self, quote: str) -> str:
        line, column = self.line, self.column
        self.pos += 1
        chars: list[str] = []
        text = self.text
        while True:
            if self.pos >= len(text):
                raise _FatalLexError(line, column, "Unterminated string literal.")
            ch = text[self.pos]
            if ch == quote:
                self.pos += 1
                return "".join(chars)
            if ch == "\n":
                self._newline()
                chars.append(ch)
                self.pos += 1
                continue
            if ch == "\\" and self.pos + 1 < len(text):
                nxt = text[self.pos + 1]
                self.pos += 2
                if nxt == "\n":
                    self.line += 1
                    self.line_start = self.pos
                if quote == "'":
                    chars.append(nxt if nxt in ("'", "\\") else "\\" + nxt)
                elif nxt == "x" and _HEX_RE.match(text, self.pos):
                    chars.append(chr(int(text[self.pos:self.pos + 2], 16)))
                    self.pos += 2
                elif nxt != "\n":
                    chars.append(_DOUBLE_QUOTE_ESCAPES.get(nxt, nxt))
                continue
            if quote == '"' and ch == "#" and text[self.pos + 1:self.pos + 2] == "{":
                self.errors.append({
                    "line": self.line,
                    "column": self.column,
                    "message": "String interpolation (#{...}) is not supported.",
                })
            chars.append(ch)
            self.pos += 1

    def _read_words(self) -> list[str]:
        line, column = self.line, self.column
        opener = self.text[self.pos + 2]
        closer = _WORD_DELIMITERS[opener]
        self.pos += 3
        end = self.text.find(closer, self.pos)
        if end == -1:
            raise _FatalLexError(line, column, "Unterminated %w word array.")
        body = self.text[self.pos:end]
        for offset, ch in enumerate(body):
            if ch == "\n":
                self.line += 1
                self.line_start = self.pos + offset + 1
        self.pos = end + 1
        return body.split()


# ---------------------------------------------------------------------------
# Statement parser
# ---------------------------------------------------------------------------

class _StatementError(Exception):
    def __init__(self, token: _Token, message: str) -> None:
        self.error = {"line": token.line, "column": token.column, "message": message}
        super().__init__(message)


def _describe(token: _Token) -> str:
    if token.kind == "newline":
        return "end of line"
    if token.kind == "eof":
        return "end of input"
    return repr(token.text)


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.errors: list[dict] = []

    def _peek(self) -> _Token:
        return self.tokens[self.pos]

    def _next(self) -> _Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        if token.kind == "unknown":
            raise _StatementError(token, f"Unexpected character {token.value!r}.")
        return token

    def _expect(self, kind: str, what: str) -> _Token:
        token = self._next()
        if token.kind != kind:
            raise _StatementError(token, f"Expected {what}; got {_describe(token)}.")
        return token

    def parse(self) -> list[Assignment]:
        assignments: list[Assignment] = []
        while True:
            while self._peek().kind == "newline":
                self._next()
            if self._peek().kind == "eof":
                return assignments
            try:
                assignments.append(self._statement())
                end = self._next()
                if end.kind not in ("newline", "eof"):
                    raise _StatementError(
                        end, f"Unexpected {_describe(end)} after statement."
                    )
            except _StatementError as exc:
                self.errors.append(exc.error)
                self._recover()

    def _recover(self) -> None:
        # The failing statement already consumed its terminating newline.
        if self.tokens[self.pos - 1].kind == "newline":
            return
        while self.tokens[self.pos].kind not in ("newline", "eof"):
            self.pos += 1

    def _statement(self) -> Assignment:
        head = self._next()
        if head.kind != "ident" or head.value in _KEYWORDS:
            raise _StatementError(
                head, f"Expected a setting name; got {_describe(head)}."
            )
        name: str = head.value  # type: ignore[assignment]
        nxt = self._peek()

        if nxt.kind == "lbrack" and not nxt.spaced:
            keys: list[str] = []
            while self._peek().kind == "lbrack" and not self._peek().spaced:
                self._next()
                keys.append(self._index_key())
                self._expect("rbrack", "']'")
            equals = self._next()
            if equals.kind != "equals":
                raise _StatementError(
                    equals,
                    f"Expected '=' after {name}[...]; got {_describe(equals)}.",
                )
            value = self._value()
            return Assignment(name, tuple(keys), value, head.line, "index")

        if nxt.kind == "equals":
            raise _StatementError(
                nxt, f"Local variable assignment to '{name}' is not supported."
            )
        if nxt.kind in ("newline", "eof"):
            raise _StatementError(nxt, f"Directive '{name}' has no value.")

        if nxt.kind == "lparen":
            self._next()
            value = self._value()
            self._expect("rparen", "')'")
        else:
            value = self._value()
        return Assignment(TOP_LEVEL, (name,), value, head.line, "call")

    def _index_key(self) -> str:
        token = self._next()
        if token.kind in ("string", "symbol"):
            return token.value  # type: ignore[return-value]
        if token.kind == "int":
            return str(token.value)
        raise _StatementError(
            token, f"Expected a string or symbol key; got {_describe(token)}."
        )

    def _value(self) -> object:
        token = self._next()
        kind = token.kind
        if kind in ("string", "int", "float", "symbol", "words"):
            return token.value
        if kind == "ident" and token.value in _KEYWORDS:
            return _KEYWORDS[token.value]  # type: ignore[index]
        if kind == "lbrack":
            return self._array()
        if kind == "lbrace":
            return self._hash()
        raise _StatementError(token, f"Expected a value; got {_describe(token)}.")

    def _array(self) -> list:
        items: list = []
        while self._peek().kind != "rbrack":
            items.append(self._value())
            if self._peek().kind == "comma":
                self._next()
            elif self._peek().kind != "rbrack":
                raise _StatementError(
                    self._peek(),
                    f"Expected ',' or ']' in array; got {_describe(self._peek())}.",
                )
        self._next()
        return items

    def _hash(self) -> dict:
        entries: dict = {}
        while self._peek().kind != "rbrace":
            token = self._next()
            if token.kind == "label":
                key = token.value
            elif token.kind in ("string", "symbol", "int"):
                key = token.value
                self._expect("arrow", "'=>'")
            else:
                raise _StatementError(
                    token, f"Expected a hash key; got {_describe(token)}."
                )
            entries[str(key)] = self._value()
            if self._peek().kind == "comma":
                self._next()
            elif self._peek().kind != "rbrace":
                raise _StatementError(
                    self._peek(),
                    f"Expected ',' or '}}' in hash; got {_describe(self._peek())}.",
                )
        self._next()
        return entries


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

class GitlabRbParser:
    """
    Stateless parser for ``gitlab.rb`` text.

    All statement errors are collected before raising so that callers get a
    single report covering the whole file.

    Usage::

        result = GitlabRbParser.parse(open("/etc/gitlab/gitlab.rb").read())
        result.settings["registry"]["enable"]   # -> True
    """

    @staticmethod
    def parse(text: str) -> ParseResult:
        """
        Parse *text* into a :class:`ParseResult`.

        Raises:
            GitlabRbParseError: If any statement cannot be parsed.
        """
        if text.startswith("\ufeff"):
            text = text[1:]

        lexer = _Lexer(text)
        try:
            tokens = lexer.tokenize()
        except _FatalLexError as exc:
            # Keep errors from complete statements read before the failure;
            # the statement holding the bad literal is reported by the lexer.
            complete = lexer.tokens
            while complete and complete[-1].kind != "newline":
                complete = complete[:-1]
            line, column = exc.error["line"], exc.error["column"]
            parser = _Parser(complete + [_Token("eof", None, "", line, column)])
            parser.parse()
            errors = lexer.errors + parser.errors + [exc.error]
            raise GitlabRbParseError(_sorted_errors(errors)) from None

        parser = _Parser(tokens)
        assignments = parser.parse()

        errors = lexer.errors + parser.errors
        if errors:
            raise GitlabRbParseError(_sorted_errors(errors))

        settings, duplicates = GitlabRbParser.fold(assignments)
        return ParseResult(assignments=assignments, settings=settings, duplicates=duplicates)

    @staticmethod
    def parse_file(path: str | Path) -> ParseResult:
        """Read *path* as UTF-8 and parse it."""
        return GitlabRbParser.parse(Path(path).read_text(encoding="utf-8"))

    @staticmethod
    def fold(assignments: list[Assignment]) -> tuple[dict[str, dict], list[dict]]:
        """
        Fold *assignments* into a settings tree, in order.

        Deeper bracket paths auto-vivify intermediate mappings the way Omnibus
        attribute hashes do; a non-mapping value found on the way is replaced.

        Returns:
            ``(settings, duplicates)``.
        """
        settings: dict[str, dict] = {}
        seen: dict[tuple[str, ...], int] = {}
        duplicates: list[dict] = []

        for assignment in assignments:
            key = (assignment.namespace,) + assignment.path
            if key in seen:
                duplicates.append({
                    "field": assignment.dotted,
                    "line": assignment.line,
                    "previous_line": seen[key],
                })
            seen[key] = assignment.line

            namespace = settings.setdefault(assignment.namespace, {})
            field_name, *rest = assignment.path
            value = copy.deepcopy(assignment.value)
            if not rest:
                namespace[field_name] = value
                continue

            target = namespace.get(field_name)
            if not isinstance(target, dict):
                target = {}
                namespace[field_name] = target
            for part in rest[:-1]:
                child = target.get(part)
                if not isinstance(child, dict):
                    child = {}
                    target[part] = child
                target = child
            target[rest[-1]] = value

        return settings, duplicates


def _sorted_errors(errors: list[dict]) -> list[dict]:
    return sorted(errors, key=lambda e: (e["line"], e["column"]))
