from __future__ import annotations
from dataclasses import dataclass
from typing import List

from errors import MuRustParseError


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


DIGITS = "0123456789"

KEYWORDS = {
    "let": "LET",
    "mut": "MUT",
    "if": "IF",
    "else": "ELSE",
    "while": "WHILE",
    "free": "FREE",
    "drop": "DROP",
    "true": "TRUE",
    "false": "FALSE",
}

# Longest match first: two-character symbols are tried before single ones.
DOUBLE_SYMBOLS = {
    "==": "EQEQ",
    "!=": "NEQ",
    "<=": "LEQ",
    ">=": "GEQ",
    "&&": "ANDAND",
    "||": "OROR",
    "::": "COLONCOLON",
}

SYMBOLS = {
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    ";": "SEMI",
    "=": "EQUALS",
    "<": "LT",
    ">": "GT",
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "%": "PERCENT",
    "&": "AMP",
    "?": "QUESTION",
    ":": "COLON",
}


class Lexer:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch in " \t\r\n":
                _advance()
                continue
            if text.startswith("//", self.index):
                self._consume_comment()
                continue
            pair = text[self.index:self.index + 2]
            if pair in DOUBLE_SYMBOLS:
                tokens_append(Token(DOUBLE_SYMBOLS[pair], pair, self.line, self.column))
                _advance()
                _advance()
                continue
            if ch in SYMBOLS:
                tokens_append(Token(SYMBOLS[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch in DIGITS:
                tokens_append(self._consume_number())
                continue
            if self._is_identifier_start(ch):
                tokens_append(self._consume_identifier())
                continue
            raise MuRustParseError(
                f"Unexpected character '{ch}' at {self.filename}:{self.line}:{self.column}"
            )
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _consume_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        digits: List[str] = []
        while not self._eof and self._peek() in DIGITS:
            digits.append(self._peek())
            self._advance()
        if not self._eof and self._is_identifier_part(self._peek()):
            raise MuRustParseError(
                f"Invalid numeric literal at {self.filename}:{line}:{col}"
            )
        return Token("NUMBER", "".join(digits), line, col)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and self._is_identifier_part(text[self.index]):
            chars.append(text[self.index])
            _advance()
        value = "".join(chars)
        token_type: str = KEYWORDS.get(value, "IDENT")
        return Token(token_type, value, line, col)

    def _is_identifier_start(self, ch: str) -> bool:
        return ch == "_" or ch.isalpha()

    def _is_identifier_part(self, ch: str) -> bool:
        return ch == "_" or ch.isalnum()

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
