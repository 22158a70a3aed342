# -----------------------------------------------------------------------------
# Expression parser
# Purpose:
#   Turn expression strings from configuration files
#   ("16.5 * GeV / (me * c^2)", "0.5 micro", "atan2(y, x)") into an AST.
# Grammar (tightest binding first):
#   primary  := NUMBER | NAME | NAME '(' args ')' | '(' expr ')'
#   unary    := ('-' | '+') unary | primary
#   power    := unary ('^' power)?               # right-associative
#   term     := power (('*' | '/') power | power)*   # bare juxtaposition = '*'
#   expr     := term (('+' | '-') term)*
# -----------------------------------------------------------------------------

# src/qedcfg/parser.py
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Optional

from .errors import ExpressionSyntaxError
from .nodes import BinOp, Call, Expression, Name, Node, Number, UnaryOp, UnitLiteral
from .safe_eval import FUNCTIONS

# Order matters: NUMBER before NAME so "1.5e9" is one token.
TOKEN_TYPES = [
    ("NUMBER", r"(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"),
    ("NAME", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("OP", r"[-+*/^]"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("COMMA", r","),
    ("SKIP", r"\s+"),
    ("MISMATCH", r"."),
]
_MASTER = re.compile("|".join(f"(?P<{kind}>{pat})" for kind, pat in TOKEN_TYPES))


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int

    @property
    def end(self) -> int:
        return self.pos + len(self.text)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    for m in _MASTER.finditer(text):
        kind = m.lastgroup
        if kind == "SKIP":
            continue
        if kind == "MISMATCH":
            raise ExpressionSyntaxError("Invalid character", text, m.start(), m.group())
        tokens.append(Token(kind, m.group(), m.start()))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.i = 0

    # ---------------- token helpers ----------------

    def peek(self, offset: int = 0) -> Optional[Token]:
        j = self.i + offset
        return self.tokens[j] if j < len(self.tokens) else None

    def advance(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> ExpressionSyntaxError:
        if tok is None:
            return ExpressionSyntaxError(message, self.text, len(self.text), "")
        return ExpressionSyntaxError(message, self.text, tok.pos, tok.text)

    # ---------------- grammar ----------------

    def parse(self) -> Node:
        if not self.tokens:
            raise self.error("Empty expression")
        node = self.expr()
        tok = self.peek()
        if tok is not None:
            if tok.kind == "RPAREN":
                raise self.error("Unbalanced ')'", tok)
            raise self.error("Unexpected token", tok)
        return node

    def expr(self) -> Node:
        node = self.term()
        while True:
            tok = self.peek()
            if tok is None or tok.kind != "OP" or tok.text not in "+-":
                return node
            self.advance()
            node = BinOp(tok.text, node, self.term())

    def term(self) -> Node:
        node = self.power()
        while True:
            tok = self.peek()
            if tok is not None and tok.kind == "OP" and tok.text in "*/":
                self.advance()
                node = BinOp(tok.text, node, self.power())
            elif tok is not None and tok.kind in ("NUMBER", "NAME", "LPAREN"):
                # implicit multiplication: "0.5 micro", "2 (a + b)"
                if tok.kind == "NUMBER" and isinstance(node, (Number, UnitLiteral)):
                    raise self.error("Missing operator between numbers", tok)
                rhs = self.power()
                if isinstance(node, Number) and isinstance(rhs, Name):
                    node = UnitLiteral(node.value, rhs.id)
                else:
                    node = BinOp("*", node, rhs)
            else:
                return node

    def power(self) -> Node:
        base = self.unary()
        tok = self.peek()
        if tok is not None and tok.kind == "OP" and tok.text == "^":
            self.advance()
            return BinOp("^", base, self.power())
        return base

    def unary(self) -> Node:
        tok = self.peek()
        if tok is not None and tok.kind == "OP" and tok.text in "+-":
            self.advance()
            return UnaryOp(tok.text, self.unary())
        return self.primary()

    def primary(self) -> Node:
        tok = self.peek()
        if tok is None:
            raise self.error("Unexpected end of expression")
        if tok.kind == "NUMBER":
            self.advance()
            return Number(float(tok.text))
        if tok.kind == "NAME":
            return self.name_or_call()
        if tok.kind == "LPAREN":
            self.advance()
            node = self.expr()
            close = self.peek()
            if close is None or close.kind != "RPAREN":
                raise self.error("Unbalanced '('", tok)
            self.advance()
            return node
        raise self.error("Unexpected token", tok)

    def name_or_call(self) -> Node:
        tok = self.advance()
        nxt = self.peek()
        opens = nxt is not None and nxt.kind == "LPAREN"
        if tok.text in FUNCTIONS:
            if not opens:
                raise self.error(f"Function '{tok.text}' must be called with arguments", tok)
            return self.call(tok)
        if opens and nxt.pos == tok.end:
            raise self.error(f"Unknown function '{tok.text}'", tok)
        return Name(tok.text)

    def call(self, name_tok: Token) -> Node:
        lparen = self.advance()
        args: List[Node] = []
        tok = self.peek()
        if tok is not None and tok.kind == "RPAREN":
            self.advance()
        else:
            while True:
                args.append(self.expr())
                tok = self.peek()
                if tok is None:
                    raise self.error("Unbalanced '('", lparen)
                self.advance()
                if tok.kind == "RPAREN":
                    break
                if tok.kind != "COMMA":
                    raise self.error("Expected ',' or ')' in argument list", tok)
        arity = FUNCTIONS[name_tok.text][1]
        if len(args) != arity:
            raise self.error(
                f"{name_tok.text}() expects {arity} argument(s), got {len(args)}", name_tok
            )
        return Call(name_tok.text, tuple(args))


def parse(text: str) -> Expression:
    """
    Parse an expression string into an immutable Expression (source + AST).
    Raises ExpressionSyntaxError with the offending fragment and position.
    """
    if not isinstance(text, str):
        raise ExpressionSyntaxError(f"Expected an expression string, got {type(text).__name__}")
    return Expression.of(text.strip(), _Parser(text).parse())
