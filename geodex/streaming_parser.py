#!/usr/bin/env python3
"""Token-level cursor over a JSON byte stream, constant memory."""
import logging, os
from typing import Any, BinaryIO, List, Optional, Tuple

import ijson
from ijson.common import JSONError, ObjectBuilder

from geodex.errors import ParseError

logger = logging.getLogger(__name__)

READ_BUFFER = int(os.environ.get("BOQ_READ_BUFFER", "65536"))

_OPENERS = frozenset(("start_map", "start_array"))
_CLOSERS = frozenset(("end_map", "end_array"))
_NOTHING = object()

Token = Tuple[str, Any]


class TokenCursor:
    """
    Walks the raw ijson event stream of one document.

    Every ``basic_parse`` event counts as one token: braces, brackets,
    object keys and scalars. The cursor keeps a single token of lookahead
    so ``more()`` can answer without consuming anything.
    """

    def __init__(self, stream: BinaryIO, path: Optional[str] = None, buf_size: int = READ_BUFFER):
        self.path = path
        self._events = ijson.basic_parse(stream, buf_size=buf_size, use_float=True)
        self._peeked: Any = _NOTHING

    def _malformed(self, e: Exception) -> ParseError:
        # yajl2_c reports bytes with a multi-line excerpt of the input
        reason = e.args[0] if isinstance(e, JSONError) and e.args else e
        if isinstance(reason, bytes):
            reason = reason.decode("utf-8", errors="replace")
        lines = str(reason).strip().splitlines()
        return ParseError(f"malformed JSON: {lines[0] if lines else type(e).__name__}", path=self.path)

    def _advance(self) -> Optional[Token]:
        try:
            return next(self._events)
        except StopIteration:
            return None
        except (JSONError, UnicodeDecodeError) as e:
            raise self._malformed(e) from e

    def _peek(self) -> Optional[Token]:
        if self._peeked is _NOTHING:
            self._peeked = self._advance()
        return self._peeked

    def _take(self) -> Token:
        token = self._peek()
        self._peeked = _NOTHING
        if token is None:
            raise ParseError("unexpected end of input", path=self.path)
        return token

    def more(self) -> bool:
        """True if another value follows at the current nesting level."""
        token = self._peek()
        return token is not None and token[0] not in _CLOSERS

    def skip_tokens(self, count: int) -> List[Token]:
        """Consume exactly ``count`` raw tokens and return them."""
        return [self._take() for _ in range(count)]

    def decode_next(self) -> Any:
        """Decode the next complete JSON value into Python objects."""
        event, value = self._take()
        if event in _CLOSERS or event == "map_key":
            raise ParseError(f"expected a value, got {event}", path=self.path)
        if event not in _OPENERS:
            return value

        builder = ObjectBuilder()
        build = builder.event
        build(event, value)
        depth = 1
        # the lookahead slot is empty here, so read the parser directly
        try:
            for event, value in self._events:
                build(event, value)
                if event in _OPENERS:
                    depth += 1
                elif event in _CLOSERS:
                    depth -= 1
                    if not depth:
                        return builder.value
        except (JSONError, UnicodeDecodeError) as e:
            raise self._malformed(e) from e
        raise ParseError("unexpected end of input", path=self.path)
