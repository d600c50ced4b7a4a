"""Requirement-document ingestion: source text to typed ``Document``."""

from reqdoc.ingestion.assembler import parse_document, parse_file
from reqdoc.ingestion.lexer import Segments, Token, decode_source, segment
from reqdoc.ingestion.serializer import deserialize_document, serialize_document
from reqdoc.ingestion.validate_block import parse_invariant, parse_tolerance

__all__ = [
    "Segments",
    "Token",
    "decode_source",
    "deserialize_document",
    "parse_document",
    "parse_file",
    "parse_invariant",
    "parse_tolerance",
    "segment",
    "serialize_document",
]
