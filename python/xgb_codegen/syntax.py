"""
Parse-only well-formedness check for generated Python source.

The text is handed to the Python parser and nothing else: it is never
executed, and on success the caller gets back the very same string.
"""

import ast
import logging

from .errors import GenerationError

logger = logging.getLogger(__name__)


def check_syntax(source: str, filename: str = "<generated>") -> str:
    """
    Raise GenerationError if ``source`` does not parse; otherwise return it
    unchanged.
    """
    try:
        ast.parse(source, filename=filename, mode="exec")
    except SyntaxError as e:
        # IndentationError / TabError are SyntaxError subclasses.
        raise GenerationError(f"{type(e).__name__}: {e.msg}", lineno=e.lineno) from e
    except (RecursionError, MemoryError) as e:
        # The parser gives up on extremely deep nesting this way.
        raise GenerationError(f"source too deeply nested to parse ({type(e).__name__})") from e

    logger.debug("Syntax check passed for %s (%d bytes)", filename, len(source))
    return source
