"""
Error taxonomy for the model-to-source compiler.

    CodegenError
      ├── DecodeError      malformed / missing field in the model document
      ├── StructuralError  tree invariant violated (child links, class index)
      └── GenerationError  emitted text failed the syntax check (emitter bug)

Errors are raised at the first stage that can detect them and are never
downgraded to warnings or defaults.
"""

from typing import Optional


class CodegenError(Exception):
    """Base class for every error raised while compiling a model."""


class DecodeError(CodegenError, ValueError):
    """A required field is missing, has the wrong shape, or does not parse."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class StructuralError(CodegenError, ValueError):
    """A decoded tree does not form a strict binary tree."""

    def __init__(self, tree: int, message: str, node: Optional[int] = None):
        self.tree = tree
        self.node = node
        where = f"tree {tree}" if node is None else f"tree {tree}, node {node}"
        super().__init__(f"{where}: {message}")


class GenerationError(CodegenError):
    """
    The generated source does not parse.

    Input problems are caught during decoding and assembly, so reaching this
    means the emitter itself produced bad text.
    """

    def __init__(self, message: str, lineno: Optional[int] = None):
        self.lineno = lineno
        where = f" (line {lineno})" if lineno is not None else ""
        super().__init__(f"internal code generation defect{where}: {message}")
