"""
Python code generator for XGBoost tree ensemble models.

Converts trained XGBoost models into a standalone Python module whose
scoring function reproduces the ensemble's raw margin without xgboost.

Usage:
    from xgb_codegen import PythonCodeGenerator

    gen = PythonCodeGenerator("models/model.json")
    gen.generate("generated/model_score.py")
"""

from .errors import CodegenError, DecodeError, GenerationError, StructuralError
from .generator import PythonCodeGenerator, generate_source
from .model import ModelInfo, RawEnsemble, decode_ensemble, load_model, load_trees
from .syntax import check_syntax
from .tree import AssembledTree, DecisionNode, LeafNode, RawTree, assemble_tree

__all__ = [
    "AssembledTree",
    "CodegenError",
    "DecisionNode",
    "DecodeError",
    "GenerationError",
    "LeafNode",
    "ModelInfo",
    "PythonCodeGenerator",
    "RawEnsemble",
    "RawTree",
    "StructuralError",
    "assemble_tree",
    "check_syntax",
    "decode_ensemble",
    "generate_source",
    "load_model",
    "load_trees",
]
