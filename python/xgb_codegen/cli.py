"""
CLI for Python code generation from XGBoost models.

Usage:
    python -m xgb_codegen generate --model models/model.json --output generated/model_score.py
    python -m xgb_codegen generate --model models/model.ubj --output generated/model_score.py --function-name predict_margin
    python -m xgb_codegen verify   --model models/model.json --n-samples 1000
"""

import argparse
import logging
import sys

from .errors import CodegenError
from .generator import PythonCodeGenerator
from .verify import verify


def cmd_generate(args):
    """Generate a Python scoring module from an XGBoost model."""
    gen = PythonCodeGenerator(args.model, function_name=args.function_name)
    path = gen.generate(args.output, module_name=args.module_name)

    info = gen.model_info
    print(f"Generated: {path}")
    print(f"  Function:   {args.function_name}(features)")
    print(f"  Trees:      {info.num_trees}")
    print(f"  Features:   {info.num_features if info.num_features is not None else 'unknown'}")
    print(f"  Classes:    {info.num_class}")
    print(f"  Max depth:  {info.max_depth}")
    if info.best_iteration is not None:
        print(f"  Best iter:  {info.best_iteration}")
    print(f"  Objective:  {info.objective or 'unknown'}")
    print(f"  Base score: {', '.join(f'{b:.8f}' for b in info.base_score)}")


def cmd_verify(args):
    """Verify generated code matches XGBoost Python predictions."""
    print(f"Verifying model: {args.model}")
    print(f"  Samples:     {args.n_samples}")
    print(f"  NaN fraction: {args.nan_fraction:.0%}")
    print(f"  Tolerance:   {args.tolerance:.0e}")
    print()

    result = verify(
        args.model,
        n_samples=args.n_samples,
        tolerance=args.tolerance,
        nan_fraction=args.nan_fraction,
        function_name=args.function_name,
        seed=args.seed,
    )

    if result["success"]:
        print("  PASSED")
    else:
        if "error" in result:
            print(f"  FAILED: {result['error']}")
            sys.exit(1)
        print("  FAILED")

    print(f"  Max diff:        {result['max_diff']:.2e}")
    print(f"  Mean diff:       {result['mean_diff']:.2e}")
    print(f"  Expected range:  [{result['expected_range'][0]:.6f}, "
          f"{result['expected_range'][1]:.6f}]")
    print(f"  Actual range:    [{result['actual_range'][0]:.6f}, "
          f"{result['actual_range'][1]:.6f}]")

    if not result["success"]:
        print("\n  Worst mismatches:")
        for s in result["worst_samples"]:
            print(f"    sample[{s['index']}]: expected={s['expected']}"
                  f" actual={s['actual']} diff={s['diff']:.2e}")
        sys.exit(1)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="xgb_codegen",
        description="Generate standalone Python scoring code from XGBoost models",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log per-tree detail (DEBUG level)",
    )
    sub = parser.add_subparsers(dest="command")
    sub.required = True

    # --- generate ---
    gen_p = sub.add_parser(
        "generate",
        help="Generate a Python scoring module from a trained XGBoost model",
    )
    gen_p.add_argument(
        "--model", required=True,
        help="Path to XGBoost model file (.json, .ubj, .bin)",
    )
    gen_p.add_argument(
        "--output", required=True,
        help="Output .py file path",
    )
    gen_p.add_argument(
        "--function-name", default="score",
        help="Name of the generated scoring function (default: score)",
    )
    gen_p.add_argument(
        "--module-name", default=None,
        help="Module name recorded in the header (default: output file stem)",
    )
    gen_p.set_defaults(func=cmd_generate)

    # --- verify ---
    ver_p = sub.add_parser(
        "verify",
        help="Verify generated Python code matches XGBoost predictions",
    )
    ver_p.add_argument(
        "--model", required=True,
        help="Path to XGBoost model file",
    )
    ver_p.add_argument(
        "--n-samples", type=int, default=1000,
        help="Number of random test samples (default: 1000)",
    )
    ver_p.add_argument(
        "--tolerance", type=float, default=1e-5,
        help="Max allowed absolute margin difference (default: 1e-5)",
    )
    ver_p.add_argument(
        "--nan-fraction", type=float, default=0.05,
        help="Fraction of feature values to set to NaN (default: 0.05)",
    )
    ver_p.add_argument(
        "--function-name", default="score",
        help="Name of the generated scoring function (default: score)",
    )
    ver_p.add_argument(
        "--seed", type=int, default=42,
        help="Random seed for test samples (default: 42)",
    )
    ver_p.set_defaults(func=cmd_verify)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except (CodegenError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
