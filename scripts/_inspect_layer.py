#!/usr/bin/env python3
"""
Inspect a persisted layer file.

Accepts a binary or text token stream (as written by `save_layer`) or a JSON
checkpoint (as written by `save_json`) and prints a human-readable summary:

- Layer variant and dimensions
- Per-layer hyperparameters
- Moment statistics of parameters and, when present, gradient accumulators
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
SRC_DIR = os.path.abspath(os.path.join(THIS_DIR, "..", "src"))

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from acousticnn import load_json, load_layer


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect a persisted layer file.")
    parser.add_argument(
        "path",
        type=Path,
        help="Path to a token-stream layer file or a .json checkpoint",
    )
    parser.add_argument(
        "--gradient",
        action="store_true",
        help="Also print gradient buffer statistics",
    )

    args = parser.parse_args()
    path: Path = args.path

    layer = load_json(path) if path.suffix == ".json" else load_layer(path)

    print("=" * 80)
    print(f"{layer.layer_type.variant_name} layer")
    print("=" * 80)

    print(f"File   : {path}")
    print(f"Dims   : {layer.input_dim} -> {layer.output_dim}")
    print(f"Params : {layer.num_params()}")
    for k, v in layer.get_config().items():
        print(f"    {k}: {v}")

    print("\nParameters:" + layer.info())
    if args.gradient:
        print("\nGradients:" + layer.info_gradient())

    print("\nDone.")


if __name__ == "__main__":
    main()
