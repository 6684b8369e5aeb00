#!/usr/bin/env python3
"""
Create a small AffineTransform layer and export it in every supported format.

This script writes reference files (binary stream, text stream and JSON
checkpoint) that can be inspected, diffed, or used for regression testing.
"""

import os
import sys

# Ensure repo_root/src is importable when running this file directly:
# repo_root/
#   src/acousticnn/...
#   scripts/_export_affine_layer.py
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from pathlib import Path
import numpy as np

from acousticnn import AffineTransform, UpdateContext, UpdateRule, save_json, save_layer


def main() -> None:
    np.random.seed(0)

    # ----------------------------
    # Build layer
    # ----------------------------
    layer = AffineTransform(input_dim=3, output_dim=2)

    # Deterministic weights & bias
    W = np.array(
        [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]],
        dtype=np.float32,
    )
    b = np.array([0.5, -1.5], dtype=np.float32)

    layer.set_linearity(W)
    layer.set_bias(b)
    layer.max_grad = 5.0

    # ----------------------------
    # Sanity forward pass + one AdaGrad step (allocates accumulators)
    # ----------------------------
    x = np.array(
        [[1.0, 0.0, -1.0], [2.0, 1.0, 0.5]],
        dtype=np.float32,
    )
    y = layer.propagate(x)
    print("Forward output:")
    print(y)

    dy = y - np.ones_like(y)
    layer.update(x, dy, UpdateContext(learn_rate=0.01), UpdateRule.ADAGRAD)
    print(layer.info_gradient())

    # ----------------------------
    # Save
    # ----------------------------
    out_dir = Path("affine_layer_export")
    out_dir.mkdir(exist_ok=True)

    save_layer(layer, out_dir / "layer.bin.nnet", binary=True)
    save_layer(layer, out_dir / "layer.txt.nnet", binary=False)
    save_json(layer, out_dir / "layer.json")

    print(f"\nSaved layer files to: {out_dir.resolve()}")


if __name__ == "__main__":
    main()
