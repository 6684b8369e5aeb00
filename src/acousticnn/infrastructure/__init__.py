"""
NumPy-backed implementations: kernels, token streams, layers.
"""
