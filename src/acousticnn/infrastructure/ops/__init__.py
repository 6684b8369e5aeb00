from . import dense_cpu

__all__ = ["dense_cpu"]
