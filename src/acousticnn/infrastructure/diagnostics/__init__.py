from ._moments import moment_statistics

__all__ = [moment_statistics.__name__]
