from .batch import BatchScheduler

__all__ = ["BatchScheduler"]
