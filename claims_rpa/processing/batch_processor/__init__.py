from .runner import BatchPolicy, BatchResult, ResumableBatchRunner, VisitOutcome, VisitProcessor

__all__ = ["BatchPolicy", "BatchResult", "ResumableBatchRunner", "VisitOutcome", "VisitProcessor"]
