from .queue_extraction import ExtractionResult, QueueExtractionStage, row_to_visit_values

__all__ = ["ExtractionResult", "QueueExtractionStage", "row_to_visit_values"]
