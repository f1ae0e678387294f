from .extraction_gate import GATE_RULES, ExtractionValidationGate, ValidationReport

__all__ = ["GATE_RULES", "ExtractionValidationGate", "ValidationReport"]
