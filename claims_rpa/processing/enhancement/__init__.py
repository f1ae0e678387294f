from .identifiers import normalize_nric, normalize_patient_name, normalize_pcno
from .medicines import clean_medicines, is_junk_medicine, is_procedure_item
from .visit_details import MISSING_DIAGNOSIS, VisitDetailsEnhancer

__all__ = [
    "MISSING_DIAGNOSIS",
    "VisitDetailsEnhancer",
    "clean_medicines",
    "is_junk_medicine",
    "is_procedure_item",
    "normalize_nric",
    "normalize_patient_name",
    "normalize_pcno",
]
