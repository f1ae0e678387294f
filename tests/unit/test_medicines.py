"""Unit tests for medicine line cleanup."""

import pytest

from claims_rpa.automation.driver import MedicineLine
from claims_rpa.processing.enhancement.medicines import (
    clean_medicines,
    is_junk_medicine,
    is_procedure_item,
    junk_names,
    junk_reason,
)


@pytest.mark.unit
class TestJunkMedicine:
    """Test the junk medicine heuristics."""

    @pytest.mark.parametrize("name,reason", [
        ("Medicine", "bare_word_medicine"),
        ("Unfit for duty 2 days", "mc_remark"),
        ("Take 1 tab when needed", "instruction"),
        ("Paracetamol to be taken with water", "to_be_taken"),
        ("Qty", "column_header"),
        ("123", "numbers_only"),
        ("$12.50", "currency_only"),
        ("2 tablets twice daily", "dosage_instruction"),
        ("x", "too_short"),
    ])
    def test_junk_reasons(self, name, reason):
        assert junk_reason(name) == reason

    @pytest.mark.parametrize("name", [
        "Paracetamol 500mg",
        "Amoxicillin 250mg capsules",
        "Loratadine 10mg",
        "Diclofenac gel",
    ])
    def test_real_medicines_are_kept(self, name):
        assert not is_junk_medicine(name)


@pytest.mark.unit
class TestCleanMedicines:
    """Test cleaning of scraped medicine lines."""

    def test_drops_junk_and_duplicates_in_order(self):
        items = [
            MedicineLine("Paracetamol 500mg", 10),
            MedicineLine("Medicine", None),
            {"name": "  PARACETAMOL   500MG ", "quantity": "10"},
            {"name": "Loratadine 10mg", "quantity": "5"},
            "Cough syrup",
        ]
        assert clean_medicines(items) == [
            {"name": "Paracetamol 500mg", "quantity": 10.0},
            {"name": "Loratadine 10mg", "quantity": 5.0},
            {"name": "Cough syrup", "quantity": None},
        ]

    def test_unparseable_quantity_becomes_none(self):
        assert clean_medicines([{"name": "Cetirizine", "quantity": "a box"}]) == [
            {"name": "Cetirizine", "quantity": None}
        ]

    def test_empty_input(self):
        assert clean_medicines(None) == []

    def test_junk_names(self):
        medicines = [{"name": "Medicine"}, {"name": "Paracetamol"}, {"name": "Take after meals"}, {}]
        assert junk_names(medicines) == ["Medicine", "Take after meals"]


@pytest.mark.unit
@pytest.mark.parametrize("name,expected", [
    ("X-Ray left knee", True),
    ("Wound dressing", True),
    ("Influenza vaccine", True),
    ("Paracetamol 500mg", False),
])
def test_is_procedure_item(name, expected):
    assert is_procedure_item(name) is expected
