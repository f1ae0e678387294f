"""Integration tests for the default portal pay type scope."""

import pytest

from claims_rpa.core.config import settings
from claims_rpa.core.database.models import DetailsStatus
from claims_rpa.core.database.repositories import VisitQuery


@pytest.mark.integration
class TestPortalScope:
    """Visits tagged with any recognized pay type variant are selected."""

    @pytest.mark.parametrize("pay_type", ["FULLERTON", "ALLIMED", "ALLIANCE", "AIA CLIENT", "mhc", " Aviva "])
    async def test_variant_is_selected(self, make_visit, visit_repository, pay_type):
        visit = await make_visit(pay_type=pay_type, details_status=DetailsStatus.COMPLETED)

        found = await visit_repository.find(
            VisitQuery(pay_types=settings.portal_pay_types, details_completed=True, not_submitted=True)
        )

        assert [v.id for v in found] == [visit.id]

    async def test_other_pay_types_are_excluded(self, make_visit, visit_repository):
        await make_visit(pay_type="CASH")
        await make_visit(pay_type="NETS")
        portal = await make_visit(pay_type="ALLIMED")

        found = await visit_repository.find(VisitQuery(pay_types=settings.portal_pay_types))

        assert [v.id for v in found] == [portal.id]
