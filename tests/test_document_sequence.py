"""
Document numbering: SO counters and token numbers.
"""

import re

import pytest

from docflow.models.document_sequence import DocumentSequence
from docflow.models.sales_order import SalesOrder
from docflow.services.document_sequence_service import DocumentSequenceService, generate_number


class TestGenerateNumber:

    @pytest.mark.parametrize("prefix", ["QT", "LPO", "INV", "PFINV", "CN"])
    def test_format(self, prefix):
        assert re.fullmatch(rf"{prefix}-\d{{6}}[A-Z0-9]{{4}}", generate_number(prefix))

    def test_numbers_differ(self):
        numbers = {generate_number("LPO") for _ in range(50)}
        assert len(numbers) > 1


class TestSalesOrderCounter:

    async def test_counts_up_per_year(self, db, seed):
        service = DocumentSequenceService(db)

        numbers = [await service.get_next_number("SO", period="2026") for _ in range(3)]

        assert numbers == ["SO-2026-001", "SO-2026-002", "SO-2026-003"]
        assert await service.get_next_number("so", period="2027") == "SO-2027-001"

    async def test_preview_does_not_consume(self, db, seed):
        service = DocumentSequenceService(db)

        assert await service.preview_next_number("SO", period="2026") == "SO-2026-001"
        assert await service.get_next_number("SO", period="2026") == "SO-2026-001"
        assert await service.preview_next_number("SO", period="2026") == "SO-2026-002"

    async def test_new_counter_continues_after_existing_numbers(self, db, seed):
        for number in ("SO-2026-004", "SO-2026-012-A1", "SO-2025-099"):
            db.add(SalesOrder(order_number=number, customer_id=seed.customer_id))
        await db.flush()

        next_number = await DocumentSequenceService(db).get_next_number("SO", period="2026")

        assert next_number == "SO-2026-013"

    async def test_default_period_is_current_year(self, db, seed):
        number = await DocumentSequenceService(db).get_next_number("SO")
        assert number == f"SO-{DocumentSequence.get_period()}-001"

    async def test_unknown_type(self, db, seed):
        with pytest.raises(ValueError):
            await DocumentSequenceService(db).get_next_number("XX")
