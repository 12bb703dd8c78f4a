"""
Unit tests for ArtefactService.
"""

import pytest

from src.modules.shared.exceptions import InsufficientDistinctItemsError
from tests.conftest import T5_CODES

pytestmark = pytest.mark.unit

ARTEFACT_ID = 18


async def _grant_orbs(grant, user_id, codes):
    for code in codes:
        await grant(user_id, code)


class TestAssemble:
    async def test_nine_distinct_is_not_enough(self, container, make_user, grant, holding):
        user_id = await make_user()
        await _grant_orbs(grant, user_id, T5_CODES[:9])
        await grant(user_id, "ORB_1", 3)
        await grant(user_id, "LAMP")

        with pytest.raises(InsufficientDistinctItemsError) as exc_info:
            await container.artefact.assemble_artefact(user_id)

        assert exc_info.value.details["current"] == 9
        assert exc_info.value.details["required"] == 10
        assert await holding(user_id, "ORB_1") == 4
        assert await holding(user_id, "ARTEFACT") == 0
        assert (await container.artefact.list_trophies(user_id))["trophies"] == []

    async def test_ten_distinct_assemble(self, container, make_user, grant, holding, recorder):
        user_id = await make_user()
        await _grant_orbs(grant, user_id, T5_CODES)
        await grant(user_id, "ORB_3")

        result = await container.artefact.assemble_artefact(user_id)

        assert result["artefact"]["code"] == "ARTEFACT"
        assert result["bonus_gold"] == 100
        assert [c["code"] for c in result["consumed"]] == T5_CODES
        for code in T5_CODES:
            assert await holding(user_id, code) == (1 if code == "ORB_3" else 0)
        assert await holding(user_id, "ARTEFACT") == 1

        trophies = (await container.artefact.list_trophies(user_id))["trophies"]
        assert len(trophies) == 1
        assert trophies[0]["id"] == result["trophy_id"]
        assert trophies[0]["item_id"] == ARTEFACT_ID
        assert trophies[0]["bonus_gold"] == 100

        assert recorder.published("artefact.assembled") == 1

    async def test_trophy_snapshots_current_bonus_gold(self, container, make_user, grant):
        user_id = await make_user()
        await _grant_orbs(grant, user_id, T5_CODES * 2)

        first = await container.artefact.assemble_artefact(user_id)
        await container.admin.set_bonus_gold(ARTEFACT_ID, 250, modified_by="tests")
        second = await container.artefact.assemble_artefact(user_id)

        assert first["bonus_gold"] == 100
        assert second["bonus_gold"] == 250

        trophies = (await container.artefact.list_trophies(user_id))["trophies"]
        assert sorted(t["bonus_gold"] for t in trophies) == [100, 250]

    async def test_assembly_moves_no_currency(self, container, make_user, grant, balance):
        user_id = await make_user(balance=500)
        await _grant_orbs(grant, user_id, T5_CODES)

        await container.artefact.assemble_artefact(user_id)

        assert await balance(user_id) == 500
        assert (await container.ledger.verify_balance(user_id))["consistent"] is True
