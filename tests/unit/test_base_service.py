"""
Unit tests for BaseService helpers (config coercion, event publishing).
"""

import pytest

from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger
from src.modules.shared.base_service import BaseService

pytestmark = pytest.mark.unit


@pytest.fixture
def service(mock_config_manager, mock_event_bus):
    return BaseService(mock_config_manager, mock_event_bus, get_logger("tests.base_service"))


class TestConfigAccess:
    def test_default_passthrough(self, service, mock_config_manager):
        assert service.get_config_int("economy.shop.base_roll_price", 100) == 100
        mock_config_manager.get.assert_called_with("economy.shop.base_roll_price", 100)

    def test_numeric_strings_are_coerced(self, service, mock_config_manager):
        mock_config_manager.get.side_effect = None
        mock_config_manager.get.return_value = "0.75"

        assert service.get_config_float("economy.crafting.success_rate", 0.9) == 0.75

    def test_bad_integer(self, service, mock_config_manager):
        mock_config_manager.get.side_effect = None
        mock_config_manager.get.return_value = "lots"

        with pytest.raises(ConfigurationError) as exc_info:
            service.get_config_int("economy.marketplace.fee_bps", 100)
        assert exc_info.value.error_code == "CONFIG_ERROR"

    def test_required_missing(self, service):
        with pytest.raises(ConfigurationError):
            service.get_config("economy.nope", required=True)


class TestEvents:
    async def test_emit_merges_context(self, service, mock_event_bus):
        await service.emit_event("user.registered", {"user_id": 7}, {"source": "tests"})

        mock_event_bus.publish.assert_awaited_once_with(
            "user.registered", {"user_id": 7, "source": "tests"}
        )
