import logging

import pytest

from askai.core.logging import RedactingFilter, setup_logging
from askai.gateway.types import Provider
from askai.main import create_gateway
from tests.conftest import make_config


class TestCreateGateway:
    @pytest.mark.asyncio
    async def test_builds_working_gateway(self, tmp_path):
        config = make_config(tmp_path, allowed_providers="openai,gemini")
        gateway = await create_gateway(config)
        try:
            assert gateway.allowed_providers == {Provider.OPENAI, Provider.GEMINI}
            assert (tmp_path / "data" / ".salt").exists()
            assert (tmp_path / "data" / "askai.db").exists()

            outcome = await gateway.set_credential("alice", "openai", "sk-test-0123456789abcdefghij")
            assert outcome.ok
            assert (await gateway.get_status("alice")).payload.per_provider_has_key[Provider.OPENAI] is True
        finally:
            await gateway.aclose()


class TestSetupLogging:
    def test_installs_redacting_handler(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(make_config(tmp_path, log_level="DEBUG", log_json=True))

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert any(isinstance(f, RedactingFilter) for f in root.handlers[0].filters)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
