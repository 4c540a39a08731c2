"""
Tests for the publish_policy command line script.
"""
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from consent_backend.app.core.constants import PolicyType
from scripts import publish_policy


class _EngineSpy:
    def __init__(self):
        self.disposed = 0

    async def dispose(self):
        self.disposed += 1


@pytest.fixture
def engine_spy(session_factory: async_sessionmaker, monkeypatch) -> _EngineSpy:
    spy = _EngineSpy()
    monkeypatch.setattr(publish_policy, "async_session", session_factory)
    monkeypatch.setattr(publish_policy, "engine", spy)
    return spy


@pytest.mark.asyncio
async def test_publish_script_success(engine_spy: _EngineSpy, capsys):
    code = await publish_policy.publish(PolicyType.PRIVACY_POLICY, "2.0", show_list=True)

    assert code == 0
    assert engine_spy.disposed == 1
    out = capsys.readouterr().out
    assert "Published privacy_policy 2.0" in out
    assert " * 2.0" in out


@pytest.mark.asyncio
async def test_publish_script_error_disposes_engine(engine_spy: _EngineSpy, current_policies: dict, capsys):
    """Test the engine is released also when publishing is rejected."""
    code = await publish_policy.publish(PolicyType.PRIVACY_POLICY, "1.0", show_list=False)

    assert code == 1
    assert engine_spy.disposed == 1
    assert "already exists" in capsys.readouterr().err
