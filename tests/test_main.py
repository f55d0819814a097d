"""Tests for component wiring in main.py."""

import pytest

from aegis.config import AppSettings
from aegis.main import _build_components, _close_resources
from aegis.orchestrator import Orchestrator


@pytest.mark.asyncio
async def test_build_components_wires_shared_instances(mock_settings: AppSettings) -> None:
    components = _build_components(mock_settings)

    orchestrator = components["orchestrator"]
    assert isinstance(orchestrator, Orchestrator)
    assert orchestrator._store is components["store"]
    assert orchestrator._synchronizer is components["synchronizer"]
    assert components["scheduler"]._executor is components["executor"]
    assert components["executor"]._synchronizer is components["synchronizer"]
    assert components["store"].settings is mock_settings

    await _close_resources(components)
