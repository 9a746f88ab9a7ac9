from __future__ import annotations

from pathlib import Path

import pytest

from tenantflags.config import FeatureConfig, build_config

APARTMENT_FIELDS = {
    "tenant_model": "Tenant",
    "tenant_switch_template": "Apartment::Tenant.switch('%s') do; %s; end",
    "enable_command": "MyCompany::Feature.enable(:%s)",
    "disable_command": "MyCompany::Feature.disable(:%s)",
    "check_command": "puts MyCompany::Feature.enabled?(:%s)",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)


@pytest.fixture
def apartment_fields() -> dict[str, str]:
    return dict(APARTMENT_FIELDS)


@pytest.fixture
def apartment_config(apartment_fields: dict[str, str]) -> FeatureConfig:
    return build_config(**apartment_fields)
