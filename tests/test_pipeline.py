from __future__ import annotations

import pytest

from agent_builder.errors import ErrorKind, ServiceError
from agent_builder.pipeline import (
    BACKEND_ENGINEER,
    DEVOPS_ENGINEER,
    FRONTEND_ENGINEER,
    PRODUCT_MANAGER,
    STAGES,
    agent_names,
    first_stage,
    get_stage,
    next_agent,
    previous_agent,
)
from agent_builder.schemas import ArtifactType


def test_stages_run_in_fixed_order() -> None:
    assert agent_names() == [PRODUCT_MANAGER, BACKEND_ENGINEER, FRONTEND_ENGINEER, DEVOPS_ENGINEER]
    assert first_stage().agent_name == PRODUCT_MANAGER
    assert next_agent(PRODUCT_MANAGER) == BACKEND_ENGINEER
    assert next_agent(BACKEND_ENGINEER) == FRONTEND_ENGINEER
    assert next_agent(FRONTEND_ENGINEER) == DEVOPS_ENGINEER
    assert next_agent(DEVOPS_ENGINEER) is None


def test_previous_agent_walks_backwards() -> None:
    assert previous_agent(PRODUCT_MANAGER) is None
    assert previous_agent(DEVOPS_ENGINEER) == FRONTEND_ENGINEER


def test_last_stage_produces_deployment_and_report() -> None:
    assert STAGES[-1].produces == (ArtifactType.DEPLOYMENT_URL, ArtifactType.TEST_REPORT)
    assert get_stage(PRODUCT_MANAGER).produces == (ArtifactType.SRS_DOCUMENT,)


def test_unknown_agent_is_a_validation_error() -> None:
    with pytest.raises(ServiceError) as excinfo:
        next_agent("QaEngineerAgent")
    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert excinfo.value.details["agent_name"] == "QaEngineerAgent"
