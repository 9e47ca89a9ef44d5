from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from agent_builder.api.dependencies import container_dependency
from agent_builder.api.main import create_app
from agent_builder.api.rate_limiter import SlidingWindowRateLimiter
from agent_builder.bootstrap import build_container


def _headers(user_id: str = "user-1") -> Dict[str, str]:
    return {"X-API-Key": "test-key", "X-User-Id": user_id}


@pytest.fixture()
def client(container) -> TestClient:
    app = create_app()
    app.dependency_overrides[container_dependency] = lambda: container
    return TestClient(app)


def _create_project(client: TestClient, user_id: str = "user-1") -> Dict:
    response = client.post(
        "/api/projects",
        json={"projectName": "  Todo  ", "requestPrompt": "Build a todo list application"},
        headers=_headers(user_id),
    )
    assert response.status_code == 201
    return response.json()


def test_health_needs_no_api_key(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_api_key_is_unauthorized(client: TestClient) -> None:
    response = client.get("/api/projects", headers={"X-User-Id": "user-1"})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"

    response = client.get("/api/projects", headers={"X-API-Key": "test-key"})
    assert response.status_code == 401


def test_create_and_list_projects(client: TestClient) -> None:
    created = _create_project(client)

    assert created["projectName"] == "Todo"
    assert created["status"] == "PENDING"
    listed = client.get("/api/projects", headers=_headers()).json()
    assert [project["projectId"] for project in listed] == [created["projectId"]]
    assert client.get("/api/projects", headers=_headers("user-2")).json() == []


def test_invalid_project_payload_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/projects",
        json={"projectName": "Todo", "requestPrompt": "too short"},
        headers=_headers(),
    )

    body = response.json()
    assert response.status_code == 400
    assert body["code"] == "VALIDATION_ERROR"
    assert body["details"]["errors"][0]["field"].endswith("requestPrompt")


def test_projects_of_other_users_are_forbidden(client: TestClient) -> None:
    created = _create_project(client)

    response = client.get(f"/api/projects/{created['projectId']}", headers=_headers("intruder"))
    assert response.status_code == 403

    response = client.post("/api/orchestrate", json={"projectId": created["projectId"]}, headers=_headers("intruder"))
    assert response.status_code == 403


def test_orchestrate_runs_the_pipeline(client: TestClient, drain) -> None:
    created = _create_project(client)
    project_id = created["projectId"]

    response = client.post("/api/orchestrate", json={"projectId": project_id}, headers=_headers())
    assert response.status_code == 200
    assert response.json() == {"projectId": project_id, "status": "IN_PROGRESS"}

    again = client.post("/api/orchestrate", json={"projectId": project_id}, headers=_headers())
    assert again.status_code == 409

    drain()

    status = client.get(f"/api/projects/{project_id}/status", headers=_headers()).json()
    assert status["status"] == "COMPLETED"
    assert status["progress"] == 100
    assert status["taskSummary"]["completed"] == 4

    artifacts = client.get(f"/api/projects/{project_id}/artifacts", headers=_headers()).json()
    assert [artifact["artifactType"] for artifact in artifacts] == [
        "SRS_DOCUMENT",
        "SOURCE_CODE",
        "SOURCE_CODE",
        "DEPLOYMENT_URL",
        "TEST_REPORT",
    ]
    tasks = client.get(f"/api/projects/{project_id}/tasks", headers=_headers()).json()
    assert {task["status"] for task in tasks} == {"DONE"}


def test_orchestrate_unknown_project_is_not_found(client: TestClient, container) -> None:
    response = client.post("/api/orchestrate", json={"projectId": "missing"}, headers=_headers())

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"
    assert len(container.queue) == 0


def test_prompt_is_locked_once_started(client: TestClient) -> None:
    project_id = _create_project(client)["projectId"]

    renamed = client.patch(f"/api/projects/{project_id}", json={"requestPrompt": "Build a kanban board app"}, headers=_headers())
    assert renamed.status_code == 200
    assert renamed.json()["requestPrompt"] == "Build a kanban board app"

    client.post("/api/orchestrate", json={"projectId": project_id}, headers=_headers())

    locked = client.patch(f"/api/projects/{project_id}", json={"requestPrompt": "Build something else"}, headers=_headers())
    assert locked.status_code == 409
    name_only = client.patch(f"/api/projects/{project_id}", json={"projectName": "Kanban"}, headers=_headers())
    assert name_only.status_code == 200


def test_create_artifact_endpoint(client: TestClient) -> None:
    project_id = _create_project(client)["projectId"]

    response = client.post(
        "/api/artifacts",
        json={
            "projectId": project_id,
            "artifactType": "SRS_DOCUMENT",
            "location": "https://example.com/uploaded.pdf",
            "title": "Uploaded requirements",
        },
        headers=_headers(),
    )

    assert response.status_code == 201
    assert response.json()["agentName"] == "User"
    assert response.json()["version"] == "1.0"


def test_update_rejects_blank_values_after_trimming(client: TestClient) -> None:
    project_id = _create_project(client)["projectId"]

    blank_prompt = client.patch(f"/api/projects/{project_id}", json={"requestPrompt": " " * 12}, headers=_headers())
    assert blank_prompt.status_code == 400
    assert blank_prompt.json()["code"] == "VALIDATION_ERROR"

    blank_name = client.patch(f"/api/projects/{project_id}", json={"projectName": "   "}, headers=_headers())
    assert blank_name.status_code == 400

    trimmed = client.patch(
        f"/api/projects/{project_id}", json={"projectName": "  Kanban  ", "requestPrompt": "  Build a kanban board  "}, headers=_headers()
    )
    assert trimmed.status_code == 200
    assert trimmed.json()["projectName"] == "Kanban"
    assert trimmed.json()["requestPrompt"] == "Build a kanban board"


def test_create_artifact_refuses_pipeline_stage_names(client: TestClient, container) -> None:
    project_id = _create_project(client)["projectId"]

    response = client.post(
        "/api/artifacts",
        json={
            "projectId": project_id,
            "agentName": "ProductManagerAgent",
            "artifactType": "SRS_DOCUMENT",
            "location": "https://example.com/forged.pdf",
            "title": "Forged requirements",
        },
        headers=_headers(),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert container.store.list_artifacts(project_id) == []


def test_create_artifact_conflicts_on_an_existing_version(client: TestClient) -> None:
    project_id = _create_project(client)["projectId"]
    payload = {
        "projectId": project_id,
        "artifactType": "SRS_DOCUMENT",
        "location": "https://example.com/uploaded.pdf",
        "title": "Uploaded requirements",
    }

    assert client.post("/api/artifacts", json=payload, headers=_headers()).status_code == 201
    duplicate = client.post("/api/artifacts", json={**payload, "title": "Replacement"}, headers=_headers())
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "CONFLICT"

    next_version = client.post("/api/artifacts", json={**payload, "version": "2.0"}, headers=_headers())
    assert next_version.status_code == 201


def test_resume_route_continues_an_approved_pipeline(settings, queue) -> None:
    settings.orchestration.approval_stages = ["ProductManagerAgent"]
    container = build_container(settings, queue=queue)
    app = create_app()
    app.dependency_overrides[container_dependency] = lambda: container
    client = TestClient(app)
    project_id = _create_project(client)["projectId"]
    client.post("/api/orchestrate", json={"projectId": project_id}, headers=_headers())
    queue.drain(container.processor.process)

    status = client.get(f"/api/projects/{project_id}/status", headers=_headers()).json()
    assert status["taskSummary"]["awaitingApproval"] == 1
    assert status["currentTask"] == "ProductManagerAgent awaiting approval"

    response = client.post(f"/api/projects/{project_id}/resume", headers=_headers())
    assert response.status_code == 200
    assert response.json()["approvedAgent"] == "ProductManagerAgent"
    assert response.json()["nextAgent"] == "BackendEngineerAgent"

    nothing_left = client.post(f"/api/projects/{project_id}/resume", json={}, headers=_headers())
    assert nothing_left.status_code == 400
    assert client.post(f"/api/projects/{project_id}/resume", headers=_headers("user-2")).status_code == 403

    queue.drain(container.processor.process)
    assert client.get(f"/api/projects/{project_id}", headers=_headers()).json()["status"] == "COMPLETED"


def test_reject_route_fails_the_run(settings, queue) -> None:
    settings.orchestration.approval_stages = ["ProductManagerAgent"]
    container = build_container(settings, queue=queue)
    app = create_app()
    app.dependency_overrides[container_dependency] = lambda: container
    client = TestClient(app)
    project_id = _create_project(client)["projectId"]
    client.post("/api/orchestrate", json={"projectId": project_id}, headers=_headers())
    queue.drain(container.processor.process)
    task_id = client.get(f"/api/projects/{project_id}/tasks", headers=_headers()).json()[0]["taskId"]

    response = client.post(
        f"/api/projects/{project_id}/tasks/{task_id}/reject", json={"reason": "Missing offline mode"}, headers=_headers()
    )

    assert response.status_code == 200
    assert response.json() == {"projectId": project_id, "status": "FAILED"}
    task = client.get(f"/api/projects/{project_id}/tasks", headers=_headers()).json()[0]
    assert task["status"] == "TODO"
    assert task["errorMessage"] == "Missing offline mode"


def test_user_profile_lifecycle(client: TestClient) -> None:
    assert client.get("/api/users/profile", headers=_headers()).status_code == 404

    created = client.post("/api/users", json={"email": "ada@example.com", "name": "Ada"}, headers=_headers())
    assert created.status_code == 201
    assert created.json()["provider"] == "cognito"

    updated = client.patch("/api/users/profile", json={"givenName": "Ada"}, headers=_headers())
    assert updated.status_code == 200
    assert updated.json()["givenName"] == "Ada"
    assert updated.json()["email"] == "ada@example.com"

    assert client.patch("/api/users/profile", json={}, headers=_headers()).status_code == 400
    bad_email = client.post("/api/users", json={"email": "not-an-email"}, headers=_headers())
    assert bad_email.status_code == 400


def test_rate_limit_is_enforced(client: TestClient, container) -> None:
    container.rate_limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)

    assert client.get("/api/projects", headers=_headers()).status_code == 200
    limited = client.get("/api/projects", headers=_headers())

    assert limited.status_code == 429
    assert limited.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert limited.json()["details"] == {"retry_after_seconds": 60}
