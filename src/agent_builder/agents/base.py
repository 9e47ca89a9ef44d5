"""Base agent unit implementing the shared stage contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import as_service_error, log_error
from ..generation import SpecGenerator
from ..handoff import HandoffQueue, advance_pipeline
from ..logging_config import get_logger
from ..persistence import ProjectStore
from ..pipeline import get_stage
from ..schemas import AgentInvocation, AgentResponse, Artifact, ArtifactType, NewArtifact, utcnow


class AgentUnit(ABC):
    """
    One stateless pipeline stage.

    ``invoke`` generates first and writes second: the generator is the only
    network-bound call and nothing is persisted until it has returned. The
    stage's artifacts are then created in a single transaction, the next stage
    is handed off (or the project completed), and the outcome is returned as an
    ``AgentResponse``. Exceptions never escape ``invoke``.
    """

    agent_name: str = ""

    def __init__(self, store: ProjectStore, queue: HandoffQueue, generator: SpecGenerator) -> None:
        self._store = store
        self._queue = queue
        self._generator = generator
        self._logger = get_logger(f"agent_builder.agents.{self.agent_name}")

    def invoke(self, invocation: AgentInvocation, *, hand_off: bool = True) -> AgentResponse:
        """Run the stage; with ``hand_off=False`` the next stage waits for an approval."""

        self._logger.info("%s started for project %s", self.agent_name, invocation.project_id)
        try:
            stored = self._stored_outputs(invocation.previous_artifacts, invocation.superseded_artifact_id)
            if stored is not None:
                self._logger.info("%s output already stored for project %s", self.agent_name, invocation.project_id)
                artifacts, metadata = stored, {"reused": True}
            else:
                drafts, metadata = self.build_artifacts(invocation)
                if invocation.superseded_artifact_id is not None:
                    version = self._next_version(invocation.previous_artifacts)
                    drafts = [draft.model_copy(update={"version": version}) for draft in drafts]
                artifacts = self._store.create_artifacts(invocation.project_id, self.agent_name, drafts)
            if hand_off:
                self._hand_off(invocation.project_id, invocation.project.run_id)
        except Exception as exc:  # noqa: BLE001
            error = as_service_error(exc)
            log_error(self._logger, error, f"{self.agent_name} failed for project {invocation.project_id}")
            return AgentResponse(
                success=False,
                artifacts=[],
                error_message=str(exc),
                metadata={"errorType": type(exc).__name__, "errorCode": error.code},
            )
        self._logger.info(
            "%s produced %d artifact(s) for project %s", self.agent_name, len(artifacts), invocation.project_id
        )
        return AgentResponse(success=True, artifacts=artifacts, metadata=metadata)

    @abstractmethod
    def build_artifacts(self, invocation: AgentInvocation) -> Tuple[List[NewArtifact], Dict[str, Any]]:
        """Generate this stage's artifacts without touching the store."""

    def _stored_outputs(
        self, artifacts: Sequence[Artifact], superseded_id: Optional[str] = None
    ) -> Optional[List[Artifact]]:
        """This stage's artifacts from an earlier delivery, if every one of them exists and was not rejected."""

        found = [self.find_latest(artifacts, produced, self.agent_name) for produced in get_stage(self.agent_name).produces]
        if any(artifact is None or artifact.artifact_id == superseded_id for artifact in found):
            return None
        return [artifact for artifact in found if artifact is not None]

    def _next_version(self, artifacts: Sequence[Artifact]) -> str:
        majors = [
            int(artifact.version.split(".")[0])
            for artifact in artifacts
            if artifact.agent_name == self.agent_name and artifact.version.split(".")[0].isdigit()
        ]
        return f"{max(majors, default=0) + 1}.0"

    def _hand_off(self, project_id: str, run_id: Optional[str]) -> None:
        advance_pipeline(self._store, self._queue, project_id, self.agent_name, run_id=run_id)

    @property
    def ai_generated(self) -> bool:
        return bool(getattr(self._generator, "ai_generated", False))

    @staticmethod
    def generated_at() -> str:
        return utcnow().isoformat()

    @staticmethod
    def find_latest(
        artifacts: Sequence[Artifact],
        artifact_type: ArtifactType,
        agent_name: Optional[str] = None,
    ) -> Optional[Artifact]:
        """Most recent artifact of ``artifact_type`` (optionally from ``agent_name``)."""

        for artifact in reversed(artifacts):
            if artifact.artifact_type is not artifact_type:
                continue
            if agent_name is not None and artifact.agent_name != agent_name:
                continue
            return artifact
        return None

    def requirements_from(self, artifacts: Sequence[Artifact]) -> Dict[str, Any]:
        srs = self.find_latest(artifacts, ArtifactType.SRS_DOCUMENT)
        if srs is None:
            self._logger.warning("No SRS document found; continuing with empty requirements")
            return {}
        return dict(srs.metadata)


def as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


__all__ = ["AgentUnit", "as_list"]
