"""
WorkspaceState: the process-wide workspace behind the REST routes.

Builds the generation backend from the settings, restores the persisted
workspace if there is one, and otherwise seeds a small demo canvas so the
UI has something to display on first load.
"""
from __future__ import annotations

from logging import getLogger
from typing import Optional

from imagecanvas.core.GraphPrimitives import ImageChild, ImageNode, ParentRef, Position
from imagecanvas.core.Persistence import JsonFileStore, WorkspacePersister
from imagecanvas.core.Types import ChildKind, ImageKind
from imagecanvas.core.Workspace import BLANK_CANVAS_URL, Workspace
from imagecanvas.generation import (
    GenerationBackend,
    ProxyGenerationBackend,
    ReplicateGenerationBackend,
)
from imagecanvas.providers.replicate_api import ReplicateClient
from imagecanvas.providers.uploadcare_api import UploadcareClient
from imagecanvas.server.config import Settings, settings as default_settings
from imagecanvas.server.events.workspace_emitter import WorkspaceEmitter, global_emitter

logger = getLogger(__name__)


class WorkspaceState:
    """Holds the workspace, its persistence and the in-process provider backend."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[GenerationBackend] = None,
        emitter: Optional[WorkspaceEmitter] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.uploader = UploadcareClient(
            self.settings.uploadcare_public_key, self.settings.uploadcare_secret_key
        )
        # Serves the proxy endpoints; also the workspace backend when no
        # remote proxy is configured.
        self.provider = ReplicateGenerationBackend(
            ReplicateClient(self.settings.replicate_api_token),
            self.uploader,
            self.settings.replicate_api_token,
        )
        self.backend = backend or self._build_backend()
        self.workspace = Workspace(
            self.backend,
            blank_canvas_url=self.settings.placeholder_url or BLANK_CANVAS_URL,
        )
        self.persister = WorkspacePersister(
            self.workspace,
            JsonFileStore(self.settings.state_path, self.settings.state_version),
        )

        if not self.persister.load() and self.settings.seed_demo:
            self._seed_demo()

        self.persister.attach()
        (emitter or global_emitter).connect(self.workspace)

    def _build_backend(self) -> GenerationBackend:
        if self.settings.api_url:
            logger.info(f"Generating through proxy at {self.settings.api_url}")
            return ProxyGenerationBackend(
                self.settings.api_url, self.uploader, self.settings.replicate_api_token
            )
        return self.provider

    # ── Demo canvas ─────────────────────────────────────────────────────────

    def _seed_demo(self) -> None:
        graph = self.workspace.graph

        astronaut = ImageNode(
            kind=ImageKind.VARIATIONS,
            prompt="austronaut on a field, sunset, highly detailed, beautiful scenery, 4k",
            urls=[
                "https://ucarecdn.com/03f669eb-3d87-49e7-9cb4-44f7c1be9332/",
                "https://ucarecdn.com/18cd34af-f56b-431f-b03e-5c49310cfbbd/",
                "https://ucarecdn.com/9c1e2b8c-c308-4d18-8311-78f7bf29086e/",
                "https://ucarecdn.com/01723fda-7c76-45fa-bb66-e06c78735365/",
            ],
            progress=100,
            position=Position(-617.74, -953.32),
        )
        hut = ImageNode(
            kind=ImageKind.VARIATIONS,
            prompt="fishermans hut by water, cinematic, highly detailed, 4k, mystic",
            urls=[
                "https://ucarecdn.com/d59186cb-f5b5-45aa-98fc-87b1d963bc60/",
                "https://ucarecdn.com/2db45125-8e27-454f-a3a8-2e963b1bde31/",
                "https://ucarecdn.com/5156fdaa-2fb2-44e0-ac09-d5953b5884ab/",
                "https://ucarecdn.com/43661962-716e-4461-8261-762a0af4c8c5/",
            ],
            progress=100,
            position=Position(177.15, 980.67),
        )
        astronaut_up = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=astronaut.prompt,
            urls=[astronaut.urls[2]],
            progress=100,
            parent=ParentRef(astronaut.id, 2),
            position=Position(282.26, -1003.32),
        )
        hut_up = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=hut.prompt,
            urls=[hut.urls[1]],
            progress=100,
            parent=ParentRef(hut.id, 1),
            position=Position(1077.15, 1030.67),
        )

        with graph.batch():
            for node in (astronaut, hut, astronaut_up, hut_up):
                graph.add(node)
            graph.append_child(astronaut.id, ImageChild(astronaut_up.id, ChildKind.UPSCALED, 2))
            graph.append_child(hut.id, ImageChild(hut_up.id, ChildKind.UPSCALED, 1))
        logger.info(f"Seeded demo workspace with {len(graph)} images")


# ---------------------------------------------------------------------------
# Module-level singleton (created lazily so tests can build their own)
# ---------------------------------------------------------------------------

_state: Optional[WorkspaceState] = None


def get_state() -> WorkspaceState:
    global _state
    if _state is None:
        _state = WorkspaceState()
    return _state


def set_state(state: Optional[WorkspaceState]) -> None:
    global _state
    _state = state
