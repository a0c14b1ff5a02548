from dataroom.modules.base import ModuleBase
from fastapi import APIRouter


class WorkspaceModule(ModuleBase):
    @property
    def id(self) -> str:
        return "workspace"

    @property
    def name(self) -> str:
        return "Data Room Workspace"

    @property
    def router(self) -> APIRouter:
        # Imported lazily: the routes depend on this package's submodules.
        from dataroom.api.routes.workspace import router
        return router
