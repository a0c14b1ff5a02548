from abc import ABC, abstractmethod
from fastapi import APIRouter, FastAPI


class ModuleBase(ABC):
    """A feature area that contributes routes to the API."""

    api_prefix = "/api"

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def router(self) -> APIRouter:
        ...

    def include(self, app: FastAPI) -> None:
        app.include_router(self.router, prefix=self.api_prefix)

    def describe(self) -> dict:
        return {"id": self.id, "name": self.name}
