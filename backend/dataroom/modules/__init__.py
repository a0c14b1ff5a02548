from dataroom.modules.base import ModuleBase
from dataroom.modules.workspace import WorkspaceModule

MODULES: list[ModuleBase] = [
    WorkspaceModule(),
]


def get_module(module_id: str) -> ModuleBase | None:
    for module in MODULES:
        if module.id == module_id:
            return module
    return None
