from typing import Dict, List
from pydantic import BaseModel

from crm.core.modules import module_label
from crm.services.grant_editor import level_for
from crm.services.permission_resolver import EffectivePermissionSet


class ModuleInfo(BaseModel):
    id: str
    label: str


class ModuleAccessRead(BaseModel):
    module: str
    label: str
    viewable: bool
    can_add: bool
    can_edit: bool
    can_delete: bool
    level: str


class EffectivePermissionsRead(BaseModel):
    email: str
    role: str
    viewable: List[str]
    modules: List[ModuleAccessRead]

    @classmethod
    def build(cls, user, permissions: EffectivePermissionSet) -> "EffectivePermissionsRead":
        return cls(
            email=user.email,
            role=user.role,
            viewable=permissions.viewable_modules(),
            modules=[
                ModuleAccessRead(
                    module=module,
                    label=module_label(module),
                    viewable=access.viewable,
                    can_add=access.can_add,
                    can_edit=access.can_edit,
                    can_delete=access.can_delete,
                    level=level_for(access).value,
                )
                for module, access in permissions.items()
            ],
        )


# -------------------------------------------------------------------
# SAVE REQUEST (one level per module, modules left out mean NONE)
# -------------------------------------------------------------------
class GrantSaveRequest(BaseModel):
    role: str
    levels: Dict[str, str] = {}

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "role": "Teacher",
                    "levels": {"teacher_assignments": "CRUD"}
                }
            ]
        }
