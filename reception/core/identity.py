"""Identity and role lookup for workflow actors."""
from typing import Dict, Iterable, List, Optional, Protocol

from reception.core.exceptions import UnknownActor
from reception.models.reception import WorkflowRole
from reception.schemas.reception import Actor


# Plant application roles -> workflow roles
APP_ROLE_MAPPING: Dict[str, WorkflowRole] = {
    "responsable_technique": WorkflowRole.TECHNICAL_RESPONSIBILITY,
    "agent_administratif": WorkflowRole.FRONT_DESK,
    "operator": WorkflowRole.FRONT_DESK,
    "ceo": WorkflowRole.MANAGER,
    "superviseur": WorkflowRole.MANAGER,
}

# Default plant directory
PLANT_DIRECTORY: List[Dict[str, object]] = [
    {"id": "ABDEL_SADEK", "name": "Abdel Sadek", "app_role": "responsable_technique", "is_primary": True},
    {"id": "KARIM", "name": "Karim", "app_role": "responsable_technique"},
    {"id": "FRONT_DESK", "name": "Agent Accueil", "app_role": "agent_administratif"},
    {"id": "SUPERVISEUR", "name": "Superviseur", "app_role": "superviseur"},
]


def map_app_role(app_role: str) -> WorkflowRole:
    """Translate an application role code into a workflow role."""
    try:
        return APP_ROLE_MAPPING[app_role]
    except KeyError:
        raise UnknownActor(f"Role '{app_role}' has no part in the reception workflow")


class IdentityProvider(Protocol):
    """Supplies the current actor's name and role."""

    def get_actor(self, actor_id: str) -> Actor:
        ...

    def technicians(self) -> List[Actor]:
        ...


class StaticDirectory:
    """In-process directory seeded from a static list of users."""

    def __init__(self, entries: Optional[Iterable[Dict[str, object]]] = None):
        self._actors: Dict[str, Actor] = {}
        for entry in entries if entries is not None else PLANT_DIRECTORY:
            role = entry.get("role") or map_app_role(str(entry["app_role"]))
            actor = Actor(
                id=str(entry["id"]),
                name=str(entry["name"]),
                role=role,
                is_primary=bool(entry.get("is_primary", False)),
            )
            self._actors[actor.id] = actor

    def get_actor(self, actor_id: str) -> Actor:
        actor = self._actors.get(actor_id)
        if actor is None:
            raise UnknownActor(f"Unknown actor '{actor_id}'")
        return actor

    def technicians(self) -> List[Actor]:
        """Technical-responsibility pool, primary inspector first."""
        pool = [
            a for a in self._actors.values()
            if a.role == WorkflowRole.TECHNICAL_RESPONSIBILITY
        ]
        return sorted(pool, key=lambda a: not a.is_primary)
