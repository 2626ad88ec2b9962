from dataclasses import dataclass
from typing import Mapping

from fastapi import BackgroundTasks

from ats.constants import ADMIN_ROLES


@dataclass(frozen=True)
class Principal:
    id: str
    name: str = ""
    role: str = "applicant"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class RequestMetadata:
    ip_address: str | None = None
    user_agent: str | None = None
    # Side effects of the request run here after the response is sent.
    tasks: BackgroundTasks | None = None


class IdentityProvider:
    """Resolves the acting principal from headers set by the upstream gateway.

    Credentials are checked before requests reach this service; the gateway
    forwards the verified identity as ``X-Actor-*`` headers, which are trusted
    as-is.
    """

    id_header = "x-actor-id"
    name_header = "x-actor-name"
    role_header = "x-actor-role"

    def resolve(self, headers: Mapping[str, str]) -> Principal | None:
        actor_id = (headers.get(self.id_header) or "").strip()
        if not actor_id:
            return None
        return Principal(
            id=actor_id,
            name=(headers.get(self.name_header) or "").strip(),
            role=(headers.get(self.role_header) or "applicant").strip().lower(),
        )
