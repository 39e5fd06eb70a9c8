# accounts_api/services/role_service.py
import logging
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class RoleService:
    """
    Holds the role -> subroles map.

    Built before UserService and handed to it, so the user side can ask for
    subroles without importing this module's callers.

    The map is per process. Changes made through set_subroles / retire_subroles
    are lost on restart, where ROLE_SUBROLES is read again.
    """

    def __init__(self, role_subroles: Dict[str, List[str]], default_role: str):
        self._role_subroles: Dict[str, List[str]] = {
            role: list(subroles) for role, subroles in role_subroles.items()
        }
        self.default_role = default_role

    @property
    def roles(self) -> List[str]:
        return sorted(self._role_subroles)

    async def determine_subroles(self, role: Optional[str]) -> List[str]:
        """Subroles for a role. Unknown roles carry only their own label."""
        if not role:
            return []
        subroles = self._role_subroles.get(role)
        if subroles is None:
            logger.warning(f"No subroles configured for role '{role}'. Using the role label alone.")
            return [role]
        return list(subroles)

    def set_subroles(self, role: str, subroles: Iterable[str]) -> List[str]:
        """Replaces the subroles of a role and returns the new list."""
        new_subroles = list(dict.fromkeys(subroles))
        self._role_subroles[role] = new_subroles
        logger.info(f"Role '{role}' now has subroles {new_subroles}")
        return new_subroles

    def retire_subroles(self, labels: Iterable[str]) -> List[str]:
        """Drops subrole labels from every role. Returns the labels that were removed."""
        labels = list(labels)
        for role, subroles in self._role_subroles.items():
            self._role_subroles[role] = [s for s in subroles if s not in labels]
        logger.info(f"Retired subroles {labels}")
        return labels
