"""Client-side navigation target.

View-models never render; they tell the navigator where the user should go
next and the front end follows ``current``.
"""
from typing import List, Optional

from medicitas import config
from medicitas.models import Identity, Role


class Navigator:
    """Records the route the front end should show."""

    def __init__(self, initial: str = config.LOGIN_ROUTE):
        self.history: List[str] = [initial]

    @property
    def current(self) -> str:
        return self.history[-1]

    def go(self, route: str) -> None:
        if route != self.current:
            self.history.append(route)

    @staticmethod
    def home_for(identity: Optional[Identity]) -> str:
        """Dashboard for the identity's role, or login when signed out."""
        if identity is None:
            return config.LOGIN_ROUTE
        if identity.role == Role.DOCTOR:
            return config.DOCTOR_DASHBOARD_ROUTE
        return config.PATIENT_DASHBOARD_ROUTE
