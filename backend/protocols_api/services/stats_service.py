"""
Dashboard statistics.
"""

from collections import Counter
from typing import Any, Dict

from sqlalchemy.orm import Session

from protocols_api.models.protocol import ProtocolStatus
from protocols_api.models.user import UserRole
from protocols_api.repositories import ProtocolRepository, UserRepository

TOP_SPONSORS = 5
NO_SPONSOR = "Sin sponsor"


class StatsService:

    def __init__(self, db: Session):
        self.protocols = ProtocolRepository(db)
        self.users = UserRepository(db)

    def dashboard(self) -> Dict[str, Any]:
        sponsors = Counter(sponsor or NO_SPONSOR for sponsor in self.protocols.sponsors())
        return {
            "protocols": {
                "active": self.protocols.count(status=ProtocolStatus.ACTIVE.value),
            },
            "users": {
                "active": self.users.count_active(),
                "medicos": self.users.count_active(role=UserRole.MEDICO.value),
                "investigadores": self.users.count_active(role=UserRole.INVESTIGADOR_PRINCIPAL.value),
            },
            "topSponsors": [
                {"sponsor": sponsor, "count": count}
                for sponsor, count in sponsors.most_common(TOP_SPONSORS)
            ],
        }
