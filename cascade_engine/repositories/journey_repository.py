from typing import Any

from cascade_engine.models.customer_journey import CustomerJourney
from cascade_engine.repositories.base import BaseRepository


class JourneyRepository(BaseRepository):
    """Append-only writes to ``customer_journey``."""

    async def create(self, **kwargs: Any) -> CustomerJourney:
        """Insert a journey touchpoint."""
        entry = CustomerJourney(**kwargs)
        self._db.add(entry)
        return entry
