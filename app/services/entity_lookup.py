"""Entity-type -> prior-state lookup registry used by the audit interceptor."""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import AsyncSessionLocal
from app.utils.diff import JsonRecord

logger = logging.getLogger(__name__)

EntityLookup = Callable[[AsyncSession, str], Awaitable[Optional[JsonRecord]]]


def model_lookup(crud_obj: Any, response_schema: Type[BaseModel]) -> EntityLookup:
    """Build a lookup that loads one row by UUID and snapshots it through a response schema."""

    async def lookup(db: AsyncSession, entity_id: str) -> Optional[JsonRecord]:
        try:
            pk = UUID(str(entity_id))
        except ValueError:
            return None
        db_obj = await crud_obj.get(db, pk)
        if db_obj is None:
            return None
        return response_schema.model_validate(db_obj).model_dump(mode="json")

    return lookup


class EntityLookupRegistry:
    """Maps logical entity types to lookup routines."""

    def __init__(self, session_factory: Callable = AsyncSessionLocal):
        self.session_factory = session_factory
        self._lookups: Dict[str, EntityLookup] = {}

    def register(self, entity_type: str, lookup: EntityLookup) -> None:
        self._lookups[entity_type] = lookup

    def unregister(self, entity_type: str) -> None:
        self._lookups.pop(entity_type, None)

    def get(self, entity_type: str) -> Optional[EntityLookup]:
        return self._lookups.get(entity_type)

    def registered_types(self):
        return sorted(self._lookups)

    async def fetch_prior_state(self, entity_type: str, entity_id: Optional[str]) -> Optional[JsonRecord]:
        """Current state of an entity, or None when it is unavailable for any reason."""
        lookup = self.get(entity_type)
        if lookup is None or not entity_id:
            logger.debug("No prior-state lookup for %s/%s", entity_type, entity_id)
            return None
        try:
            async with self.session_factory() as db:
                return await lookup(db, entity_id)
        except Exception:
            logger.warning(
                "Prior-state lookup failed for %s/%s", entity_type, entity_id, exc_info=True
            )
            return None


entity_lookups = EntityLookupRegistry()
