"""
Oracle Admin.

Operator-facing index management. Authorization is resolved against the
index's recorded creator and the global admins before any write is sent;
an unauthorized caller gets NotAuthorized, never a silent no-op.
"""

import logging
from typing import List, Optional

from ..errors import NotAuthorized
from ..orders.address import Address
from .source import IndexSource, can_configure, can_set_value
from .types import Index, OracleBackend


class OracleAdmin:
    """Change index backends and activation status."""

    def __init__(self, source: IndexSource, logger: Optional[logging.Logger] = None):
        self.source = source
        self._logger = logger or logging.getLogger(__name__)

    async def _authorize_config(self, caller: Address, index_id: int) -> Index:
        index = await self.source.get_index(index_id)
        if not can_configure(index, caller, await self.source.admins()):
            self._logger.warning(f"Rejected config change on index {index_id} by {caller}")
            raise NotAuthorized(
                f"{caller} is neither creator ({index.creator}) nor admin of index {index_id}"
            )
        return index

    async def set_backend(self, caller, index_id: int, backend: OracleBackend) -> Index:
        """Bind ``index_id`` to ``backend``.

        Args:
            caller: Identity requesting the change
            index_id: Target index
            backend: OracleBackend.mock() or OracleBackend.managed(updater)

        Returns:
            The index after the change

        Raises:
            NotAuthorized: caller is neither creator nor admin
            IndexNotFound: index is not registered
        """
        caller = Address.of(caller)
        index = await self._authorize_config(caller, index_id)
        if index.backend == backend:
            self._logger.info(f"Index {index_id} already on backend {backend}")
            return index
        await self.source.set_backend(caller, index_id, backend)
        return await self.source.get_index(index_id)

    async def set_active(self, caller, index_id: int, active: bool) -> Index:
        """Activate or deactivate ``index_id``. The last value stays readable."""
        caller = Address.of(caller)
        await self._authorize_config(caller, index_id)
        await self.source.set_active(caller, index_id, active)
        return await self.source.get_index(index_id)

    async def push_value(self, caller, index_id: int, value: int) -> Index:
        """Manually push a value (admin, MOCK creator or MANAGED updater)."""
        caller = Address.of(caller)
        index = await self.source.get_index(index_id)
        if not can_set_value(index, caller, await self.source.admins()):
            raise NotAuthorized(f"{caller} may not update index {index_id} (backend {index.backend})")
        await self.source.set_value(caller, index_id, value)
        return await self.source.get_index(index_id)

    async def create_index(
        self,
        caller,
        name: str,
        initial_value: int,
        description: str = "",
        source_url: str = "",
    ) -> int:
        return await self.source.create_custom_index(
            Address.of(caller), name, initial_value, description, source_url
        )

    async def list_indices(self) -> List[Index]:
        return await self.source.list_indices()
