"""
Index Source.

Abstract store of mutable index values, with an in-memory implementation
(manually pushed values, used for local runs and tests) and an RPC
implementation backed by the deployed index oracle contract.

Authorization (checked before any write):
- set_value: global admin; the creator for MOCK indices; the named updater
  for MANAGED indices
- set_active / set_backend: creator or global admin
Every write stamps the index with the write time. Deactivating an index
keeps its last value readable.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional

from eth_account import Account

from ..chain import abi
from ..chain.rpc import JsonRpcClient
from ..errors import IndexNotFound, KeyUnavailable, NotAuthorized, RpcError, ValidationError
from ..orders.address import Address
from .types import (
    FIRST_CUSTOM_INDEX_ID,
    PREDEFINED_INDICES,
    Index,
    IndexReading,
    OracleBackend,
    OracleType,
)

UINT256_MAX = (1 << 256) - 1


def can_set_value(index: Index, caller: Address, admins: Iterable[Address]) -> bool:
    if caller in set(admins):
        return True
    if index.backend.kind == OracleType.MOCK:
        return caller == index.creator
    return caller == index.backend.updater


def can_configure(index: Index, caller: Address, admins: Iterable[Address]) -> bool:
    return caller == index.creator or caller in set(admins)


def _check_value(value: int):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0 or value > UINT256_MAX:
        raise ValidationError(f"Index value must be a uint256, got {value!r}", reason="INVALID_VALUE")


class IndexSource(ABC):
    """Read/write access to index values."""

    @abstractmethod
    async def get_value(self, index_id: int) -> IndexReading:
        """Current value, timestamp and active flag. Raises IndexNotFound."""

    @abstractmethod
    async def get_index(self, index_id: int) -> Index:
        """Full index record including creator and backend."""

    @abstractmethod
    async def list_indices(self) -> List[Index]:
        """All known indices."""

    @abstractmethod
    async def admins(self) -> List[Address]:
        """Global admins."""

    @abstractmethod
    async def set_value(self, caller: Address, index_id: int, value: int):
        pass

    @abstractmethod
    async def set_active(self, caller: Address, index_id: int, active: bool):
        pass

    @abstractmethod
    async def set_backend(self, caller: Address, index_id: int, backend: OracleBackend):
        pass

    @abstractmethod
    async def create_custom_index(
        self,
        caller: Address,
        name: str,
        initial_value: int,
        description: str = "",
        source_url: str = "",
    ) -> int:
        """Register a new index owned by ``caller``; returns its id."""


class InMemoryIndexSource(IndexSource):
    """Process-local index store.

    Seeded with the predefined indices, owned by the first admin.
    """

    def __init__(
        self,
        admins: Iterable = (),
        seed_predefined: bool = True,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self._admins = [Address.of(a) for a in admins]
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._lock = RLock()
        self._indices: Dict[int, Index] = {}
        self._next_custom_id = FIRST_CUSTOM_INDEX_ID

        if seed_predefined:
            owner = self._admins[0] if self._admins else Address.zero()
            now = int(self._clock())
            for predefined in PREDEFINED_INDICES:
                self._indices[predefined.id] = Index(
                    id=predefined.id,
                    name=predefined.name,
                    description=predefined.description,
                    value=predefined.initial_value,
                    creator=owner,
                    timestamp=now,
                )

    def _get(self, index_id: int) -> Index:
        index = self._indices.get(index_id)
        if index is None:
            raise IndexNotFound(f"Index {index_id} is not registered")
        return index

    async def get_value(self, index_id: int) -> IndexReading:
        with self._lock:
            return self._get(index_id).reading()

    async def get_index(self, index_id: int) -> Index:
        with self._lock:
            index = self._get(index_id)
            return Index(**vars(index))

    async def list_indices(self) -> List[Index]:
        with self._lock:
            return [Index(**vars(i)) for _, i in sorted(self._indices.items())]

    async def admins(self) -> List[Address]:
        return list(self._admins)

    async def set_value(self, caller: Address, index_id: int, value: int):
        caller = Address.of(caller)
        _check_value(value)
        with self._lock:
            index = self._get(index_id)
            if not can_set_value(index, caller, self._admins):
                raise NotAuthorized(
                    f"{caller} may not update index {index_id} (backend {index.backend})"
                )
            index.value = value
            index.timestamp = int(self._clock())
        self._logger.info(f"Index {index_id} ({index.name}) = {value} by {caller}")

    async def set_active(self, caller: Address, index_id: int, active: bool):
        caller = Address.of(caller)
        with self._lock:
            index = self._get(index_id)
            if not can_configure(index, caller, self._admins):
                raise NotAuthorized(f"{caller} may not change status of index {index_id}")
            index.active = active
            index.timestamp = int(self._clock())
        self._logger.info(f"Index {index_id} {'activated' if active else 'deactivated'} by {caller}")

    async def set_backend(self, caller: Address, index_id: int, backend: OracleBackend):
        caller = Address.of(caller)
        with self._lock:
            index = self._get(index_id)
            if not can_configure(index, caller, self._admins):
                raise NotAuthorized(f"{caller} may not change backend of index {index_id}")
            index.backend = backend
            index.timestamp = int(self._clock())
        self._logger.info(f"Index {index_id} backend -> {backend} by {caller}")

    async def create_custom_index(
        self,
        caller: Address,
        name: str,
        initial_value: int,
        description: str = "",
        source_url: str = "",
    ) -> int:
        caller = Address.of(caller)
        _check_value(initial_value)
        with self._lock:
            index_id = self._next_custom_id
            self._next_custom_id += 1
            self._indices[index_id] = Index(
                id=index_id,
                name=name,
                description=description,
                value=initial_value,
                creator=caller,
                timestamp=int(self._clock()),
                source_url=source_url,
            )
        self._logger.info(f"Created index {index_id} ({name}) for {caller}")
        return index_id


class RpcIndexSource(IndexSource):
    """Index oracle contract over JSON-RPC.

    The contract exposes one updater for all MANAGED indices; it is passed in
    as ``managed_updater`` and reported as the backend's updater on reads.
    Writes are signed with ``private_key`` and must be made on behalf of the
    key's own address.
    """

    def __init__(
        self,
        rpc: JsonRpcClient,
        oracle_address,
        private_key: Optional[str] = None,
        managed_updater=None,
        extra_admins: Iterable = (),
        logger: Optional[logging.Logger] = None,
    ):
        self.rpc = rpc
        self.oracle_address = Address.of(oracle_address)
        self._private_key = private_key
        self._managed_updater = Address.of(managed_updater) if managed_updater else None
        self._extra_admins = [Address.of(a) for a in extra_admins]
        self._logger = logger or logging.getLogger(__name__)
        self._owner: Optional[Address] = None

    async def _read(self, fn: abi.ContractFunction, *args) -> tuple:
        data = await self.rpc.eth_call(self.oracle_address.value, fn.encode_call(*args))
        return fn.decode_output(data)

    async def get_value(self, index_id: int) -> IndexReading:
        fn = abi.INDEX_DATA if index_id < FIRST_CUSTOM_INDEX_ID else abi.CUSTOM_INDEX_DATA
        try:
            value, timestamp, _source_url, active = await self._read(fn, index_id)
        except RpcError as e:
            if e.reverted:
                raise IndexNotFound(f"Index {index_id} is not registered") from e
            raise
        if timestamp == 0:
            raise IndexNotFound(f"Index {index_id} is not registered")
        return IndexReading(index_id=index_id, value=value, timestamp=timestamp, active=active)

    async def get_index(self, index_id: int) -> Index:
        fn = abi.INDEX_DATA if index_id < FIRST_CUSTOM_INDEX_ID else abi.CUSTOM_INDEX_DATA
        try:
            (value, timestamp, source_url, active), (oracle_type,), (creator,) = await asyncio.gather(
                self._read(fn, index_id),
                self._read(abi.GET_INDEX_ORACLE_TYPE, index_id),
                self._read(abi.GET_INDEX_CREATOR, index_id),
            )
        except RpcError as e:
            if e.reverted:
                raise IndexNotFound(f"Index {index_id} is not registered") from e
            raise
        if timestamp == 0:
            raise IndexNotFound(f"Index {index_id} is not registered")

        if OracleType(oracle_type) == OracleType.MANAGED:
            backend = OracleBackend.managed(self._managed_updater or Address.zero())
        else:
            backend = OracleBackend.mock()

        predefined = {p.id: p for p in PREDEFINED_INDICES}.get(index_id)
        return Index(
            id=index_id,
            name=predefined.name if predefined else f"CUSTOM_{index_id}",
            description=predefined.description if predefined else "",
            value=value,
            timestamp=timestamp,
            active=active,
            backend=backend,
            creator=Address(creator),
            source_url=source_url,
        )

    async def list_indices(self) -> List[Index]:
        (next_id,) = await self._read(abi.GET_NEXT_CUSTOM_INDEX_ID)
        ids = [p.id for p in PREDEFINED_INDICES] + list(range(FIRST_CUSTOM_INDEX_ID, next_id))
        indices = []
        for index_id in ids:
            try:
                indices.append(await self.get_index(index_id))
            except IndexNotFound:
                continue
        return indices

    async def admins(self) -> List[Address]:
        if self._owner is None:
            (owner,) = await self._read(abi.OWNER)
            self._owner = Address(owner)
        return [self._owner] + self._extra_admins

    def _signer_for(self, caller: Address) -> str:
        if not self._private_key:
            raise KeyUnavailable("No oracle key configured")
        try:
            address = Address(Account.from_key(self._private_key).address)
        except (ValueError, TypeError) as e:
            raise KeyUnavailable("Oracle key is malformed") from e
        if address != caller:
            raise KeyUnavailable(f"Configured oracle key belongs to {address}, not {caller}")
        return self._private_key

    async def _write(self, caller: Address, calldata: bytes) -> str:
        key = self._signer_for(caller)
        return await self.rpc.send_transaction(key, self.oracle_address.value, calldata)

    async def set_value(self, caller: Address, index_id: int, value: int) -> str:
        caller = Address.of(caller)
        _check_value(value)
        index = await self.get_index(index_id)
        if not can_set_value(index, caller, await self.admins()):
            raise NotAuthorized(f"{caller} may not update index {index_id} (backend {index.backend})")
        if index_id < FIRST_CUSTOM_INDEX_ID:
            calldata = abi.UPDATE_INDEX.encode_call(index_id, value)
        else:
            calldata = abi.UPDATE_CUSTOM_INDEX.encode_call(index_id, value)
        tx_hash = await self._write(caller, calldata)
        self._logger.info(f"Index {index_id} = {value} by {caller} (tx {tx_hash})")
        return tx_hash

    async def set_active(self, caller: Address, index_id: int, active: bool) -> str:
        caller = Address.of(caller)
        index = await self.get_index(index_id)
        if not can_configure(index, caller, await self.admins()):
            raise NotAuthorized(f"{caller} may not change status of index {index_id}")
        tx_hash = await self._write(caller, abi.SET_INDEX_STATUS.encode_call(index_id, active))
        self._logger.info(f"Index {index_id} active={active} by {caller} (tx {tx_hash})")
        return tx_hash

    async def set_backend(self, caller: Address, index_id: int, backend: OracleBackend) -> str:
        caller = Address.of(caller)
        if backend.kind == OracleType.MANAGED and backend.updater != self._managed_updater:
            raise ValidationError(
                f"Oracle contract uses updater {self._managed_updater}, not {backend.updater}",
                reason="INVALID_BACKEND",
            )
        index = await self.get_index(index_id)
        if not can_configure(index, caller, await self.admins()):
            raise NotAuthorized(f"{caller} may not change backend of index {index_id}")
        tx_hash = await self._write(
            caller, abi.SET_INDEX_ORACLE_TYPE.encode_call(index_id, backend.kind.value)
        )
        self._logger.info(f"Index {index_id} backend -> {backend} by {caller} (tx {tx_hash})")
        return tx_hash

    async def create_custom_index(
        self,
        caller: Address,
        name: str,
        initial_value: int,
        description: str = "",
        source_url: str = "",
    ) -> int:
        caller = Address.of(caller)
        _check_value(initial_value)
        (index_id,) = await self._read(abi.GET_NEXT_CUSTOM_INDEX_ID)
        tx_hash = await self._write(
            caller, abi.CREATE_CUSTOM_INDEX.encode_call(initial_value, source_url)
        )
        self._logger.info(f"Creating index {index_id} ({name}) for {caller} (tx {tx_hash})")
        return index_id
