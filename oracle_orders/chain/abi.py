"""Contract ABI subset: index oracle and Limit Order Protocol."""

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector


@dataclass(frozen=True)
class ContractFunction:
    """One contract function: input and output ABI types."""
    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args: Any) -> bytes:
        return self.selector + encode(list(self.inputs), list(args))

    def decode_output(self, data: bytes) -> Tuple[Any, ...]:
        return tuple(decode(list(self.outputs), data))


def _fn(name: str, inputs: Sequence[str], outputs: Sequence[str] = ()) -> ContractFunction:
    return ContractFunction(name, tuple(inputs), tuple(outputs))


# Reads
GET_INDEX_VALUE = _fn("getIndexValue", ["uint256"], ["uint256", "uint256"])
INDEX_DATA = _fn("indexData", ["uint8"], ["uint256", "uint256", "string", "bool"])
CUSTOM_INDEX_DATA = _fn("customIndexData", ["uint256"], ["uint256", "uint256", "string", "bool"])
GET_INDEX_ORACLE_TYPE = _fn("getIndexOracleType", ["uint256"], ["uint8"])
GET_INDEX_CREATOR = _fn("getIndexCreator", ["uint256"], ["address"])
GET_NEXT_CUSTOM_INDEX_ID = _fn("getNextCustomIndexId", [], ["uint256"])
OWNER = _fn("owner", [], ["address"])

# Writes
UPDATE_INDEX = _fn("updateIndex", ["uint8", "uint256"])
UPDATE_CUSTOM_INDEX = _fn("updateCustomIndex", ["uint256", "uint256"])
SET_INDEX_STATUS = _fn("setIndexStatus", ["uint256", "bool"])
SET_INDEX_ORACLE_TYPE = _fn("setIndexOracleType", ["uint256", "uint8"])
CREATE_CUSTOM_INDEX = _fn("createCustomIndex", ["uint256", "string"], ["uint256"])

# Limit Order Protocol
CANCEL_ORDER = _fn("cancelOrder", ["uint256", "bytes32"])
