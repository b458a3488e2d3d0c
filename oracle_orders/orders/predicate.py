"""
Predicate compiler.

Turns a Condition into the predicate bytes the Limit Order Protocol evaluates
before every fill:

    protocol_address (20 bytes)
    || gt|lt(uint256 threshold, bytes call)
         call = arbitraryStaticCall(address oracle, bytes getIndexValue(uint256 id))

The protocol only offers strict ``gt`` / ``lt``; GTE and LTE are shifted by
one unit of the scaled integer. EQ needs the ``and`` combinator and is
rejected unless it is enabled.
"""

import logging
from typing import List, Optional

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from ..errors import InvalidCondition, UnsupportedOperator, ValidationError
from .address import Address
from .types import UINT256_MAX, Condition, Operator

GET_INDEX_VALUE_SELECTOR = function_signature_to_4byte_selector("getIndexValue(uint256)")
ARBITRARY_STATIC_CALL_SELECTOR = function_signature_to_4byte_selector("arbitraryStaticCall(address,bytes)")
GT_SELECTOR = function_signature_to_4byte_selector("gt(uint256,bytes)")
LT_SELECTOR = function_signature_to_4byte_selector("lt(uint256,bytes)")
AND_SELECTOR = function_signature_to_4byte_selector("and(uint256,bytes)")


class PredicateCompiler:
    """Compiles conditions against one oracle and one protocol deployment."""

    def __init__(
        self,
        oracle_address,
        protocol_address,
        allow_and_combinator: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize compiler.

        Args:
            oracle_address: Index oracle exposing getIndexValue(uint256)
            protocol_address: Limit Order Protocol contract
            allow_and_combinator: Encode EQ as and(gt(t-1), lt(t+1))
            logger: Optional logger
        """
        self.oracle_address = Address.of(oracle_address)
        self.protocol_address = Address.of(protocol_address)
        self.allow_and_combinator = allow_and_combinator
        self._logger = logger or logging.getLogger(__name__)

    def oracle_call(self, index_id: int) -> bytes:
        return GET_INDEX_VALUE_SELECTOR + encode(["uint256"], [index_id])

    def static_call(self, index_id: int) -> bytes:
        return ARBITRARY_STATIC_CALL_SELECTOR + encode(
            ["address", "bytes"],
            [self.oracle_address.value, self.oracle_call(index_id)],
        )

    @staticmethod
    def _compare(selector: bytes, threshold: int, call: bytes) -> bytes:
        return selector + encode(["uint256", "bytes"], [threshold, call])

    @staticmethod
    def _and(parts: List[bytes]) -> bytes:
        offsets = 0
        end = 0
        for i, part in enumerate(parts):
            end += len(part)
            offsets |= end << (32 * i)
        return AND_SELECTOR + encode(["uint256", "bytes"], [offsets, b"".join(parts)])

    def compile_calldata(self, condition: Condition) -> bytes:
        """Protocol calldata for ``condition`` without the address prefix."""
        call = self.static_call(condition.index_id)
        t = condition.threshold
        op = condition.operator

        if op == Operator.GT:
            return self._compare(GT_SELECTOR, t, call)
        if op == Operator.LT:
            return self._compare(LT_SELECTOR, t, call)
        if op == Operator.GTE:
            if t == 0:
                raise InvalidCondition(f"{condition.describe()} is always true")
            return self._compare(GT_SELECTOR, t - 1, call)
        if op == Operator.LTE:
            if t == UINT256_MAX:
                raise InvalidCondition(f"{condition.describe()} is always true")
            return self._compare(LT_SELECTOR, t + 1, call)

        # EQ
        if not self.allow_and_combinator:
            raise UnsupportedOperator(
                f"{condition.describe()}: EQ is not enforceable with gt/lt alone"
            )
        if t == 0:
            return self._compare(LT_SELECTOR, 1, call)
        if t == UINT256_MAX:
            return self._compare(GT_SELECTOR, t - 1, call)
        return self._and([
            self._compare(GT_SELECTOR, t - 1, call),
            self._compare(LT_SELECTOR, t + 1, call),
        ])

    def compile(self, condition: Condition) -> bytes:
        """Full predicate: protocol address followed by the calldata."""
        predicate = self.protocol_address.to_bytes() + self.compile_calldata(condition)
        self._logger.debug(f"Compiled predicate for {condition.describe()}: {len(predicate)} bytes")
        return predicate

    def decompile(self, predicate: bytes) -> Condition:
        """Recover the condition from a predicate this compiler produced.

        GTE/LTE predicates come back in their equivalent GT/LT form.
        """
        if len(predicate) < 24 or predicate[:20] != self.protocol_address.to_bytes():
            raise ValidationError("Predicate is not addressed to this protocol", reason="INVALID_PREDICATE")
        return self._decompile_calldata(predicate[20:])

    def _decompile_calldata(self, calldata: bytes) -> Condition:
        selector, body = calldata[:4], calldata[4:]
        if selector in (GT_SELECTOR, LT_SELECTOR):
            threshold, call = decode(["uint256", "bytes"], body)
            operator = Operator.GT if selector == GT_SELECTOR else Operator.LT
            return Condition(self._index_from_call(call), operator, threshold)

        if selector == AND_SELECTOR:
            offsets, data = decode(["uint256", "bytes"], body)
            parts = self._split(offsets, data)
            conditions = [self._decompile_calldata(part) for part in parts]
            return self._merge_range(conditions)

        raise ValidationError(f"Unknown predicate selector 0x{selector.hex()}", reason="INVALID_PREDICATE")

    def _index_from_call(self, call: bytes) -> int:
        if call[:4] != ARBITRARY_STATIC_CALL_SELECTOR:
            raise ValidationError("Predicate does not wrap a static call", reason="INVALID_PREDICATE")
        target, inner = decode(["address", "bytes"], call[4:])
        if Address(target) != self.oracle_address:
            raise ValidationError(f"Predicate targets unknown oracle {target}", reason="INVALID_PREDICATE")
        if inner[:4] != GET_INDEX_VALUE_SELECTOR:
            raise ValidationError("Predicate does not call getIndexValue", reason="INVALID_PREDICATE")
        (index_id,) = decode(["uint256"], inner[4:])
        return index_id

    @staticmethod
    def _split(offsets: int, data: bytes) -> List[bytes]:
        parts = []
        start = 0
        for i in range(8):
            end = (offsets >> (32 * i)) & 0xFFFFFFFF
            if end <= start:
                break
            parts.append(data[start:end])
            start = end
        return parts

    @staticmethod
    def _merge_range(conditions: List[Condition]) -> Condition:
        lower = next((c for c in conditions if c.operator == Operator.GT), None)
        upper = next((c for c in conditions if c.operator == Operator.LT), None)
        if (
            len(conditions) == 2
            and lower is not None
            and upper is not None
            and lower.index_id == upper.index_id
            and upper.threshold - lower.threshold == 2
        ):
            return Condition(lower.index_id, Operator.EQ, lower.threshold + 1)
        raise ValidationError("Unsupported and() predicate shape", reason="INVALID_PREDICATE")
