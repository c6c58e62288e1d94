# ingestion/fetcher.py
from __future__ import annotations

import re
import requests
from typing import Any, Dict, List, Optional

from common.utils import to_int
from ingestion.models import RawLog


class RpcError(RuntimeError):
    pass


_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def normalize_contract(addr: str) -> str:
    """
    Returns lowercased 0x-prefixed 40-hex address or raises RpcError with a clear message.
    Accepts inputs with extra whitespace/quotes.
    """
    if not addr:
        raise RpcError("Contract address not provided.")
    a = str(addr).strip().strip('"').strip("'")
    h = a[2:] if a[:2] in ("0x", "0X") else a
    if len(h) != 40 or not _HEX_RE.match(h):
        raise RpcError(f"Invalid contract address: {addr!r} (need 20-byte hex, e.g. 0x...40 hex chars)")
    return "0x" + h.lower()


def _is_hash(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 66


class RpcProvider:
    """
    Minimal JSON-RPC client for the three calls an ingestion cycle needs.
    No retries: a failed call surfaces as RpcError and the caller decides.
    """

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    def _rpc_post(self, method: str, params: List[Any]):
        """
        Return the JSON RPC result field directly.
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise RpcError(f"RPC transport failed for {method} url={self.url}") from e
        except ValueError as e:
            raise RpcError(f"RPC response for {method} was not valid JSON") from e
        if "error" in data:
            raise RpcError(f"RPC error for {method} url={self.url} err={data['error']}")
        if "result" not in data:
            raise RpcError(f"RPC response for {method} has no result")
        return data["result"]

    def get_latest_block_number(self) -> int:
        return to_int(self._rpc_post("eth_blockNumber", []))

    def get_logs(self, address: str, from_block: int, to_block: int) -> List[RawLog]:
        if not isinstance(address, str) or not address.startswith("0x"):
            raise ValueError("address must be a 0x prefixed hex string")
        if not isinstance(from_block, int) or not isinstance(to_block, int):
            raise ValueError("from_block and to_block must be integers")
        if from_block < 0 or to_block < from_block:
            raise ValueError("invalid block range")
        params = [{"address": address, "fromBlock": hex(from_block), "toBlock": hex(to_block)}]
        result = self._rpc_post("eth_getLogs", params)
        if not isinstance(result, list):
            raise RpcError("RPC response for eth_getLogs did not return a list")
        try:
            return [RawLog.from_rpc(lg) for lg in result]
        except (KeyError, TypeError, ValueError) as e:
            # a half-parsed response is treated like a failed call
            raise RpcError(f"Malformed log in eth_getLogs response: {e}") from e

    def get_block_by_hash(self, block_hash: str) -> Dict[str, Any]:
        if not _is_hash(block_hash):
            raise ValueError("block_hash must be a 0x prefixed 32-byte hex string")
        block: Optional[dict] = self._rpc_post("eth_getBlockByHash", [block_hash, False])
        if not block:
            raise RpcError(f"Block {block_hash} not found")
        return {**block, "timestamp": to_int(block["timestamp"])}


__all__ = [
    "RpcError",
    "RpcProvider",
    "normalize_contract",
]
