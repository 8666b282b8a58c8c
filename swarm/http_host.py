"""HTTP adapter to a host agent's JSON API.

Implements every host protocol by calling a small REST agent running next
to the real cluster:

    GET  /nodes/<name>              -> NodeInfo
    GET  /nodes/<name>/neighbors    -> ["a", "b", ...]
    GET  /nodes/<name>/processes    -> [{"program", "args", "threads"}, ...]
    POST /nodes/<name>/unlock       -> {"unlocked": bool}
    GET  /targets/<name>            -> TargetEconomics
    POST /analysis/growth           -> {"threads": float}
    POST /analysis/security         -> {"delta": float}
    POST /launch                    -> 2xx on success
    GET  /operator                  -> OperatorInfo
    GET  /programs/<program>        -> 2xx when installed, 404 otherwise

Network failures and malformed responses become HostUnavailableError so
the controller can abandon the tick and retry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from swarm.errors import HostUnavailableError
from swarm.models import (
    NodeInfo,
    Operation,
    OperationDurations,
    OperatorInfo,
    ProcessInfo,
    TargetEconomics,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class HttpHost:
    """requests-based host client."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        programs: Optional[Dict[Operation, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.programs = dict(programs or {})
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = self._url(path)
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise HostUnavailableError(f"Host API error: {e}", url=url, status_code=status) from e
        except requests.RequestException as e:
            raise HostUnavailableError(f"Host API unreachable: {e}", url=url) from e
        except ValueError as e:
            raise HostUnavailableError(f"Host API returned invalid JSON: {e}", url=url) from e

    def _get(self, path: str) -> Any:
        return self._request("GET", path)

    def _post(self, path: str, payload: dict) -> Any:
        return self._request("POST", path, payload)

    # ------------------------------------------------------------------
    # CapacityOracle
    # ------------------------------------------------------------------

    def get_node(self, name: str) -> NodeInfo:
        data = self._get(f"/nodes/{name}")
        try:
            return NodeInfo(
                name=data.get("name", name),
                total_capacity=float(data["total_capacity"]),
                used_capacity=float(data.get("used_capacity", 0.0)),
                rooted=bool(data.get("rooted", False)),
                cores=int(data.get("cores", 1)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed node record for {name}: {e}",
                                       url=self._url(f"/nodes/{name}")) from e

    def neighbors(self, name: str) -> List[str]:
        path = f"/nodes/{name}/neighbors"
        data = self._get(path)
        if not isinstance(data, list):
            raise HostUnavailableError(f"Malformed neighbor list for {name}", url=self._url(path))
        return [str(n) for n in data]

    # ------------------------------------------------------------------
    # EconomicOracle
    # ------------------------------------------------------------------

    def get_economics(self, name: str) -> TargetEconomics:
        data = self._get(f"/targets/{name}")
        try:
            durations = data.get("durations") or {}
            return TargetEconomics(
                max_value=float(data["max_value"]),
                current_value=float(data["current_value"]),
                extraction_rate=float(data["extraction_rate"]),
                baseline_security=float(data["baseline_security"]),
                current_security=float(data["current_security"]),
                required_level=int(data.get("required_level", 1)),
                durations=OperationDurations(
                    extract=float(durations.get("extract", 0.0)),
                    replenish=float(durations.get("replenish", 0.0)),
                    stabilize=float(durations.get("stabilize", 0.0)),
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed target record for {name}: {e}",
                                       url=self._url(f"/targets/{name}")) from e

    def growth_analysis(self, name: str, multiplier: float) -> float:
        data = self._post("/analysis/growth", {"target": name, "multiplier": multiplier})
        try:
            return float(data.get("threads", 0.0))
        except (TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed growth analysis for {name}: {e}",
                                       url=self._url("/analysis/growth")) from e

    def security_impact(self, op: Operation, threads: int) -> float:
        data = self._post("/analysis/security", {"operation": Operation(op).value, "threads": threads})
        try:
            return float(data.get("delta", 0.0))
        except (TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed security impact: {e}",
                                       url=self._url("/analysis/security")) from e

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def has_program(self, op: Operation) -> bool:
        program = self.programs.get(Operation(op), Operation(op).value)
        url = self._url(f"/programs/{program}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise HostUnavailableError(f"Host API unreachable: {e}", url=url) from e
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise HostUnavailableError(f"Host API error checking {program}",
                                       url=url, status_code=response.status_code)
        return True

    def launch(self, op: Operation, node: str, threads: int, target: str) -> bool:
        op = Operation(op)
        payload = {
            "operation": op.value,
            "program": self.programs.get(op, op.value),
            "node": node,
            "threads": threads,
            "target": target,
        }
        url = self._url("/launch")
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Launch request failed: {e}")
            return False
        if response.status_code >= 400:
            logger.debug(f"Launch refused ({response.status_code}): {payload}")
            return False
        return True

    # ------------------------------------------------------------------
    # ProcessObserver
    # ------------------------------------------------------------------

    def list_processes(self, node: str) -> List[ProcessInfo]:
        path = f"/nodes/{node}/processes"
        data = self._get(path)
        if not isinstance(data, list):
            raise HostUnavailableError(f"Malformed process list for {node}", url=self._url(path))
        processes = []
        try:
            for raw in data:
                processes.append(ProcessInfo(
                    program=str(raw.get("program", "")),
                    args=[str(a) for a in raw.get("args", [])],
                    threads=int(raw.get("threads", 1)),
                ))
        except (TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed process record on {node}: {e}",
                                       url=self._url(path)) from e
        return processes

    # ------------------------------------------------------------------
    # OperatorOracle / AccessManager
    # ------------------------------------------------------------------

    def get_operator(self) -> OperatorInfo:
        data = self._get("/operator")
        try:
            return OperatorInfo(level=int(data.get("level", 1)),
                                exploits=int(data.get("exploits", 0)))
        except (TypeError, ValueError, AttributeError) as e:
            raise HostUnavailableError(f"Malformed operator record: {e}",
                                       url=self._url("/operator")) from e

    def try_unlock(self, name: str) -> bool:
        path = f"/nodes/{name}/unlock"
        data = self._post(path, {})
        if not isinstance(data, dict):
            raise HostUnavailableError(f"Malformed unlock reply for {name}", url=self._url(path))
        return bool(data.get("unlocked", False))
