"""
txspec API client - thin wrapper over the REST endpoints
"""
import os
from typing import Any, Dict, List, Optional

import requests

from txspec.ingest import TraceRecord


class TxSpecClient:
    """
    Client for a running txspec server.

    Example usage:
        client = TxSpecClient("http://localhost:8000")

        # Check statements without a trace
        checks = client.check_statements(schemas, [
            {"source": "reverted(play, !started)", "contract": "Lottery"}
        ])

        # Verify statements against a trace
        summary = client.verify(trace, statements)
        print(summary["passed"], summary["failed"])
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        """
        Args:
            base_url: Server URL (uses TXSPEC_URL env var if not provided)
            timeout: Request timeout in seconds
            session: Optional requests session to reuse
        """
        self.base_url = (base_url or os.getenv("TXSPEC_URL", "http://localhost:8000")).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.json()

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/")

    def check_statements(self, schemas: List[Dict[str, Any]],
                         statements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Parse and type-check statements on the server.

        Returns:
            One dict per statement: {"source", "valid", "statement", "error"}
        """
        data = self._request("POST", "/api/check-statements",
                             json={"schemas": schemas, "statements": statements})
        return data["results"]

    def verify(self, trace: Any, statements: List[Dict[str, Any]],
               report_all: Optional[bool] = None,
               check_causality: bool = True) -> Dict[str, Any]:
        """
        Verify statements against a trace.

        Args:
            trace: TraceRecord or a dict in the same shape
            statements: [{"source": ..., "contract": ..., "label": ..., "oneway": ...}]
            report_all: Collect every counterexample instead of the earliest
            check_causality: Reject traces whose consecutive states disagree

        Returns:
            Verification summary dict

        Raises:
            ValueError: if the server rejected the trace
        """
        if isinstance(trace, TraceRecord):
            trace = trace.model_dump(mode="json")
        data = self._request("POST", "/api/verify", json={
            "trace": trace,
            "statements": statements,
            "report_all": report_all,
            "check_causality": check_causality
        })
        if not data["success"]:
            raise ValueError(data["error"])
        return data["summary"]

    def cache_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/api/cache/stats")

    def clear_cache(self) -> bool:
        return self._request("DELETE", "/api/cache")["success"]
