# File: topgun/atc/api_client.py

from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel


class Worker(BaseModel):
    name: str
    state: str = ""
    garden_addr: str = ""
    baggageclaim_url: str = ""
    team: str = ""
    platform: str = ""
    active_containers: int = 0


class Container(BaseModel):
    id: str
    worker_name: str = ""
    type: str = ""
    state: str = ""
    pipeline_name: Optional[str] = None
    job_name: Optional[str] = None
    build_name: Optional[str] = None
    step_name: Optional[str] = None


class ConcourseClient:
    """Thin client for the ATC API, authenticated by the session it is given."""

    def __init__(self, base_url: str, session: requests.Session, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        response = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json() if response.content else None

    def list_workers(self) -> List[Worker]:
        return [Worker.model_validate(w) for w in self.get("/api/v1/workers") or []]

    def list_containers(self, team: str = "main", **filters: str) -> List[Container]:
        data = self.get(f"/api/v1/teams/{team}/containers", params=filters or None)
        return [Container.model_validate(c) for c in data or []]

    def creds_info(self) -> Dict[str, Any]:
        return self.get("/api/v1/info/creds") or {}

    def close(self):
        self.session.close()
