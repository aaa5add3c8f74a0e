import base64
import json
import os
import shutil
import socket
import sys
import threading
import time
from urllib.parse import parse_qs

import pytest
import uvicorn
import yaml
from fastapi import FastAPI, HTTPException, Request

# Make the topgun package importable without installing it
base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, base_dir)

from topgun.config import HarnessConfig

FAKES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fakes")
FAKE_BOSH = os.path.join(FAKES_DIR, "fake_bosh.py")
FAKE_FLY = os.path.join(FAKES_DIR, "fake_fly.py")

VALID_USERS = {"test": "test"}


class FakeATC:
    """
    In-process stand-in for the web node and the workers' garden servers.

    Serves the token endpoint, the worker and container listings and the
    garden container-destroy endpoint from a single uvicorn server.
    """

    def __init__(self):
        self.workers = []
        self.containers = []
        self.destroyed = []
        self.failing_handles = set()
        self.token_requests = []
        self.app = self._build_app()
        self.server = None
        self.thread = None
        self.port = None

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    @property
    def url(self) -> str:
        return f"http://{self.address}"

    def add_worker(self, name: str, state: str = "running"):
        self.workers.append({"name": name, "state": state, "garden_addr": self.address, "team": "main"})

    def add_container(self, handle: str, worker: str):
        self.containers.append({"id": handle, "worker_name": worker, "type": "task", "state": "created"})

    def _authorize(self, request: Request):
        header = request.headers.get("authorization", "")
        if not header.startswith("Bearer tok-"):
            raise HTTPException(status_code=401, detail="not authorized")

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.post("/sky/token")
        async def token(request: Request):
            form = {k: v[0] for k, v in parse_qs((await request.body()).decode()).items()}
            self.token_requests.append(form)

            scheme, _, encoded = request.headers.get("authorization", "").partition(" ")
            client = base64.b64decode(encoded).decode() if scheme.lower() == "basic" else ""
            if client != "fly:Zmx5":
                raise HTTPException(status_code=401, detail="invalid client")
            if VALID_USERS.get(form.get("username")) != form.get("password"):
                raise HTTPException(status_code=401, detail="invalid username and password")

            return {
                "access_token": f"tok-{form['username']}",
                "token_type": "bearer",
                "expires_in": 3600,
            }

        @app.get("/api/v1/workers")
        def workers(request: Request):
            self._authorize(request)
            return self.workers

        @app.get("/api/v1/teams/{team}/containers")
        def containers(team: str, request: Request):
            self._authorize(request)
            return [c for c in self.containers if c["id"] not in self.destroyed]

        @app.delete("/containers/{handle}")
        def destroy(handle: str):
            if handle in self.failing_handles:
                raise HTTPException(status_code=500, detail="garden exploded")
            self.destroyed.append(handle)
            return {}

        return app

    def start(self):
        config = uvicorn.Config(self.app, host="127.0.0.1", port=0, log_level="warning")
        self.server = uvicorn.Server(config)
        self.thread = threading.Thread(target=self.server.run, daemon=True)
        self.thread.start()

        deadline = time.monotonic() + 10
        while not self.server.started:
            if time.monotonic() > deadline:
                raise RuntimeError("fake ATC did not start")
            time.sleep(0.02)
        self.port = self.server.servers[0].sockets[0].getsockname()[1]

    def stop(self):
        self.server.should_exit = True
        self.thread.join(timeout=10)


@pytest.fixture
def fake_atc():
    atc = FakeATC()
    atc.start()
    try:
        yield atc
    finally:
        atc.stop()


@pytest.fixture
def closed_port():
    """A local port nothing is listening on."""
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def bosh_state(tmp_path, monkeypatch):
    path = tmp_path / "bosh-state.json"
    monkeypatch.setenv("FAKE_BOSH_STATE", str(path))
    return path


def read_state(path):
    with open(path) as f:
        return json.load(f)


@pytest.fixture
def fly_state(tmp_path, monkeypatch):
    path = tmp_path / "fly-state.json"
    monkeypatch.setenv("FAKE_FLY_STATE", str(path))

    def write(**state):
        state.setdefault("calls", [])
        with open(path, "w") as f:
            json.dump(state, f)
        return path

    write(workers=[])
    return write


@pytest.fixture
def config():
    return HarnessConfig(
        deploy_tool="bosh",
        bosh_command=[sys.executable, FAKE_BOSH],
        fly_command=[sys.executable, FAKE_FLY],
        warmup_seconds=0,
        login_timeout=5,
        poll_timeout=5,
        poll_interval=0.05,
        consistently_duration=0.2,
        session_stop_timeout=5,
        datastore_url="sqlite://",
        versions={"concourse_release_version": "7.11.0"},
    )


@pytest.fixture
def cleanup_dirs():
    dirs = []
    yield dirs
    for path in dirs:
        shutil.rmtree(path, ignore_errors=True)


def write_manifest(path, groups, fail=False):
    """Write a fake-bosh manifest. groups: (name, instances, [jobs], local)."""
    document = {
        "fail": fail,
        "instance_groups": [
            {
                "name": name,
                "instances": count,
                "local": local,
                "jobs": [{"name": job} for job in jobs],
            }
            for name, count, jobs, local in groups
        ],
    }
    with open(path, "w") as f:
        yaml.safe_dump(document, f)
    return str(path)
