from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Make `backend/` importable regardless of pytest import mode.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dealflow.core.config import settings
from dealflow.core.db.base import Base
from dealflow.core.db.immutability import register_immutability_listeners
from dealflow.core.db.session import get_db
from dealflow.main import create_app
from dealflow.services.blob_storage import LocalBlobStore, get_blob_store
from dealflow.shared.enums import Env

# Ensure model modules are imported so Base.metadata is complete.
from dealflow.core.db import models as _core_models  # noqa: F401
from dealflow.domain.deals.models import deals as _deal_models  # noqa: F401
from dealflow.domain.deals.models import documents as _document_models  # noqa: F401

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

ACTORS: dict[str, tuple[str, str]] = {
    "intake": ("user-1", "USER"),
    "intake_other": ("user-2", "USER"),
    "estimator": ("est-1", "ESTIMATOR"),
    "estimator_other": ("est-2", "ESTIMATOR"),
    "admin": ("admin-1", "ADMIN"),
    "owner": ("owner-1", "OWNER"),
    "dispatch": ("disp-1", "DISPATCH"),
}


def dev_actor_header(actor_id: str, role: str | None, tenant_id: str = TENANT) -> dict[str, str]:
    return {"X-DEV-ACTOR": json.dumps({"actor_id": actor_id, "role": role, "tenant_id": tenant_id})}


@pytest.fixture()
def db_engine(tmp_path: Path):
    # File-backed so separate sessions get separate connections (concurrent approval tests).
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'dealflow.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    register_immutability_listeners()
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def blob_root(tmp_path: Path) -> Path:
    return tmp_path / "blobs"


@pytest.fixture()
def blob_store(blob_root: Path) -> LocalBlobStore:
    return LocalBlobStore(blob_root, "proposals")


@pytest.fixture()
def stored_blobs(blob_root: Path) -> Callable[[], list[Path]]:
    def _list() -> list[Path]:
        if not blob_root.exists():
            return []
        return sorted(p for p in blob_root.rglob("*") if p.is_file())

    return _list


@pytest.fixture()
def app(session_factory, blob_store):
    settings.env = Env.dev
    app = create_app()

    def _override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    return app


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def as_actor() -> Callable[..., dict[str, str]]:
    """Headers for a named test actor, e.g. ``as_actor("estimator")``."""

    def _headers(name: str, tenant_id: str = TENANT) -> dict[str, str]:
        actor_id, role = ACTORS[name]
        return dev_actor_header(actor_id, role, tenant_id)

    return _headers


@pytest.fixture()
def workflow(client: TestClient, as_actor):
    """Drives a deal through the HTTP surface; each step asserts success."""

    class _Workflow:
        def create(self, name: str = "Warehouse retrofit", actor: str = "intake") -> str:
            resp = client.post("/deals", json={"name": name}, headers=as_actor(actor))
            assert resp.status_code == 201, resp.text
            return resp.json()["id"]

        def send_to_estimating(self, deal_id: str, assigned_to: str | None = "est-1", actor: str = "intake") -> str:
            body = {"assignedToId": assigned_to} if assigned_to else {}
            resp = client.post(f"/deals/{deal_id}/send-to-estimating", json=body, headers=as_actor(actor))
            assert resp.status_code == 200, resp.text
            ws = client.get(f"/deals/{deal_id}/estimating", headers=as_actor("estimator"))
            assert ws.status_code == 200, ws.text
            return ws.json()["version"]["id"]

        def add_item(self, deal_id: str, version_id: str, actor: str = "estimator", **fields) -> dict:
            body = {"description": "Crew hours", "quantity": "1", "unit": "hr", "unitCost": "100", "category": "LABOR"}
            body.update(fields)
            resp = client.post(
                f"/deals/{deal_id}/versions/{version_id}/line-items",
                json=body,
                headers=as_actor(actor),
            )
            assert resp.status_code == 201, resp.text
            return resp.json()

        def add_scenario_items(self, deal_id: str, version_id: str) -> None:
            self.add_item(deal_id, version_id, description="Labor", quantity="10", unitCost="50", category="LABOR")
            self.add_item(deal_id, version_id, description="Lift rental", quantity="2", unitCost="200", category="EQUIPMENT")
            self.add_item(deal_id, version_id, description="Fasteners", quantity="1", unitCost="75", category="MATERIALS")

        def submit(self, deal_id: str, actor: str = "estimator") -> None:
            resp = client.post(f"/deals/{deal_id}/submit", json={}, headers=as_actor(actor))
            assert resp.status_code == 200, resp.text

        def approve(self, deal_id: str, actor: str = "admin") -> dict:
            resp = client.post(f"/deals/{deal_id}/approve", json={"notes": "ok"}, headers=as_actor(actor))
            assert resp.status_code == 200, resp.text
            return resp.json()

        def estimating(self) -> tuple[str, str]:
            deal_id = self.create()
            return deal_id, self.send_to_estimating(deal_id)

        def submitted(self) -> tuple[str, str]:
            deal_id, version_id = self.estimating()
            self.add_scenario_items(deal_id, version_id)
            self.submit(deal_id)
            return deal_id, version_id

        def dispatched(self) -> tuple[str, str, dict]:
            deal_id, version_id = self.submitted()
            return deal_id, version_id, self.approve(deal_id)

    return _Workflow()
