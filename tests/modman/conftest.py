# tests/modman/conftest.py
from __future__ import annotations
import io
import json
import zipfile
from pathlib import Path
from typing import Any

import httpx
import pytest

from modman.http import client as http_client


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def manifest_payload(unique_name: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "uniqueName": unique_name,
        "name": unique_name.split(".")[-1],
        "author": "Tester",
        "version": "1.0.0",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def owml_dir(tmp_path) -> Path:
    root = tmp_path / "OWML"
    (root / "Mods").mkdir(parents=True)
    return root


@pytest.fixture()
def write_mod(owml_dir):
    """write_mod("A.B", dependencies=[...], enabled=True, default_config={...}) -> mod directory"""
    def _write(
        unique_name: str,
        *,
        dependencies: list[str] | None = None,
        conflicts: list[str] | None = None,
        enabled: bool | None = None,
        config: dict[str, Any] | None = None,
        default_config: dict[str, Any] | None = None,
        folder: str | None = None,
        **manifest: Any,
    ) -> Path:
        mod_dir = owml_dir / "Mods" / (folder or unique_name)
        _write_json(
            mod_dir / "manifest.json",
            manifest_payload(
                unique_name,
                dependencies=dependencies or [],
                conflicts=conflicts or [],
                **manifest,
            ),
        )
        if config is not None:
            _write_json(mod_dir / "config.json", config)
        elif enabled is not None:
            _write_json(mod_dir / "config.json", {"enabled": enabled})
        if default_config is not None:
            _write_json(mod_dir / "default-config.json", default_config)
        return mod_dir
    return _write


@pytest.fixture()
def write_owml(owml_dir):
    def _write(version: str = "2.9.0") -> Path:
        _write_json(owml_dir / "OWML.Manifest.json", manifest_payload("Alek.OWML", name="OWML", version=version))
        return owml_dir
    return _write


@pytest.fixture()
def make_zip():
    """make_zip({"Folder/manifest.json": {...}, "Folder/a.dll": b"..."}) -> zip bytes"""
    def _make(files: dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for name, content in files.items():
                if isinstance(content, (dict, list)):
                    content = json.dumps(content)
                if isinstance(content, str):
                    content = content.encode("utf-8")
                zf.writestr(name, content)
        return buffer.getvalue()
    return _make


@pytest.fixture()
def mock_http(monkeypatch):
    """Routes every outbound httpx.AsyncClient through a MockTransport built from `handler`."""
    def _install(handler) -> httpx.MockTransport:
        transport = httpx.MockTransport(handler)
        original_async_client = http_client.httpx.AsyncClient

        class _PatchedAsyncClient:
            """Wrap httpx.AsyncClient so the transport can be injected."""

            def __init__(self, *args, **kwargs):
                kwargs = dict(kwargs)
                kwargs["transport"] = transport
                kwargs["http2"] = False
                self._client = original_async_client(*args, **kwargs)

            async def __aenter__(self):
                client = await self._client.__aenter__()
                return client

            async def __aexit__(self, exc_type, exc, tb):
                return await self._client.__aexit__(exc_type, exc, tb)

        monkeypatch.setattr(http_client.httpx, "AsyncClient", _PatchedAsyncClient)
        return transport
    return _install


@pytest.fixture()
def flag_encrypted():
    """Sets the encrypted bit on every central directory entry of zip bytes."""
    def _flag(data: bytes) -> bytes:
        patched = bytearray(data)
        offset = patched.find(b"PK\x01\x02")
        while offset != -1:
            patched[offset + 8] |= 0x01
            offset = patched.find(b"PK\x01\x02", offset + 4)
        return bytes(patched)
    return _flag
