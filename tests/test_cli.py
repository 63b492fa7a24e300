"""Order watcher CLI tests with a mocked order API."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from order_sync import cli
from order_sync.api_client import OrderApiClient


@pytest.fixture(autouse=True)
def _quiet_logger(monkeypatch: Any) -> None:
    monkeypatch.setattr(
        cli,
        "setup_logger",
        lambda *args, **kwargs: logging.getLogger("test.order_sync.cli"),
    )


def _set_required_env(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("ORDER_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv("ORDER_API_BEARER_TOKEN", "test-token")
    monkeypatch.setenv("ORDER_API_MAX_RETRIES", "0")
    monkeypatch.setenv("SYNC_ROLE", "admin")
    monkeypatch.setenv("SYNC_RESTAURANT_ID", "resto-1")


def _patch_transport(
    monkeypatch: Any,
    handler: Callable[[httpx.Request], httpx.Response],
) -> None:
    def factory(settings: Any, logger: logging.Logger) -> OrderApiClient:
        return OrderApiClient(
            settings=settings,
            logger=logger,
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(cli, "OrderApiClient", factory)


def _order_json(order_id: str, status: str) -> dict[str, Any]:
    return {
        "id": order_id,
        "orderNumber": f"CMD-{order_id}",
        "status": status,
        "total": 9.5,
        "restaurantId": "resto-1",
        "createdAt": "2026-03-02T11:00:00Z",
    }


def test_watch_renders_board_and_exits_cleanly(
    monkeypatch: Any,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _set_required_env(monkeypatch, tmp_path)
    _patch_transport(
        monkeypatch,
        lambda request: httpx.Response(200, json={"data": [_order_json("5", "pending")]}),
    )

    exit_code = cli.main(["--cycles", "1", "--interval", "0.01"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "CMD-5" in out
    assert "Nouvelle commande CMD-5" in out


def test_set_status_sends_patch_before_watching(
    monkeypatch: Any,
    tmp_path: Path,
) -> None:
    _set_required_env(monkeypatch, tmp_path)
    patches: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            patches.append(json.loads(request.content))
            return httpx.Response(200, json={"data": _order_json("5", "confirmed")})
        return httpx.Response(200, json=[_order_json("5", "pending")])

    _patch_transport(monkeypatch, handler)

    exit_code = cli.main(
        ["--cycles", "1", "--interval", "0.01", "--set-status", "5", "confirmed"]
    )

    assert exit_code == 0
    assert patches == [{"status": "confirmed"}]


def test_set_status_on_unknown_order_is_rejected(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)
    _patch_transport(monkeypatch, lambda request: httpx.Response(200, json=[]))

    assert cli.main(["--cycles", "1", "--set-status", "404", "confirmed"]) == 3


def test_rejected_status_change_exits_with_failure(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            return httpx.Response(409, json={"error": "Order already confirmed"})
        return httpx.Response(200, json=[_order_json("5", "pending")])

    _patch_transport(monkeypatch, handler)

    assert cli.main(["--cycles", "1", "--set-status", "5", "confirmed"]) == 5


def test_initial_fetch_failure_exits_with_failure(monkeypatch: Any, tmp_path: Path) -> None:
    _set_required_env(monkeypatch, tmp_path)
    _patch_transport(monkeypatch, lambda request: httpx.Response(500, json={"error": "down"}))

    assert cli.main(["--cycles", "1"]) == 5


def test_missing_configuration_exits_with_config_error(
    monkeypatch: Any,
    tmp_path: Path,
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ORDER_API_BASE_URL", raising=False)

    assert cli.main(["--cycles", "1"]) == 2


def test_unknown_status_argument_is_rejected_by_parser() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--set-status", "5", "teleported"])
