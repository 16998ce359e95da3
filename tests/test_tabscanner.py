from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import httpx
import pytest
from receiptfix.receipt.tabscanner import build_tabscanner_correction_input, normalize_tabscanner_result
from receiptfix.runtime import (
    CorrectionSettings,
    TabscannerNotConfigured,
    TabscannerUnavailable,
    scan_receipt,
)

RAW_RESULT = {
    "establishment": "FreshCo",
    "date": "2025-03-14 18:22:00",
    "total": "25.68",
    "subTotal": 24.46,
    "tax": "1.22",
    "currency": "CAD",
    "address": "123 Main St, Toronto, ON M5V 2T6",
    "paymentMethod": "Visa",
    "lineItems": [
        {"desc": "5523795 TERRA DATES", "descClean": "TERRA DATES", "qty": 1, "price": 949, "lineTotal": 949},
        {"desc": "BANANAS", "descClean": "", "qty": "3", "price": "4.99", "lineTotal": "14.97"},
        "not a line item",
    ],
}


def test_normalize_tabscanner_result_coerces_loose_json() -> None:
    result = normalize_tabscanner_result(RAW_RESULT)

    assert result.establishment == "FreshCo"
    assert result.total == Decimal("25.68")
    assert result.sub_total == Decimal("24.46")
    assert result.payment_method == "Visa"
    assert len(result.line_items) == 2
    bananas = result.line_items[1]
    assert bananas.desc_clean == "BANANAS"
    assert bananas.qty == Decimal("3")
    assert bananas.line_total == Decimal("14.97")


def test_normalize_tabscanner_result_defaults_missing_numbers() -> None:
    result = normalize_tabscanner_result({"lineItems": [{"desc": "MILK", "qty": "", "lineTotal": None}]})

    [item] = result.line_items
    assert item.qty == Decimal(1)
    assert item.line_total == Decimal(0)
    assert result.total is None
    assert normalize_tabscanner_result({}).line_items == ()


def test_build_tabscanner_correction_input() -> None:
    correction_input = build_tabscanner_correction_input(normalize_tabscanner_result(RAW_RESULT))

    assert correction_input.source == "tabscanner"
    first, second = correction_input.lines
    assert (first.line_number, first.raw_text, first.parsed_name) == (1, "5523795 TERRA DATES", "TERRA DATES")
    assert first.line_cost == Decimal("949")
    assert second.line_number == 2
    assert second.unit_cost == Decimal("4.99")
    assert second.unit == "each"

    totals = correction_input.totals
    assert totals is not None
    assert totals.total == Decimal("25.68")
    assert totals.address_text == "123 Main St, Toronto, ON M5V 2T6"
    assert totals.province_hint is None
    assert totals.province_hint_source is None


def test_build_tabscanner_correction_input_with_province_hint() -> None:
    correction_input = build_tabscanner_correction_input(
        normalize_tabscanner_result(RAW_RESULT),
        province_hint="ON",
        province_hint_source="manual",
    )

    assert correction_input.totals is not None
    assert correction_input.totals.province_hint == "ON"
    assert correction_input.totals.province_hint_source == "manual"


def _image(tmp_path: Path) -> Path:
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"\xff\xd8fake-jpeg")
    return path


def _settings(**overrides) -> CorrectionSettings:
    values = {"tabscanner_api_key": "secret", "tabscanner_poll_attempts": 3}
    values.update(overrides)
    return CorrectionSettings(**values)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_scan_receipt_uploads_then_polls_until_done(tmp_path: Path) -> None:
    requests: list[httpx.Request] = []
    poll_statuses = iter(["pending", "done"])

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok-1"})
        status = next(poll_statuses)
        if status == "done":
            return httpx.Response(200, json={"status": "done", "result": RAW_RESULT})
        return httpx.Response(200, json={"status": status})

    sleeps: list[float] = []
    result = scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=sleeps.append)

    assert result.establishment == "FreshCo"
    assert len(result.line_items) == 2
    assert [request.method for request in requests] == ["POST", "GET", "GET"]
    assert str(requests[0].url) == "https://api.tabscanner.com/api/2/process"
    assert str(requests[1].url) == "https://api.tabscanner.com/api/result/tok-1"
    assert all(request.headers["apikey"] == "secret" for request in requests)
    assert sleeps == [3.0, 2.0]


def test_scan_receipt_requires_api_key(tmp_path: Path) -> None:
    with pytest.raises(TabscannerNotConfigured):
        scan_receipt(_image(tmp_path), CorrectionSettings(), sleep=lambda seconds: None)


def test_scan_receipt_upload_failure(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "bad key"})

    with pytest.raises(TabscannerUnavailable, match="upload failed"):
        scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=lambda seconds: None)


def test_scan_receipt_upload_without_token(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "queued"})

    with pytest.raises(TabscannerUnavailable, match="token"):
        scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=lambda seconds: None)


def test_scan_receipt_processing_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok-2"})
        return httpx.Response(200, json={"status": "failed", "status_code": 500})

    with pytest.raises(TabscannerUnavailable, match="failed to process"):
        scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=lambda seconds: None)


def test_scan_receipt_times_out_after_poll_attempts(tmp_path: Path) -> None:
    polls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok-3"})
        polls.append(str(request.url))
        return httpx.Response(200, json={"status": "pending"})

    sleeps: list[float] = []
    with pytest.raises(TabscannerUnavailable, match="timed out"):
        scan_receipt(
            _image(tmp_path),
            _settings(tabscanner_poll_attempts=2),
            client=_client(handler),
            sleep=sleeps.append,
        )

    assert len(polls) == 2
    assert sleeps == [3.0, 2.0]


def test_scan_receipt_wraps_connection_errors(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TabscannerUnavailable, match="request failed"):
        scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=lambda seconds: None)


def test_scan_receipt_wraps_unreadable_responses(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(TabscannerUnavailable, match="unreadable"):
        scan_receipt(_image(tmp_path), _settings(), client=_client(handler), sleep=lambda seconds: None)


def test_scan_receipt_uses_configured_api_url(tmp_path: Path) -> None:
    urls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(str(request.url))
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok-4"})
        return httpx.Response(200, content=json.dumps({"status": "done", "result": {}}).encode())

    scan_receipt(
        _image(tmp_path),
        _settings(tabscanner_api_url="https://eu.tabscanner.test/"),
        client=_client(handler),
        sleep=lambda seconds: None,
    )

    assert urls == [
        "https://eu.tabscanner.test/api/2/process",
        "https://eu.tabscanner.test/api/result/tok-4",
    ]


def test_scan_receipt_leaves_caller_client_headers_untouched(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["apikey"] == "secret"
        assert request.headers["x-trace"] == "abc"
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok-5"})
        return httpx.Response(200, json={"status": "done", "result": {}})

    client = httpx.Client(transport=httpx.MockTransport(handler), headers={"x-trace": "abc"})

    scan_receipt(_image(tmp_path), _settings(), client=client, sleep=lambda seconds: None)

    assert "apikey" not in client.headers
    assert client.headers["x-trace"] == "abc"
