"""
Integration Tests – API Endpoints
====================================
End-to-end tests exercising the FastAPI routes via TestClient.

The price collector's transport always fails, so every request runs on
the deterministic synthetic series and reports ``synthetic_data``.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tradelab.api.dependencies import _api_keys

MA_BACKTEST = {
    "symbol": "aapl",
    "strategy_type": "MOVING_AVERAGE",
    "strategy_params": {"short_period": 5, "long_period": 20},
    "start_date": "2023-01-01",
    "end_date": "2023-12-31",
    "initial_capital": 10000000,
}

MA_OPTIMIZE = {
    "symbol": "AAPL",
    "strategy_type": "MOVING_AVERAGE",
    "start_date": "2023-01-01",
    "end_date": "2023-12-31",
    "parameter_ranges": {
        "short_period": {"min": 5, "max": 10, "step": 5},
        "long_period": {"min": 20, "max": 40, "step": 20},
    },
    "target": "SHARPE_RATIO",
}


# ══════════════════════════════════════════════════════════════════
# Health Endpoint
# ══════════════════════════════════════════════════════════════════

class TestHealthEndpoint:

    def test_health_200(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "uptime_seconds" in data
        names = [c["name"] for c in data["components"]]
        assert names == ["result_store", "price_data"]

    def test_process_time_header(self, client):
        resp = client.get("/api/v1/health")
        assert "X-Process-Time-Ms" in resp.headers

    def test_degraded_before_startup(self, app):
        from tradelab.api.app import create_app

        # no context manager, so the lifespan never runs
        cold = TestClient(create_app(service=app.state.backtest_service))
        data = cold.get("/api/v1/health").json()
        assert data["status"] == "degraded"
        assert data["components"][0] == {
            "name": "startup", "status": "degraded", "detail": "Startup has not completed",
        }


# ══════════════════════════════════════════════════════════════════
# Strategies Endpoint
# ══════════════════════════════════════════════════════════════════

class TestStrategiesEndpoint:

    def test_lists_all_strategies(self, client):
        resp = client.get("/api/v1/backtest/strategies")
        assert resp.status_code == 200
        types = [s["type"] for s in resp.json()]
        assert types == ["MOVING_AVERAGE", "RSI", "BOLLINGER_BAND", "MOMENTUM", "MACD"]

    def test_includes_default_parameters(self, client):
        rsi = next(s for s in client.get("/api/v1/backtest/strategies").json() if s["type"] == "RSI")
        assert rsi["parameters"] == {"period": 14, "overbought_level": 70, "oversold_level": 30}


# ══════════════════════════════════════════════════════════════════
# Backtest Endpoint
# ══════════════════════════════════════════════════════════════════

class TestBacktestEndpoint:

    def test_run_backtest(self, client):
        resp = client.post("/api/v1/backtest", json=MA_BACKTEST)
        assert resp.status_code == 200
        data = resp.json()
        assert data["synthetic_data"] is True
        result = data["result"]
        assert result["symbol"] == "AAPL"
        assert result["strategy_type"] == "MOVING_AVERAGE"
        assert result["strategy_name"] == "MA Cross (5/20 SMA)"
        assert result["initial_capital"] == 10000000
        assert isinstance(result["id"], int)
        assert len(result["trades"]) == result["total_trades"]
        assert data["chart"]["equity_curve"][0] == 10000000

    def test_same_request_same_numbers(self, client):
        first = client.post("/api/v1/backtest", json=MA_BACKTEST).json()["result"]
        second = client.post("/api/v1/backtest", json=MA_BACKTEST).json()["result"]
        assert second["id"] == first["id"] + 1
        assert first["final_capital"] == second["final_capital"]
        assert first["trades"] == second["trades"]

    def test_stop_loss_and_defaults(self, client):
        body = dict(MA_BACKTEST, stop_loss_percent=3, take_profit_percent=10)
        del body["initial_capital"]
        resp = client.post("/api/v1/backtest", json=body)
        assert resp.status_code == 200
        assert resp.json()["result"]["initial_capital"] == 10000000

    def test_unknown_strategy_400(self, client):
        resp = client.post("/api/v1/backtest", json=dict(MA_BACKTEST, strategy_type="TURTLE"))
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Invalid strategy configuration"
        assert data["code"] == 400
        assert "TURTLE" in data["detail"]

    def test_bad_parameter_400(self, client):
        body = dict(MA_BACKTEST, strategy_params={"short_period": 0})
        assert client.post("/api/v1/backtest", json=body).status_code == 400

    def test_inverted_dates_422(self, client):
        body = dict(MA_BACKTEST, start_date="2024-01-01", end_date="2023-01-01")
        resp = client.post("/api/v1/backtest", json=body)
        assert resp.status_code == 422
        assert resp.json()["error"] == "Validation error"

    @pytest.mark.parametrize("field,value", [
        ("initial_capital", -5),
        ("position_size_percent", 150),
        ("symbol", ""),
    ])
    def test_invalid_fields_422(self, client, field, value):
        resp = client.post("/api/v1/backtest", json=dict(MA_BACKTEST, **{field: value}))
        assert resp.status_code == 422

    def test_missing_body_field_422(self, client):
        body = {k: v for k, v in MA_BACKTEST.items() if k != "symbol"}
        assert client.post("/api/v1/backtest", json=body).status_code == 422


# ══════════════════════════════════════════════════════════════════
# Stored results
# ══════════════════════════════════════════════════════════════════

class TestStoredResults:

    def test_get_result(self, client):
        created = client.post("/api/v1/backtest", json=MA_BACKTEST).json()["result"]
        resp = client.get(f"/api/v1/backtest/result/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["result"]["id"] == created["id"]
        assert resp.json()["result"]["final_capital"] == created["final_capital"]

    def test_unknown_result_404(self, client):
        resp = client.get("/api/v1/backtest/result/999999")
        assert resp.status_code == 404
        assert resp.json()["code"] == 404

    def test_history_newest_first(self, client):
        client.post("/api/v1/backtest", json=MA_BACKTEST)
        client.post("/api/v1/backtest", json=dict(MA_BACKTEST, strategy_type="RSI", strategy_params={}))
        resp = client.get("/api/v1/backtest/history", params={"limit": 2})
        assert resp.status_code == 200
        history = resp.json()
        assert len(history) == 2
        assert history[0]["id"] > history[1]["id"]
        assert history[0]["strategy_type"] == "RSI"
        assert "trades" not in history[0]

    def test_history_limit_bounds(self, client):
        assert client.get("/api/v1/backtest/history", params={"limit": 0}).status_code == 422


# ══════════════════════════════════════════════════════════════════
# Optimize Endpoint
# ══════════════════════════════════════════════════════════════════

class TestOptimizeEndpoint:

    def test_optimize(self, client):
        resp = client.post("/api/v1/backtest/optimize", json=MA_OPTIMIZE)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_combinations"] == 4
        assert len(data["all_results"]) == 4
        assert data["target_type"] == "SHARPE_RATIO"
        assert set(data["best_parameters"]) == {"short_period", "long_period"}
        assert data["best_result"]["strategy_config"]["short_period"] == data["best_parameters"]["short_period"]
        assert data["synthetic_data"] is True

    def test_best_result_is_stored(self, client):
        data = client.post("/api/v1/backtest/optimize", json=MA_OPTIMIZE).json()
        stored = client.get(f"/api/v1/backtest/result/{data['best_result']['id']}")
        assert stored.status_code == 200

    def test_inverted_range_400(self, client):
        body = dict(MA_OPTIMIZE, parameter_ranges={"short_period": {"min": 10, "max": 5, "step": 1}})
        resp = client.post("/api/v1/backtest/optimize", json=body)
        assert resp.status_code == 400
        assert "short_period" in resp.json()["error"]

    def test_too_many_combinations_400(self, client):
        body = dict(MA_OPTIMIZE, parameter_ranges={
            "short_period": {"min": 1, "max": 20, "step": 1},
            "long_period": {"min": 21, "max": 40, "step": 1},
        })
        assert client.post("/api/v1/backtest/optimize", json=body).status_code == 400

    def test_all_combinations_fail_422(self, client):
        body = dict(MA_OPTIMIZE, parameter_ranges={"short_period": {"min": -2, "max": 0, "step": 1}})
        resp = client.post("/api/v1/backtest/optimize", json=body)
        assert resp.status_code == 422
        assert resp.json()["error"] == "Optimization failed: no valid results"

    def test_invalid_target_422(self, client):
        body = dict(MA_OPTIMIZE, target="MAX_PROFIT")
        assert client.post("/api/v1/backtest/optimize", json=body).status_code == 422


# ══════════════════════════════════════════════════════════════════
# Compare Endpoints
# ══════════════════════════════════════════════════════════════════

class TestCompareEndpoint:

    def _run(self, client, **overrides):
        return client.post("/api/v1/backtest", json=dict(MA_BACKTEST, **overrides)).json()["result"]

    def test_compare_by_ids(self, client):
        first = self._run(client)
        second = self._run(client, strategy_type="RSI", strategy_params={})
        resp = client.post("/api/v1/backtest/compare", json={"result_ids": [first["id"], second["id"]]})
        assert resp.status_code == 200
        data = resp.json()
        assert [b["id"] for b in data["backtests"]] == [first["id"], second["id"]]
        assert len(data["rankings"]["overall_score"]) == 2
        assert data["summary"]["total_backtests"] == 2
        assert set(data["chart"]["equity_curves"]) == {str(first["id"]), str(second["id"])}

    def test_single_id_400(self, client):
        first = self._run(client)
        resp = client.post("/api/v1/backtest/compare", json={"result_ids": [first["id"]]})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Backtest comparison failed"

    def test_top_performers(self, client):
        self._run(client)
        self._run(client, strategy_type="RSI", strategy_params={})
        resp = client.get("/api/v1/backtest/compare/top", params={"metric": "sharpe", "limit": 2})
        assert resp.status_code == 200
        sharpes = [b["sharpe_ratio"] for b in resp.json()["backtests"]]
        assert sharpes == sorted(sharpes, reverse=True)

    def test_strategy_variants(self, client):
        self._run(client)
        self._run(client, strategy_params={"short_period": 10, "long_period": 30})
        resp = client.get("/api/v1/backtest/compare/variants", params={"strategy_name": "ma cross"})
        assert resp.status_code == 200
        assert all("MA Cross" in b["strategy_name"] for b in resp.json()["backtests"])

    def test_unknown_variant_400(self, client):
        resp = client.get("/api/v1/backtest/compare/variants", params={"strategy_name": "turtle"})
        assert resp.status_code == 400

    def test_limit_bounds(self, client):
        resp = client.get("/api/v1/backtest/compare/top", params={"limit": 1})
        assert resp.status_code == 422


# ══════════════════════════════════════════════════════════════════
# API key guard
# ══════════════════════════════════════════════════════════════════

class TestApiKey:

    @pytest.fixture()
    def keyed(self, monkeypatch):
        monkeypatch.setenv("TRADELAB_API_KEYS", "k1, k2")
        _api_keys.cache_clear()
        yield
        monkeypatch.delenv("TRADELAB_API_KEYS")
        _api_keys.cache_clear()

    def test_missing_key_401(self, client, keyed):
        assert client.get("/api/v1/backtest/strategies").status_code == 401

    def test_valid_key(self, client, keyed):
        resp = client.get("/api/v1/backtest/strategies", headers={"X-API-Key": "k2"})
        assert resp.status_code == 200

    def test_health_is_open(self, client, keyed):
        assert client.get("/api/v1/health").status_code == 200
