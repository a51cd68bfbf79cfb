"""
Tests for plain-text and JSON report formatting.
"""

import json

import pytest

from conftest import REENTRANT_VAULT_SOLIDITY, reentrancy_response
from watchdog_core.audit_engine import analyze
from watchdog_core.model_passes import StaticResponsePass
from watchdog_core.report_formatter import ReportFormatter


@pytest.fixture
def vault_result():
    passes = [StaticResponsePass(m, reentrancy_response()) for m in ("model-a", "model-b")]
    return analyze(REENTRANT_VAULT_SOLIDITY, "ReentrantVault", passes)


class TestReportFormatter:

    def setup_method(self):
        self.formatter = ReportFormatter()

    def test_display(self, vault_result):
        text = self.formatter.format_for_display(vault_result)
        assert "Contract: ReentrantVault" in text
        assert f"Risk Level: {vault_result.risk_level.value}" in text
        assert "[1] HIGH: Reentrancy Risk @ withdraw" in text
        assert "reported_by=model-a, model-b" in text
        assert "Recommendations:" in text

    def test_display_without_findings(self):
        result = analyze("", "Empty")
        text = self.formatter.format_for_display(result)
        assert "Manual Review Required" in text

    def test_json_round_trip(self, vault_result):
        data = json.loads(self.formatter.format_for_json(vault_result))
        assert data["contract_name"] == "ReentrantVault"
        assert data["findings"][0]["consensus_count"] == 2
