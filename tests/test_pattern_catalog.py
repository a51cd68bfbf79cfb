"""
Tests for the vulnerability pattern catalog.
"""

import pytest

from watchdog_core.models import GAS_CATEGORY, QUALITY_CATEGORY, Severity
from watchdog_core.pattern_catalog import (
    TEXT_INDICATORS,
    VULNERABILITY_PATTERNS,
    Polarity,
)


class TestCatalogShape:
    """Every catalog row is usable by the scanner"""

    def test_keys_are_unique_and_match_dict(self):
        for key, pattern in VULNERABILITY_PATTERNS.items():
            assert pattern.key == key

    def test_every_pattern_has_a_detector(self):
        for pattern in VULNERABILITY_PATTERNS.values():
            assert pattern.regex is not None or pattern.keywords, pattern.key

    def test_regexes_compile(self):
        for pattern in VULNERABILITY_PATTERNS.values():
            if pattern.regex is not None:
                assert pattern.compiled is not None

    def test_absence_rules_have_safeguards(self):
        for pattern in VULNERABILITY_PATTERNS.values():
            if pattern.polarity is Polarity.ABSENCE:
                assert pattern.safeguards, pattern.key

    def test_text_indicators_compile_case_insensitive(self):
        keys = [indicator.key for indicator in TEXT_INDICATORS]
        assert len(keys) == len(set(keys))
        reentrancy = next(i for i in TEXT_INDICATORS if i.key == "text-reentrancy")
        assert reentrancy.compiled.search("Possible RE-ENTRANCY in withdraw")


class TestCatalogContents:
    """Rule coverage and individual rule shapes"""

    def test_tx_origin_rule(self):
        assert VULNERABILITY_PATTERNS["tx-origin-auth"].severity == Severity.HIGH

    @pytest.mark.parametrize("category", ["reentrancy", "access-control", "arithmetic-overflow",
                                          GAS_CATEGORY, QUALITY_CATEGORY])
    def test_category_covered(self, category):
        assert any(p.category == category for p in VULNERABILITY_PATTERNS.values())

    def test_privileged_rule_requires_body(self):
        regex = VULNERABILITY_PATTERNS["unprotected-privileged-function"].compiled
        assert regex.search("function mint(address to, uint256 amount) external {")
        assert not regex.search("function mint(address to, uint256 amount) external;")
        assert not regex.search("function pause() external virtual;")

    def test_only_natspec_reads_comments(self):
        readers = [p.key for p in VULNERABILITY_PATTERNS.values() if p.safeguards_in_comments]
        assert readers == ["missing-natspec"]

    def test_gas_and_quality_rules_are_low_severity(self):
        for pattern in VULNERABILITY_PATTERNS.values():
            if pattern.category in (GAS_CATEGORY, QUALITY_CATEGORY):
                assert pattern.severity in (Severity.INFO, Severity.LOW)
