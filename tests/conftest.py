"""
Shared test fixtures for the DeFi Watchdog test suite.

Provides sample Solidity contracts, canned model responses, a finding
factory, and an isolated ConfigManager that never reads the real home
directory or environment keys.
"""

import json

import pytest

from watchdog_core.config_manager import ConfigManager
from watchdog_core.models import Confidence, Finding, Severity


# ── Sample Solidity contract sources ────────────────────────────

SAMPLE_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract SimpleToken {
    mapping(address => uint256) public balances;
    uint256 public totalSupply;

    constructor(uint256 _initialSupply) {
        balances[msg.sender] = _initialSupply;
        totalSupply = _initialSupply;
    }

    function transfer(address to, uint256 amount) external {
        require(balances[msg.sender] >= amount, "insufficient balance");
        balances[msg.sender] -= amount;
        balances[to] += amount;
    }
}
"""

UNPROTECTED_MINT_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract FreeMintToken {
    mapping(address => uint256) public balances;
    uint256 public totalSupply;

    function mint(address to, uint256 amount) public {
        balances[to] += amount;
        totalSupply += amount;
    }

    function transfer(address to, uint256 amount) external returns (bool) {
        require(balances[msg.sender] >= amount, "insufficient balance");
        balances[msg.sender] -= amount;
        balances[to] += amount;
        return true;
    }
}
"""

OWNED_MINT_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract OwnedToken {
    address public owner;
    mapping(address => uint256) public balances;

    modifier onlyOwner() {
        require(msg.sender == owner, "not owner");
        _;
    }

    constructor() {
        owner = msg.sender;
    }

    function mint(address to, uint256 amount) public onlyOwner {
        balances[to] += amount;
    }

    function transferOwnership(address newOwner) external onlyOwner {
        owner = newOwner;
    }
}
"""

REENTRANT_VAULT_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract ReentrantVault {
    mapping(address => uint256) public balances;

    function deposit() external payable {
        balances[msg.sender] += msg.value;
    }

    function withdraw(uint256 amount) external {
        require(balances[msg.sender] >= amount, "insufficient balance");
        (bool success, ) = msg.sender.call{value: amount}("");
        require(success, "transfer failed");
        balances[msg.sender] -= amount;
    }
}
"""

GUARDED_VAULT_SOLIDITY = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

import "@openzeppelin/contracts/security/ReentrancyGuard.sol";

contract GuardedVault is ReentrancyGuard {
    mapping(address => uint256) public balances;

    function claim(uint256 amount) external nonReentrant {
        require(balances[msg.sender] >= amount, "insufficient balance");
        balances[msg.sender] -= amount;
        (bool success, ) = msg.sender.call{value: amount}("");
        require(success, "transfer failed");
    }
}
"""

DOCUMENTED_EMPTY_SOLIDITY = """\
/// @notice Placeholder contract with no behaviour
contract Placeholder {
}
"""


# ── Canned model responses ──────────────────────────────────────

def reentrancy_response(location: str = "withdraw") -> str:
    """JSON response in the format the audit prompt requests."""
    return json.dumps({
        "overview": "Vault contract",
        "keyFindings": [{
            "severity": "HIGH",
            "title": "Reentrancy Risk",
            "description": "External call before state update",
            "location": location,
            "impact": "Funds can be drained",
            "recommendation": "Use checks-effects-interactions",
        }],
        "gasOptimizations": [],
        "summary": "One reentrancy issue",
    })


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def clean_env(monkeypatch):
    """Remove API keys from the environment so tests never see real ones."""
    for var in ("OPENROUTER_API_KEY", "ETHERSCAN_API_KEY", "LINEASCAN_API_KEY", "SONICSCAN_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_manager(tmp_path, clean_env):
    """ConfigManager backed by a temporary config file."""
    return ConfigManager(config_file=str(tmp_path / "config.yaml"))


@pytest.fixture
def make_finding():
    """Factory for Finding objects with sensible defaults."""
    def _make(title="Reentrancy Risk", severity=Severity.HIGH, category="reentrancy",
              location="withdraw", description="External call before state update",
              confidence=Confidence.MEDIUM, reported_by=("model-a",), **kwargs):
        return Finding(
            severity=severity,
            category=category,
            title=title,
            description=description,
            location=location,
            confidence=confidence,
            reported_by=reported_by,
            **kwargs,
        )
    return _make
