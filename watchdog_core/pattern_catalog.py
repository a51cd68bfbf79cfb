"""
Vulnerability Pattern Catalog

Static table of detection rules applied by the single-pass scanner, plus the
free-text indicator table used when a model response has no structure.
Adding a rule means adding a row here; the scanner needs no change.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from watchdog_core.models import GAS_CATEGORY, QUALITY_CATEGORY, Severity


class Polarity(Enum):
    """Whether a rule fires on a match, or on a match lacking a safeguard."""
    PRESENCE = "presence"
    ABSENCE = "absence"


class SafeguardScope(Enum):
    """Where the scanner looks for a rule's safeguards."""
    FUNCTION = "function"
    SOURCE = "source"


@dataclass(frozen=True)
class VulnerabilityPattern:
    """One catalog row.

    ``regex`` anchors a finding at every match.  ``keywords`` is an ordered
    list of substrings that must all appear, in order, within one function
    body (whitespace is ignored).  ``safeguards`` are substrings whose
    presence suppresses an ABSENCE rule; they are looked up in code with
    comments blanked unless ``safeguards_in_comments`` is set.
    """
    key: str
    title: str
    severity: Severity
    category: str
    description: str
    recommendation: str
    regex: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    safeguards: Tuple[str, ...] = ()
    polarity: Polarity = Polarity.PRESENCE
    safeguard_scope: SafeguardScope = SafeguardScope.FUNCTION
    flags: int = re.MULTILINE
    max_matches: Optional[int] = None
    safeguards_in_comments: bool = False

    @property
    def compiled(self) -> Optional[Pattern]:
        if self.regex is None:
            return None
        return re.compile(self.regex, self.flags)


@dataclass(frozen=True)
class TextIndicator:
    """Keyword indicator applied line-by-line to unstructured model text."""
    key: str
    regex: str
    title: str
    severity: Severity
    category: str
    description: str
    recommendation: str

    @property
    def compiled(self) -> Pattern:
        return re.compile(self.regex, re.IGNORECASE)


_ACCESS_GUARDS = (
    "onlyOwner", "onlyRole", "onlyAdmin", "onlyMinter", "onlyGovernance",
    "onlyAuthorized", "onlyOperator", "require(msg.sender", "require(_msgSender()",
    "msg.sender==owner", "_checkOwner", "_checkRole", "hasRole(", "initializer",
)

_PATTERNS: List[VulnerabilityPattern] = [
    # ── Reentrancy ──
    VulnerabilityPattern(
        key="reentrancy-call-with-value",
        title="External Call with Value",
        severity=Severity.HIGH,
        category="reentrancy",
        description="Ether is sent with a low-level call in a function without a reentrancy guard. "
                    "The callee can re-enter the contract before state updates complete.",
        recommendation="Follow the checks-effects-interactions pattern and add OpenZeppelin's "
                       "ReentrancyGuard (nonReentrant) to the function.",
        regex=r'\.call\s*\{\s*value\s*:',
        safeguards=("nonReentrant",),
        polarity=Polarity.ABSENCE,
    ),
    VulnerabilityPattern(
        key="reentrancy-state-after-call",
        title="State Update After External Call",
        severity=Severity.CRITICAL,
        category="reentrancy",
        description="A balance is decremented after an external call that forwards value. "
                    "An attacker contract can re-enter and withdraw repeatedly before the balance changes.",
        recommendation="Update balances before making the external call and guard the function with nonReentrant.",
        keywords=("call{value:", "]-="),
        safeguards=("nonReentrant",),
        polarity=Polarity.ABSENCE,
    ),

    # ── Access control ──
    VulnerabilityPattern(
        key="unprotected-privileged-function",
        title="Missing Access Control on Privileged Function",
        severity=Severity.HIGH,
        category="access-control",
        description="A public/external state-changing function with a privileged name "
                    "(mint, burn, withdraw, set*, pause, upgrade) has no access control modifier "
                    "or msg.sender check.",
        recommendation="Restrict the function with onlyOwner or role-based access control "
                       "(OpenZeppelin Ownable / AccessControl).",
        regex=(r'\bfunction\s+(?:mint|burn|withdraw|set|pause|unpause|upgrade|initialize|destroy|kill)\w*'
               r'\s*\([^)]*\)(?![^{;]*\b(?:view|pure|internal|private)\b)[^{;]*\b(?:public|external)\b[^{;]*\{'),
        safeguards=_ACCESS_GUARDS,
        polarity=Polarity.ABSENCE,
    ),
    VulnerabilityPattern(
        key="unprotected-selfdestruct",
        title="Unprotected Selfdestruct",
        severity=Severity.CRITICAL,
        category="access-control",
        description="selfdestruct is reachable from a function without access control; "
                    "anyone can permanently destroy the contract and redirect its ether.",
        recommendation="Remove selfdestruct or restrict it to a trusted owner; prefer a pausable design.",
        regex=r'\b(?:selfdestruct|suicide)\s*\(',
        safeguards=_ACCESS_GUARDS,
        polarity=Polarity.ABSENCE,
    ),
    VulnerabilityPattern(
        key="tx-origin-auth",
        title="tx.origin Authentication",
        severity=Severity.HIGH,
        category="tx-origin-auth",
        description="Authorization compares against tx.origin, which lets a malicious intermediate "
                    "contract act on behalf of a phished user.",
        recommendation="Use msg.sender for authorization checks.",
        regex=r'tx\.origin\s*==|==\s*tx\.origin',
    ),

    # ── External calls ──
    VulnerabilityPattern(
        key="unchecked-send",
        title="Unchecked Send Return Value",
        severity=Severity.MEDIUM,
        category="unchecked-external-call",
        description="The boolean returned by send() is discarded, so a failed transfer goes unnoticed.",
        recommendation="Check the return value or use call{value: ...} with an explicit success check.",
        regex=r'^[ \t]*[\w.\[\]()]+\.send\s*\(',
    ),
    VulnerabilityPattern(
        key="unchecked-low-level-call",
        title="Unchecked Low-Level Call",
        severity=Severity.MEDIUM,
        category="unchecked-external-call",
        description="A low-level call is made as a bare statement and its success flag is ignored.",
        recommendation="Capture (bool success, ) and require(success) after the call.",
        regex=r'^[ \t]*[\w.\[\]()]+\.call\s*(?:\{[^}]*\})?\s*\(',
    ),
    VulnerabilityPattern(
        key="unprotected-delegatecall",
        title="Delegatecall to Untrusted Target",
        severity=Severity.HIGH,
        category="unsafe-delegatecall",
        description="delegatecall runs foreign code in this contract's storage context from a function "
                    "without access control.",
        recommendation="Only delegatecall to fixed, trusted implementations and restrict who can trigger it.",
        regex=r'\.delegatecall\s*\(',
        safeguards=_ACCESS_GUARDS,
        polarity=Polarity.ABSENCE,
    ),

    # ── Arithmetic ──
    VulnerabilityPattern(
        key="legacy-compiler-overflow",
        title="Integer Overflow/Underflow Risk",
        severity=Severity.HIGH,
        category="arithmetic-overflow",
        description="The contract targets Solidity < 0.8 without SafeMath, so arithmetic wraps silently.",
        recommendation="Upgrade to pragma solidity ^0.8.0 or use SafeMath for all arithmetic.",
        regex=r'pragma\s+solidity\s*[\^~>=<\s]*0\.[4-7]\.\d+',
        safeguards=("SafeMath",),
        polarity=Polarity.ABSENCE,
        safeguard_scope=SafeguardScope.SOURCE,
    ),
    VulnerabilityPattern(
        key="unchecked-arithmetic-block",
        title="Unchecked Arithmetic Block",
        severity=Severity.LOW,
        category="arithmetic-overflow",
        description="Overflow checks are disabled inside an unchecked block.",
        recommendation="Confirm the operands are bounded or remove the unchecked block.",
        regex=r'\bunchecked\s*\{',
        max_matches=3,
    ),

    # ── Timestamp ──
    VulnerabilityPattern(
        key="timestamp-dependence",
        title="Block Timestamp Dependency",
        severity=Severity.LOW,
        category="timestamp-dependence",
        description="block.timestamp can be nudged by block producers within a small window.",
        recommendation="Avoid block.timestamp for randomness or tight deadlines.",
        regex=r'\bblock\.timestamp\b',
        max_matches=3,
    ),

    # ── Gas optimization ──
    VulnerabilityPattern(
        key="loop-array-length",
        title="Array Length Read in Loop Condition",
        severity=Severity.INFO,
        category=GAS_CATEGORY,
        description="The array length is re-read from storage on every iteration.",
        recommendation="Cache the array length in a local variable before the loop.",
        regex=r'\bfor\s*\([^;]*;[^;]*\.length\s*;',
    ),
    VulnerabilityPattern(
        key="loop-post-increment",
        title="Post-Increment in Loop",
        severity=Severity.INFO,
        category=GAS_CATEGORY,
        description="i++ costs slightly more gas than ++i.",
        recommendation="Use ++i (inside an unchecked block when the bound is known).",
        regex=r'\bfor\s*\([^;]*;[^;]*;\s*\w+\s*\+\+\s*\)',
    ),
    VulnerabilityPattern(
        key="long-revert-string",
        title="Long Revert String",
        severity=Severity.INFO,
        category=GAS_CATEGORY,
        description="Revert strings longer than 32 bytes increase deployment and runtime gas.",
        recommendation="Shorten the message or use custom errors.",
        regex=r'\brequire\s*\([^;]*,\s*"[^"\n]{33,}"\s*\)',
        max_matches=5,
    ),

    # ── Code quality ──
    VulnerabilityPattern(
        key="missing-natspec",
        title="Missing NatSpec Documentation",
        severity=Severity.INFO,
        category=QUALITY_CATEGORY,
        description="The contract has no NatSpec comments documenting its behaviour.",
        recommendation="Document public functions with /// @notice and @param tags.",
        regex=r'^\s*contract\s+\w+',
        safeguards=("///", "/**"),
        polarity=Polarity.ABSENCE,
        safeguard_scope=SafeguardScope.SOURCE,
        max_matches=1,
        safeguards_in_comments=True,
    ),
    VulnerabilityPattern(
        key="floating-pragma",
        title="Floating Pragma",
        severity=Severity.INFO,
        category=QUALITY_CATEGORY,
        description="The compiler version is not pinned.",
        recommendation="Pin the pragma to the exact compiler version used for testing.",
        regex=r'pragma\s+solidity\s*\^',
        max_matches=1,
    ),
    VulnerabilityPattern(
        key="require-without-message",
        title="Require Without Error Message",
        severity=Severity.LOW,
        category=QUALITY_CATEGORY,
        description="require() reverts without a reason string.",
        recommendation="Add an error message or a custom error.",
        regex=r'\brequire\s*\([^;,"]*\)\s*;',
        max_matches=5,
    ),
    VulnerabilityPattern(
        key="magic-number",
        title="Magic Number",
        severity=Severity.INFO,
        category=QUALITY_CATEGORY,
        description="A numeric literal is used inline instead of a named constant.",
        recommendation="Replace the literal with a named constant.",
        regex=r'(?<![\w.])\d{4,}(?![\w.])',
        max_matches=3,
    ),
    VulnerabilityPattern(
        key="function-naming",
        title="Function Name Not mixedCase",
        severity=Severity.INFO,
        category=QUALITY_CATEGORY,
        description="Function names should follow the mixedCase convention.",
        recommendation="Rename the function using mixedCase.",
        regex=r'\bfunction\s+[A-Z]\w*\s*\(',
    ),
]

VULNERABILITY_PATTERNS: Dict[str, VulnerabilityPattern] = {p.key: p for p in _PATTERNS}


TEXT_INDICATORS: List[TextIndicator] = [
    TextIndicator(
        key="text-reentrancy",
        regex=r're-?entran',
        title="Reentrancy Issue Detected",
        severity=Severity.CRITICAL,
        category="reentrancy",
        description="Model output mentions a potential reentrancy vulnerability.",
        recommendation="Apply checks-effects-interactions and a reentrancy guard.",
    ),
    TextIndicator(
        key="text-unprotected-function",
        regex=r'unprotected|(?:missing|lacks?|without)\s+(?:proper\s+)?access\s+control|anyone\s+can\s+call',
        title="Unprotected Function",
        severity=Severity.HIGH,
        category="access-control",
        description="Model output mentions a function callable without authorization.",
        recommendation="Add an access control modifier to the affected function.",
    ),
    TextIndicator(
        key="text-access-control",
        regex=r'access[\s-]control',
        title="Access Control Issue Detected",
        severity=Severity.HIGH,
        category="access-control",
        description="Model output mentions an access control concern.",
        recommendation="Review ownership and role checks on state-changing functions.",
    ),
    TextIndicator(
        key="text-overflow",
        regex=r'overflow|underflow',
        title="Overflow Issue Detected",
        severity=Severity.HIGH,
        category="arithmetic-overflow",
        description="Model output mentions an integer overflow or underflow.",
        recommendation="Use Solidity ^0.8 checked arithmetic or SafeMath.",
    ),
    TextIndicator(
        key="text-tx-origin",
        regex=r'tx\.origin',
        title="tx.origin Usage Detected",
        severity=Severity.HIGH,
        category="tx-origin-auth",
        description="Model output mentions tx.origin based authorization.",
        recommendation="Use msg.sender for authorization.",
    ),
    TextIndicator(
        key="text-selfdestruct",
        regex=r'selfdestruct',
        title="Selfdestruct Concern Detected",
        severity=Severity.HIGH,
        category="access-control",
        description="Model output mentions selfdestruct.",
        recommendation="Remove selfdestruct or restrict it to a trusted owner.",
    ),
    TextIndicator(
        key="text-delegatecall",
        regex=r'delegatecall',
        title="Delegatecall Concern Detected",
        severity=Severity.HIGH,
        category="unsafe-delegatecall",
        description="Model output mentions delegatecall to a possibly untrusted target.",
        recommendation="Only delegatecall to fixed, trusted implementations.",
    ),
]

