#!/usr/bin/env python3
"""
Explorer Contract Source Fetcher

Fetches verified contract source code from Etherscan-compatible explorer APIs
(Ethereum, Linea, Sonic).  Failures are returned as ``{'error': message}``
dictionaries rather than raised.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests
from rich.console import Console

from watchdog_core.config_manager import ConfigManager

logger = logging.getLogger(__name__)

_RE_ADDRESS = re.compile(r'^0x[0-9a-fA-F]{40}$')


class ExplorerFetcher:
    """Contract source fetcher for the supported explorer networks."""

    SUPPORTED_NETWORKS = {
        'mainnet': {
            'name': 'Ethereum Mainnet',
            'chain_id': 1,
            'api_url': 'https://api.etherscan.io/v2/api',
            'explorer_url': 'https://etherscan.io',
            'key_name': 'etherscan_api_key',
        },
        'sepolia': {
            'name': 'Ethereum Sepolia',
            'chain_id': 11155111,
            'api_url': 'https://api.etherscan.io/v2/api',
            'explorer_url': 'https://sepolia.etherscan.io',
            'key_name': 'etherscan_api_key',
        },
        'linea': {
            'name': 'Linea Mainnet',
            'chain_id': 59144,
            'api_url': 'https://api.lineascan.build/api',
            'explorer_url': 'https://lineascan.build',
            'key_name': 'lineascan_api_key',
        },
        'linea-testnet': {
            'name': 'Linea Sepolia',
            'chain_id': 59141,
            'api_url': 'https://api-sepolia.lineascan.build/api',
            'explorer_url': 'https://sepolia.lineascan.build',
            'key_name': 'lineascan_api_key',
        },
        'sonic': {
            'name': 'Sonic',
            'chain_id': 146,
            'api_url': 'https://api.sonicscan.org/api',
            'explorer_url': 'https://sonicscan.org',
            'key_name': 'sonicscan_api_key',
        },
    }

    def __init__(self, config_manager: Optional[ConfigManager] = None, timeout: int = 30):
        self.console = Console()
        self.config_manager = config_manager or ConfigManager()
        self.timeout = timeout

    @staticmethod
    def is_valid_address(address: str) -> bool:
        return bool(address) and bool(_RE_ADDRESS.match(address))

    @classmethod
    def get_supported_networks(cls) -> List[str]:
        return list(cls.SUPPORTED_NETWORKS.keys())

    def get_contract_explorer_url(self, address: str, network: str = 'mainnet') -> str:
        info = self.SUPPORTED_NETWORKS.get(network, self.SUPPORTED_NETWORKS['mainnet'])
        return f"{info['explorer_url']}/address/{address}#code"

    def fetch_contract_source(self, address: str, network: Optional[str] = None) -> Dict[str, Any]:
        """Fetch contract source code from the given network.

        Args:
            address: Contract address to fetch
            network: Network name (defaults to the configured default network)

        Returns:
            Dict with source_code, contract_name, compiler, ... or {'error': message}
        """
        if not self.is_valid_address(address):
            return {'error': f'Invalid contract address format: {address}'}

        target_network = (network or self.config_manager.config.default_network or 'mainnet').lower()
        if target_network not in self.SUPPORTED_NETWORKS:
            return {'error': f'Unsupported network: {target_network}'}

        api_key = self.config_manager.get_explorer_key(target_network)
        if not api_key:
            key_name = self.SUPPORTED_NETWORKS[target_network]['key_name']
            return {'error': f'Explorer API key not configured ({key_name}). '
                             f'Use "defi-watchdog config --set {key_name} <key>".'}

        info = self.SUPPORTED_NETWORKS[target_network]
        self.console.print(f"[cyan]🔍 Fetching contract source code for {address} on {info['name']}...[/cyan]")

        params = {
            'chainid': info['chain_id'],
            'module': 'contract',
            'action': 'getsourcecode',
            'address': address,
            'apikey': api_key,
        }

        try:
            response = requests.get(info['api_url'], params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Explorer request failed for {address}: {e}")
            return {'error': f'Request failed: {e}'}
        except ValueError as e:
            return {'error': f'Invalid JSON response from explorer: {e}'}

        if str(data.get('status')) != '1':
            error_msg = str(data.get('result') or data.get('message') or 'Unknown error')
            if 'rate limit' in error_msg.lower():
                return {'error': 'Explorer API rate limit exceeded. Please try again later.'}
            if 'invalid api key' in error_msg.lower():
                return {'error': 'Invalid explorer API key. Please check your configuration.'}
            return {'error': f'API error: {error_msg}'}

        result = data.get('result') or []
        if not isinstance(result, list) or not result:
            return {'error': 'No contract data found'}

        contract_data = result[0]
        raw_source = contract_data.get('SourceCode') or ''
        if not raw_source.strip():
            return {'error': 'Contract source code is not available (not verified)'}

        source_code, files = flatten_source(raw_source)
        contract_name = contract_data.get('ContractName') or f"Contract-{address[:8]}"
        self.console.print(f"[green]✅ Successfully fetched contract: {contract_name}[/green]")
        if len(files) > 1:
            self.console.print(f"[blue]📁 Multi-file contract with {len(files)} Solidity files[/blue]")

        return {
            'address': address,
            'network': target_network,
            'contract_name': contract_name,
            'source_code': source_code,
            'files': files,
            'compiler': contract_data.get('CompilerVersion') or 'Unknown',
            'optimization': contract_data.get('OptimizationUsed') == '1',
            'runs': contract_data.get('Runs') or '0',
            'is_proxy': contract_data.get('Proxy') == '1',
            'implementation': contract_data.get('Implementation') or None,
            'explorer_url': self.get_contract_explorer_url(address, target_network),
        }


def flatten_source(raw_source: str) -> Tuple[str, List[str]]:
    """
    Flatten explorer SourceCode into one string.

    Handles plain single-file sources, Standard JSON Input wrapped in double
    braces, and bare ``{filename: {content}}`` maps.

    Returns:
        (flattened source, list of file names)
    """
    text = raw_source.strip()
    if not text.startswith('{'):
        return raw_source, []

    if text.startswith('{{') and text.endswith('}}'):
        text = text[1:-1]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return raw_source, []

    sources = parsed.get('sources', parsed) if isinstance(parsed, dict) else {}
    parts = []
    files = []
    for file_name, entry in sources.items():
        content = entry.get('content') if isinstance(entry, dict) else None
        if not isinstance(content, str):
            continue
        files.append(file_name)
        parts.append(f"// File: {file_name}\n{content}")

    if not parts:
        return raw_source, []
    return "\n\n".join(parts), files
