"""
Main CLI implementation for DeFi Watchdog.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from watchdog_core.audit_engine import WatchdogAnalyzer
from watchdog_core.audit_progress import PassProgressTracker, PassStatus
from watchdog_core.config_manager import ConfigManager
from watchdog_core.explorer_fetcher import ExplorerFetcher
from watchdog_core.json_utils import parse_llm_json
from watchdog_core.model_passes import StaticResponsePass, build_model_passes
from watchdog_core.models import AggregateResult, finding_from_dict
from watchdog_core.report_formatter import ReportFormatter
from watchdog_core.response_interpreter import collect_finding_dicts
from watchdog_core.scoring import score_findings

SEVERITY_STYLES = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
    "INFO": "dim",
}

STATUS_ICONS = {
    PassStatus.STARTED: "⏳",
    PassStatus.COMPLETED: "✅",
    PassStatus.FAILED: "❌",
    PassStatus.TIMED_OUT: "⌛",
    PassStatus.FALLBACK: "🔎",
}


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


class WatchdogCLI:
    """Main CLI class for DeFi Watchdog."""

    def __init__(self, config_manager: Optional[ConfigManager] = None, console: Optional[Console] = None):
        self.version = "1.0.0"
        self.console = console or Console()
        self.config_manager = config_manager or ConfigManager()
        self.formatter = ReportFormatter()

    def show_version(self):
        self.console.print(f"DeFi Watchdog v{self.version}")

    def _print_progress(self, model_id: str, status: PassStatus, data: Dict[str, Any]) -> None:
        icon = STATUS_ICONS.get(status)
        if icon is None:
            return
        detail = ""
        if "findings" in data:
            detail = f" - {data['findings']} findings"
            if data.get("parse_method"):
                detail += f" ({data['parse_method']})"
        elif data.get("error"):
            detail = f" - {str(data['error'])[:100]}"
        self.console.print(f"  {icon} {model_id}: {status.value}{detail}")

    def _build_passes(self, models: Optional[List[str]], responses: Optional[List[str]], no_models: bool):
        if responses:
            passes = []
            for response_file in responses:
                path = Path(response_file)
                passes.append(StaticResponsePass(f"replay:{path.name}", path.read_text(encoding="utf-8")))
            return passes
        if no_models:
            return []
        config = self.config_manager.config
        if not config.openrouter_api_key:
            self.console.print("[yellow]⚠️  No OpenRouter API key configured; running the pattern scanner only.[/yellow]")
            self.console.print("[yellow]   Set OPENROUTER_API_KEY or run: defi-watchdog config --set openrouter_api_key <key>[/yellow]")
            return []
        return build_model_passes(config, models)

    def render_result(self, result: AggregateResult) -> None:
        """Rich rendering of an analysis result."""
        summary = result.report.get("executive_summary", {})
        scores = result.scores
        header = (
            f"[bold]{result.contract_name}[/bold]\n"
            f"Risk Level: [bold]{result.risk_level.value}[/bold]   "
            f"Deployment: [bold]{summary.get('deployment_recommendation', 'UNKNOWN')}[/bold]\n"
            f"Security {scores.security}  Gas {scores.gas_optimization}  "
            f"Quality {scores.code_quality}  Overall {scores.overall}\n"
            f"{summary.get('summary', '')}"
        )
        self.console.print(Panel(header, title="🛡️ DeFi Watchdog Report"))
        if result.used_pattern_fallback:
            self.console.print("[yellow]No model pass produced findings; results come from the pattern scanner.[/yellow]")

        table = Table(title="Findings")
        table.add_column("#", style="dim")
        table.add_column("Severity")
        table.add_column("Title", style="white")
        table.add_column("Location", style="cyan")
        table.add_column("Confidence", style="green")
        table.add_column("Consensus", justify="right")
        for i, finding in enumerate(result.findings, 1):
            style = SEVERITY_STYLES.get(finding.severity.value, "white")
            table.add_row(
                str(i),
                f"[{style}]{finding.severity.value}[/{style}]",
                finding.title,
                finding.location,
                finding.confidence.value,
                str(finding.consensus_count),
            )
        self.console.print(table)

        performance = result.report.get("model_performance", [])
        if performance:
            perf_table = Table(title="Pass Performance")
            perf_table.add_column("Pass", style="cyan")
            perf_table.add_column("Status")
            perf_table.add_column("Findings", justify="right")
            perf_table.add_column("Parse Method")
            for row in performance:
                status = "[green]ok[/green]" if row["succeeded"] else f"[red]failed[/red] {row['error'][:60]}"
                perf_table.add_row(row["model_id"], status, str(row["findings_count"]), row["parse_method"])
            self.console.print(perf_table)

    def _emit(self, result: AggregateResult, output_format: str, output: Optional[str]) -> None:
        if output_format == "json":
            print(self.formatter.format_for_json(result))
        elif output_format == "text":
            print(self.formatter.format_for_display(result))
        else:
            self.render_result(result)
        if output:
            Path(output).write_text(self.formatter.format_for_json(result), encoding="utf-8")
            self.console.print(f"[green]✓ Report saved to {output}[/green]")

    async def run_analyze(self, contract_file: str, name: Optional[str] = None, models: Optional[List[str]] = None,
                          responses: Optional[List[str]] = None, no_models: bool = False,
                          output_format: str = "display", output: Optional[str] = None) -> int:
        path = Path(contract_file)
        if not path.is_file():
            self.console.print(f"[red]❌ Contract file not found: {contract_file}[/red]")
            return 1

        source_code = path.read_text(encoding="utf-8")
        contract_name = name or path.stem
        passes = self._build_passes(models, responses, no_models)

        if output_format == "display":
            self.console.print(f"[cyan]🔍 Analyzing {contract_name} with {len(passes)} model passes...[/cyan]")
        tracker = PassProgressTracker(listener=self._print_progress if output_format == "display" else None)

        analyzer = WatchdogAnalyzer(self.config_manager.config)
        result = await analyzer.analyze(source_code, contract_name, passes, on_progress=tracker)
        self._emit(result, output_format, output)
        return 0

    async def run_fetch(self, address: str, network: Optional[str] = None, analyze: bool = False,
                        models: Optional[List[str]] = None, no_models: bool = False,
                        output_format: str = "display", output: Optional[str] = None) -> int:
        fetcher = ExplorerFetcher(self.config_manager)
        contract = fetcher.fetch_contract_source(address, network)
        if contract.get("error"):
            self.console.print(f"[red]❌ {contract['error']}[/red]")
            return 1

        if not analyze:
            if output:
                Path(output).write_text(contract["source_code"], encoding="utf-8")
                self.console.print(f"[green]✓ Source saved to {output}[/green]")
            else:
                print(contract["source_code"])
            return 0

        passes = self._build_passes(models, None, no_models)
        tracker = PassProgressTracker(listener=self._print_progress if output_format == "display" else None)
        analyzer = WatchdogAnalyzer(self.config_manager.config)
        result = await analyzer.analyze(contract["source_code"], contract["contract_name"], passes, on_progress=tracker)
        self._emit(result, output_format, output)
        return 0

    def run_score(self, findings_file: str) -> int:
        path = Path(findings_file)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            self.console.print(f"[red]❌ Could not read findings file: {e}[/red]")
            return 1

        # accepts a findings list, a saved report, or a raw model response
        data = parse_llm_json(text)
        if data is None:
            self.console.print(f"[red]❌ No JSON findings found in {findings_file}[/red]")
            return 1

        raw_findings, _ = collect_finding_dicts(data)
        findings = [finding_from_dict(item) for item in raw_findings]
        scores = score_findings(findings)

        table = Table(title=f"Scores for {len(findings)} findings")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in scores.items():
            table.add_row(key, str(value))
        self.console.print(table)
        return 0

    def run_config(self, show: bool = False, set_pair: Optional[List[str]] = None) -> int:
        if set_pair:
            key, value = set_pair
            if not self.config_manager.set_value(key, value):
                return 1
            if not show:
                return 0
        self.config_manager.show_config()
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="defi-watchdog",
        description="DeFi Watchdog: multi-model smart contract security analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  defi-watchdog analyze contracts/Token.sol
  defi-watchdog analyze contracts/Token.sol --response saved_response.txt --format json
  defi-watchdog fetch 0x... --network linea --analyze
  defi-watchdog score findings.json
        """
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    analyze_parser = subparsers.add_parser('analyze', help='Analyze a Solidity source file')
    analyze_parser.add_argument('contract', help='Path to the Solidity file')
    analyze_parser.add_argument('--name', help='Contract name (defaults to the file name)')
    analyze_parser.add_argument('--model', action='append', dest='models', help='Model id to run (repeatable)')
    analyze_parser.add_argument('--response', action='append', dest='responses',
                                help='Replay a saved model response file instead of calling models (repeatable)')
    analyze_parser.add_argument('--no-models', action='store_true', help='Skip model passes; pattern scanner only')
    analyze_parser.add_argument('--format', choices=['display', 'text', 'json'], default='display', help='Output format')
    analyze_parser.add_argument('--output', '-o', help='Write the JSON report to this file')
    analyze_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    fetch_parser = subparsers.add_parser('fetch', help='Fetch verified source from a block explorer')
    fetch_parser.add_argument('address', help='Contract address')
    fetch_parser.add_argument('--network', choices=ExplorerFetcher.get_supported_networks(), help='Explorer network')
    fetch_parser.add_argument('--analyze', action='store_true', help='Analyze the fetched source')
    fetch_parser.add_argument('--model', action='append', dest='models', help='Model id to run (repeatable)')
    fetch_parser.add_argument('--no-models', action='store_true', help='Skip model passes; pattern scanner only')
    fetch_parser.add_argument('--format', choices=['display', 'text', 'json'], default='display', help='Output format')
    fetch_parser.add_argument('--output', '-o', help='Write the source (or report with --analyze) to this file')
    fetch_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    score_parser = subparsers.add_parser('score', help='Score a JSON list of findings')
    score_parser.add_argument('findings', help='Path to findings JSON')

    config_parser = subparsers.add_parser('config', help='Show or change configuration')
    config_parser.add_argument('--show', action='store_true', help='Show current configuration (after --set, if given)')
    config_parser.add_argument('--set', nargs=2, metavar=('KEY', 'VALUE'), dest='set_pair', help='Set a configuration value')

    subparsers.add_parser('version', help='Show version information')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the defi-watchdog CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(getattr(args, 'verbose', False))
    cli = WatchdogCLI()

    try:
        if args.command == 'analyze':
            return asyncio.run(cli.run_analyze(
                args.contract, name=args.name, models=args.models, responses=args.responses,
                no_models=args.no_models, output_format=args.format, output=args.output,
            ))
        elif args.command == 'fetch':
            return asyncio.run(cli.run_fetch(
                args.address, network=args.network, analyze=args.analyze, models=args.models,
                no_models=args.no_models, output_format=args.format, output=args.output,
            ))
        elif args.command == 'score':
            return cli.run_score(args.findings)
        elif args.command == 'config':
            return cli.run_config(show=args.show, set_pair=args.set_pair)
        elif args.command == 'version':
            cli.show_version()
            return 0
    except KeyboardInterrupt:
        cli.console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    except Exception as e:
        cli.console.print(f"[red]❌ Error: {e}[/red]")
        return 1

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
