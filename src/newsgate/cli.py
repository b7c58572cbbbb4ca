from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Optional

import typer
from dotenv import load_dotenv

from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.errors import RegistryError
from .workflows.gate_config import RENDERERS, PipelineSettings
from .workflows.link_scanner import is_sole_url, scan
from .workflows.pipeline import build_pipeline
from .workflows.sources import load_registry, selector_for_mode
from .workflows.trust_gate import Rejected, TrustGate

app = typer.Typer(no_args_is_help=True, help="Trusted-source article extraction.")


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


def _settings(**overrides: Any) -> PipelineSettings:
    try:
        settings = PipelineSettings.from_env()
        return dataclasses.replace(settings, **overrides) if overrides else settings
    except ValueError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=3)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress to stderr."),
) -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("scan")
def scan_cmd(text: str = typer.Argument(..., help="Free-form text to search for links.")) -> None:
    """Print the link candidates found in TEXT."""
    candidates = scan(text)
    _emit(
        {
            "candidates": [{"raw": c.raw, "normalized": c.normalized} for c in candidates],
            "soleUrl": is_sole_url(text),
        }
    )


@app.command("check")
def check_cmd(
    url: str = typer.Argument(..., help="URL to run through the trust gate."),
    no_resolve: bool = typer.Option(False, "--no-resolve", help="Skip the DNS re-check."),
) -> None:
    """Run the trust gate on URL without fetching it."""
    settings = _settings()
    try:
        registry = load_registry(settings.sources_path, selector_for_mode(settings.citation_mode))
    except RegistryError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=3)
    decision = asyncio.run(TrustGate(registry).admit(url, resolve=not no_resolve))
    if isinstance(decision, Rejected):
        _emit({"allowed": False, "url": decision.url, "reason": decision.reason, "detail": decision.detail})
        raise typer.Exit(code=2)
    _emit(
        {
            "allowed": True,
            "url": decision.url,
            "hostname": decision.hostname,
            "source": decision.matched_source.display_name_foreign,
        }
    )


@app.command("extract")
def extract_cmd(
    text: str = typer.Argument(..., help="Text containing a news link."),
    renderer: Optional[str] = typer.Option(None, "--renderer", help=f"One of: {', '.join(RENDERERS)}."),
    no_rewrite: bool = typer.Option(False, "--no-rewrite", help="Skip the language-model rewrite."),
    json_out: bool = typer.Option(False, "--json", help="Print the result record as JSON."),
) -> None:
    """Extract, attribute and rewrite the article linked from TEXT."""
    overrides: dict = {}
    if renderer:
        overrides["renderer"] = renderer.strip().lower()
    if no_rewrite:
        overrides["llm_api_key"] = None
    settings = _settings(**overrides)
    try:
        pipeline = build_pipeline(settings)
    except RegistryError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=3)
    result = asyncio.run(pipeline.run(text))
    record = result.to_dict()
    if json_out:
        _emit(record)
    elif result.success:
        article = record["article"]
        typer.echo(article["title"])
        typer.echo(f"{article['sourceNameLocal']} | {article['sourceUrl']} | rewrite={record['rewrite']}")
        typer.echo("")
        typer.echo(article["content"])
    else:
        typer.echo(f"{record['reason']}: {record['error']}", err=True)
    raise typer.Exit(code=0 if result.success else 2)


@app.command("sources")
def sources_cmd() -> None:
    """List the trusted source registry."""
    settings = _settings()
    try:
        registry = load_registry(settings.sources_path)
    except RegistryError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=3)
    _emit(registry.to_list())


@app.command("doctor")
def doctor_cmd() -> None:
    """Print environment and dependency diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


if __name__ == "__main__":
    app()
