"""
Command line interface for the Email Discovery Service
Runs single discovery operations or serves the HTTP API
"""
# -*- coding: utf-8 -*-
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from loguru import logger

from config import get_settings
from models import (
    CompanyLookupRequest,
    CriteriaSearchRequest,
    DomainLookupRequest,
    NameGuessRequest,
    Operation,
    PipelineResult,
    SearchRequest,
    TextExtractionRequest,
)
from pipeline import build_pipeline

# CLI Application
app = typer.Typer(help="Email Discovery Service - find business email addresses")


@app.callback()
def cli(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    """Email Discovery Service - find business email addresses"""
    setup_cli_logging("DEBUG" if verbose else None)


def _echo_result(result: PipelineResult, as_json: bool):
    if as_json:
        typer.echo(json.dumps({"addresses": result.addresses, "narrative": result.narrative}, indent=2))
        return

    for address in result.addresses:
        typer.echo(address)
    if result.addresses:
        typer.echo("")
    typer.echo(result.narrative)


def _run_operation(operation: Operation, request: SearchRequest, as_json: bool):
    """Run one operation on a fresh pipeline and print the result"""
    async def run() -> PipelineResult:
        pipeline = build_pipeline()
        try:
            return await pipeline.run(operation, request)
        finally:
            await pipeline.close()

    _echo_result(asyncio.run(run()), as_json)


@app.command()
def find(
    criteria: str = typer.Argument(..., help="Profession, industry or role, e.g. 'plumbers in Denver'"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Find business addresses for companies matching the criteria"""
    _run_operation(Operation.FIND_BY_CRITERIA, CriteriaSearchRequest(criteria=criteria), as_json)


@app.command()
def extract_text(
    text: str = typer.Argument(..., help="Text that may contain email addresses"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Extract addresses from a block of text"""
    _run_operation(Operation.EXTRACT_FROM_TEXT, TextExtractionRequest(text=text), as_json)


@app.command()
def names(
    names_text: str = typer.Argument(..., help="Text containing person names"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Guess addresses for the people named in the text"""
    _run_operation(Operation.GENERATE_FROM_NAMES, NameGuessRequest(names_text=names_text), as_json)


@app.command()
def domains(
    domains_text: str = typer.Argument(..., help="Text containing company websites or domains"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Collect addresses for the websites or domains in the text"""
    _run_operation(Operation.GENERATE_FROM_DOMAINS, DomainLookupRequest(domains_text=domains_text), as_json)


@app.command()
def company(
    company_info: str = typer.Argument(..., help="Company name or website URL"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Find addresses associated with one company"""
    _run_operation(Operation.EXTRACT_FROM_COMPANY, CompanyLookupRequest(company_info=company_info), as_json)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (defaults to API_PORT)"),
):
    """Run the HTTP API"""
    setup_production_logging()
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    logger.info(f"Starting Email Discovery API Service on {host}:{port}")
    uvicorn.run(
        "api_service:app",
        host=host,
        port=port,
        log_level="info",
        access_log=False
    )


SERVICE_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | "
    "<level>{message}</level>"
)


def _log_files(settings) -> list:
    """(file name, minimum level, retention) for every rotated log file"""
    files = [("errors.log", "ERROR", "90 days")]
    if not settings.debug_mode:
        files.insert(0, ("service.log", settings.log_level, settings.log_retention))
    return files


def setup_production_logging():
    """Compact stdout logging for the service, plus rotated files when enabled"""
    settings = get_settings()
    logger.remove()

    # No tracebacks with variable values on stdout
    logger.add(sys.stdout, level=settings.log_level, format=SERVICE_LOG_FORMAT, backtrace=False, diagnose=False)

    if settings.log_file_enabled:
        log_dir = Path(settings.log_file_path)
        log_dir.mkdir(parents=True, exist_ok=True)
        for file_name, level, retention in _log_files(settings):
            logger.add(
                log_dir / file_name,
                level=level,
                format=SERVICE_LOG_FORMAT,
                rotation=settings.log_rotation,
                retention=retention,
                compression="gz",
            )

    logger.info(f"Service logging configured (level: {settings.log_level}, files: {settings.log_file_enabled})")


def setup_cli_logging(level: Optional[str] = None):
    """Log to stderr so command output stays parseable"""
    settings = get_settings()
    logger.remove()  # Remove default handler

    # CLI log format (more detailed for debugging)
    cli_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format=cli_format,
        colorize=True
    )


if __name__ == "__main__":
    app()
