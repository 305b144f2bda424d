"""
Command line interface for the Supplier Pricelist Engine.

Works on pre-decoded content files: JSON documents shaped like ``PdfContent``
or ``SpreadsheetContent``, or plain text treated as PDF lines.
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from pricelist_engine import __version__
from pricelist_engine.config.logging_setup import configure_logging
from pricelist_engine.config.settings import (
    ApplicationSettings,
    DatabaseSettings,
    get_environment_info,
    get_settings,
    validate_settings,
)
from pricelist_engine.core.exceptions import PricelistEngineError
from pricelist_engine.extraction.extractor import PriceExtractor
from pricelist_engine.layout.classifier import LayoutClassifier
from pricelist_engine.models.domain import LayoutDescriptor, PdfContent
from pricelist_engine.pipeline.document_pipeline import DocumentPipeline, PipelineResult
from pricelist_engine.repositories.layout_patterns import LayoutPatternRepository
from pricelist_engine.repositories.store import InMemoryTemplateStore, SqlTemplateStore, TemplateStore
from pricelist_engine.services.claude_layout_enhancer import ClaudeLayoutEnhancer
from pricelist_engine.templates.matcher import TemplateMatcher

console = Console()
logger = structlog.get_logger(__name__)


def load_content(file_path: Path) -> Any:
    """JSON content documents are passed through; anything else becomes PDF lines."""
    if file_path.suffix.lower() == ".json":
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    return PdfContent(lines=file_path.read_text(encoding="utf-8").splitlines())


def build_classifier(settings: ApplicationSettings) -> LayoutClassifier:
    enhancer = None
    if settings.classifier.enable_ai_enhancement and settings.claude.api_key:
        enhancer = ClaudeLayoutEnhancer(settings.claude, boost=settings.classifier.enhancement_boost)
    return LayoutClassifier(
        settings=settings.classifier,
        pattern_repository=LayoutPatternRepository(),
        enhancer=enhancer,
    )


async def open_store(database_url: Optional[str]) -> TemplateStore:
    if database_url is None:
        return InMemoryTemplateStore()
    store = SqlTemplateStore.from_settings(DatabaseSettings(database_url=database_url))
    await store.initialize()
    return store


async def close_resources(store: TemplateStore, classifier: LayoutClassifier) -> None:
    if isinstance(store, SqlTemplateStore):
        await store.close()
    if isinstance(classifier.enhancer, ClaudeLayoutEnhancer):
        await classifier.enhancer.close()


def descriptor_table(descriptor: LayoutDescriptor) -> Table:
    table = Table(title="Layout Classification")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Document kind", descriptor.document_kind.value)
    table.add_row("Layout type", descriptor.layout_type.value)
    table.add_row("Subtype", descriptor.subtype)
    table.add_row("Confidence", f"{descriptor.confidence:.2f}")
    table.add_row("AI enhanced", "✓" if descriptor.ai_enhanced else "✗")
    if descriptor.price_patterns is not None:
        table.add_row("Price format", descriptor.price_patterns.primary_format or "none")
        table.add_row("Price references", str(descriptor.price_patterns.total_price_references))
    if descriptor.column_structure is not None:
        table.add_row("Sheets", str(descriptor.column_structure.sheet_count))
        table.add_row("Price columns", str(descriptor.column_structure.price_column_count))
    table.add_row("Strategy hint", str(descriptor.processing_hints.get("strategy", "")))
    if descriptor.error:
        table.add_row("Error", f"[red]{descriptor.error}[/red]")
    return table


def products_table(result: PipelineResult, limit: int) -> Table:
    table = Table(title=f"Products ({result.extraction.extraction_method})")
    table.add_column("Name", style="cyan")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Kind", style="green")
    table.add_column("Old RRP", style="dim", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Review")

    for product in result.products[:limit]:
        table.add_row(
            product.name,
            f"{product.selected_price.currency} {product.price:,.2f}",
            product.price_kind.value,
            f"{product.old_rrp:,.2f}" if product.old_rrp is not None else "",
            f"{product.confidence:.2f}",
            "[yellow]⚠[/yellow]" if product.needs_review else "",
        )
    return table


@click.group()
@click.version_option(version=__version__, prog_name="Supplier Pricelist Engine")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--database-url", help="Template store URL; in-memory store when omitted")
@click.pass_context
def cli(ctx, verbose, database_url):
    """
    Supplier Pricelist Engine CLI

    Layout classification and price extraction with adaptive templates.
    """
    settings = get_settings()
    configure_logging(settings.monitoring, verbose=verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["database_url"] = database_url
    ctx.obj["settings"] = settings


@cli.command()
@click.pass_context
def info(ctx):
    """Show application information and configuration"""
    try:
        validate_settings(ctx.obj["settings"])
        info_data = get_environment_info()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan", no_wrap=True)
        table.add_column("Status", style="green")
        table.add_column("Details", style="dim")

        table.add_row("Application", info_data["app_name"], f"v{info_data['app_version']}")
        table.add_row("Environment", info_data["environment"], "")
        table.add_row("Template store", "✓ Configured", info_data["database_url"])
        table.add_row(
            "Claude API",
            "✓ Configured" if info_data["claude_configured"] else "✗ Not configured",
            "",
        )
        table.add_row(
            "AI enhancement",
            "✓ Enabled" if info_data["ai_enhancement"] else "✗ Disabled",
            "",
        )
        table.add_row("Learning threshold", str(info_data["learning_threshold"]), "")
        table.add_row("Default currency", info_data["default_currency"], "")

        console.print(table)

        if ctx.obj["verbose"]:
            console.print("\n[bold]Full Configuration:[/bold]")
            console.print_json(json.dumps(info_data, indent=2))

    except (ValueError, PricelistEngineError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def classify(ctx, file_path):
    """Classify the layout of a decoded pricelist"""
    settings = ctx.obj["settings"]
    try:
        content = load_content(file_path)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read {file_path}: {e}[/red]")
        sys.exit(1)

    async def run() -> LayoutDescriptor:
        classifier = build_classifier(settings)
        try:
            return await classifier.analyze(content)
        finally:
            if isinstance(classifier.enhancer, ClaudeLayoutEnhancer):
                await classifier.enhancer.close()

    descriptor = asyncio.run(run())
    console.print(descriptor_table(descriptor))

    if ctx.obj["verbose"]:
        console.print_json(descriptor.model_dump_json())


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--supplier", "-s", required=True, help="Supplier key")
@click.option("--limit", default=25, show_default=True, help="Products to show")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the result as JSON")
@click.pass_context
def extract(ctx, file_path, supplier, limit, output):
    """Extract products and prices from a decoded pricelist"""
    settings = ctx.obj["settings"]
    try:
        content = load_content(file_path)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read {file_path}: {e}[/red]")
        sys.exit(1)

    async def run() -> PipelineResult:
        store = await open_store(ctx.obj["database_url"])
        classifier = build_classifier(settings)
        try:
            matcher = TemplateMatcher(store, settings.templates)
            await matcher.ensure_default_templates()
            pipeline = DocumentPipeline(classifier, PriceExtractor(settings.extraction), matcher)
            return await pipeline.process(supplier, content)
        finally:
            await close_resources(store, classifier)

    try:
        result = asyncio.run(run())
    except PricelistEngineError as e:
        console.print(f"[red]Extraction failed: {e}[/red]")
        sys.exit(1)

    console.print(descriptor_table(result.descriptor))
    console.print(products_table(result, limit))
    remaining = max(0, len(result.products) - limit)
    if remaining:
        console.print(f"[dim]... and {remaining} more products[/dim]")

    console.print(
        f"[green]{len(result.products)} products[/green], "
        f"run confidence {result.extraction.confidence:.1f}, "
        f"template {result.template_id} v{result.template_version}"
    )

    if output is not None:
        output.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[dim]Result written to {output}[/dim]")


@cli.command()
@click.option("--supplier", "-s", help="Only templates of this supplier")
@click.pass_context
def templates(ctx, supplier):
    """List stored templates"""

    async def run():
        store = await open_store(ctx.obj["database_url"])
        try:
            await TemplateMatcher(store, ctx.obj["settings"].templates).ensure_default_templates()
            return await store.list_templates(supplier)
        finally:
            if isinstance(store, SqlTemplateStore):
                await store.close()

    table = Table(title="Templates")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Supplier", style="green")
    table.add_column("Layout")
    table.add_column("Version")
    table.add_column("Uses", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Adaptive")

    for template in asyncio.run(run()):
        table.add_row(
            template.id,
            template.supplier_key,
            f"{template.layout_type.value}/{template.subtype}",
            template.version,
            str(template.performance.usage_count),
            f"{template.performance.success_rate:.0%}",
            f"from {template.base_template_id}" if template.is_adaptive else "",
        )

    console.print(table)


if __name__ == "__main__":
    cli()
