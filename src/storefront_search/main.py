from typing import Annotated, NoReturn, Optional

import typer
from typer import Argument, Option, Typer
from rich.console import Console
from rich.table import Table

from .config import SearchSettings, configure_logging, resolve_db_path
from .embeddings import LexicalEmbedder
from .ingestion import CatalogImportPipeline
from .products import ProductService
from .search import (
    HybridSearchEngine,
    SearchFailedError,
    SmartFilterParseError,
    parse_smart_filter,
    supported_filter_syntax,
)
from .storage import CatalogItem, DuckDBCatalog, ProductNotFoundError

app = Typer(help="Search and manage a storefront product catalog.")
console = Console()

DbPathOption = Annotated[
    Optional[str],
    Option(
        "--db-path",
        help="DuckDB catalog path (defaults to STOREFRONT_DB_PATH or ~/.storefront_search/catalog.duckdb).",
    ),
]


def _open_catalog(db_path: str | None) -> tuple[DuckDBCatalog, LexicalEmbedder]:
    embedder = LexicalEmbedder()
    catalog = DuckDBCatalog(resolve_db_path(db_path), embedding_dim=embedder.dim)
    return catalog, embedder


def _fail(message: str) -> NoReturn:
    console.print(message, style="bold red", markup=False)
    raise typer.Exit(code=1)


def _products_table(title: str, items: list[CatalogItem]) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Vendor")
    table.add_column("Price", justify="right")
    table.add_column("Rating", justify="right")
    for item in items:
        table.add_row(
            str(item.id),
            item.name,
            item.category,
            item.vendor_name,
            f"{item.price:.2f}",
            f"{item.rating:.1f}",
        )
    return table


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ...). Defaults to STOREFRONT_LOG_LEVEL.",
        ),
    ] = None,
) -> None:
    configure_logging(log_level)


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text product query.")],
    db_path: DbPathOption = None,
) -> None:
    """Hybrid vector + text + fuzzy search."""
    catalog, embedder = _open_catalog(db_path)
    try:
        engine = HybridSearchEngine(
            catalog, embedder=embedder, settings=SearchSettings.from_env()
        )
        entries = engine.search(query)
    except (ValueError, SearchFailedError) as exc:
        _fail(str(exc))
    finally:
        catalog.close()

    table = Table(title=f"Results for {query.strip()!r}")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Price", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Matched by", style="cyan")
    for entry in entries:
        table.add_row(
            str(entry.product_id),
            entry.product.name,
            entry.product.category,
            f"{entry.product.price:.2f}",
            f"{entry.score:.2f}",
            entry.provenance,
        )
    console.print(table)


@app.command("vector-search")
def vector_search(
    query: Annotated[str, Argument(help="Free-text product query.")],
    limit: Annotated[int, Option("--limit", "-n", help="Number of results.")] = 10,
    db_path: DbPathOption = None,
) -> None:
    """Rank embedded products by blended similarity and text score."""
    catalog, embedder = _open_catalog(db_path)
    try:
        hits = HybridSearchEngine(catalog, embedder=embedder).vector_search(
            query, limit=limit
        )
    except ValueError as exc:
        _fail(str(exc))
    finally:
        catalog.close()

    table = Table(title=f"Vector results for {query.strip()!r}")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Similarity", justify="right")
    table.add_column("Text", justify="right")
    table.add_column("Combined", justify="right")
    for hit in hits:
        table.add_row(
            str(hit.item.id),
            hit.item.name,
            f"{hit.similarity:.3f}",
            str(hit.text_score),
            f"{hit.combined_score:.3f}",
        )
    console.print(table)


@app.command("filter")
def filter_products(
    where: Annotated[
        str,
        Argument(help=supported_filter_syntax()),
    ] = "",
    db_path: DbPathOption = None,
) -> None:
    """Filter active products by category, tags, price and rating."""
    try:
        facets = parse_smart_filter(where)
    except SmartFilterParseError as exc:
        _fail(f"{exc}\n{supported_filter_syntax()}")

    catalog, embedder = _open_catalog(db_path)
    try:
        items = HybridSearchEngine(catalog, embedder=embedder).filter(facets)
    finally:
        catalog.close()
    console.print(_products_table("Filtered products", items))


@app.command()
def recommend(
    product_id: Annotated[int, Argument(help="Product to find neighbours for.")],
    limit: Annotated[int, Option("--limit", "-n", help="Number of results.")] = 8,
    db_path: DbPathOption = None,
) -> None:
    """Show products similar to a given product."""
    catalog, embedder = _open_catalog(db_path)
    try:
        hits = HybridSearchEngine(catalog, embedder=embedder).recommend(
            product_id, limit=limit
        )
    except ProductNotFoundError as exc:
        _fail(str(exc))
    finally:
        catalog.close()

    if not hits:
        console.print("[yellow]No similar products found.[/]")
        return

    table = Table(title=f"Recommended for product {product_id}")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Score", justify="right")
    for hit in hits:
        table.add_row(str(hit.item.id), hit.item.name, hit.item.category, f"{hit.score:.3f}")
    console.print(table)


@app.command("import")
def import_catalog(
    path: Annotated[str, Argument(help="JSON file with an array of products.")],
    approve: Annotated[
        bool, Option("--approve", help="Mark imported products active.")
    ] = False,
    db_path: DbPathOption = None,
) -> None:
    """Import products (with vendors and reviews) from a JSON file."""
    catalog, embedder = _open_catalog(db_path)
    try:
        result = CatalogImportPipeline(catalog, embedder).import_file(
            path, approve=approve
        )
    except ValueError as exc:
        _fail(str(exc))
    finally:
        catalog.close()

    table = Table(title="Import Complete")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Imported products", str(result.imported_products))
    table.add_row("Skipped rows", str(result.skipped_rows))
    table.add_row("Approved products", str(result.approved_products))
    table.add_row("Embeddings written", str(result.embeddings_written))
    table.add_row("Reviews written", str(result.reviews_written))
    table.add_row("Vendors", str(result.vendors))
    console.print(table)


@app.command()
def backfill(
    force: Annotated[
        bool, Option("--force", help="Recompute embeddings for every product.")
    ] = False,
    db_path: DbPathOption = None,
) -> None:
    """Compute embeddings for products that do not have one yet."""
    catalog, embedder = _open_catalog(db_path)
    try:
        written = CatalogImportPipeline(catalog, embedder).backfill_embeddings(force=force)
    finally:
        catalog.close()
    console.print(f"[green]Embeddings written:[/] {written}")


@app.command()
def approve(
    product_id: Annotated[int, Argument(help="Product to approve.")],
    db_path: DbPathOption = None,
) -> None:
    """Approve a pending product so it becomes searchable."""
    _moderate(product_id, db_path, approve=True)


@app.command()
def reject(
    product_id: Annotated[int, Argument(help="Product to reject.")],
    db_path: DbPathOption = None,
) -> None:
    """Reject a product, hiding it from search."""
    _moderate(product_id, db_path, approve=False)


def _moderate(product_id: int, db_path: str | None, *, approve: bool) -> None:
    catalog, embedder = _open_catalog(db_path)
    try:
        service = ProductService(catalog, embedder)
        item = service.approve(product_id) if approve else service.reject(product_id)
    except ProductNotFoundError as exc:
        _fail(str(exc))
    finally:
        catalog.close()
    console.print(f"[green]Product {item.id} ({item.name}) is now {item.status}.[/]")


@app.command()
def pending(db_path: DbPathOption = None) -> None:
    """List products awaiting approval."""
    catalog, embedder = _open_catalog(db_path)
    try:
        items = ProductService(catalog, embedder).pending()
    finally:
        catalog.close()
    console.print(_products_table("Pending products", items))


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", help="Port to listen on.")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
