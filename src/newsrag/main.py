import json
import re

from typer import Typer, Option, Argument, Exit, echo
from typing import Annotated
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .embeddings import EmbeddingChain
from .ingest import DEFAULT_BATCH_SIZE, ingest_articles, load_articles
from .search import RetrievalEngine
from .storage import LocalDocumentStore
from .store_config import setup_logging

app = Typer(help="Hybrid lexical + vector news retrieval.")

DUMP_SNIPPET_CHARS = 240

StorePathOption = Annotated[
    str | None,
    Option("--store-path", help="Path of the persisted JSON store."),
]


def build_engine(store_path: str | None = None) -> RetrievalEngine:
    embeddings = EmbeddingChain.from_env()
    engine = RetrievalEngine(
        store=LocalDocumentStore(store_path, dim=embeddings.dim),
        embeddings=embeddings,
    )
    engine.init()
    return engine


def _snippet(text: str, limit: int) -> str:
    collapsed = re.sub(r"\s+", " ", text).strip()
    if len(collapsed) > limit:
        return collapsed[:limit] + "..."
    return collapsed


@app.callback()
def main(
    log_level: Annotated[
        str, Option("--log-level", help="Logging level for the run.")
    ] = "WARNING",
) -> None:
    setup_logging(log_level)


@app.command()
def ingest(
    file: Annotated[str, Argument(help="JSON file with an array of articles.")],
    batch_size: Annotated[
        int, Option("--batch-size", "-b", help="Documents per upsert batch.")
    ] = DEFAULT_BATCH_SIZE,
    store_path: StorePathOption = None,
) -> None:
    """Load articles from FILE and upsert them in batches."""
    console = Console()
    try:
        articles = load_articles(file)
    except (OSError, ValueError) as exc:
        console.print(f"[bold red]Could not read articles:[/] {exc}")
        raise Exit(code=1)

    engine = build_engine(store_path)
    with console.status(status=f"Ingesting {len(articles)} articles..."):
        result = ingest_articles(engine, articles, batch_size=batch_size)

    content = (
        f"Articles: {result.articles}\n"
        f"Upserted: {result.upserted}\n"
        f"Failed batches: {result.failed_batches}\n"
        f"Backend: {'qdrant + local mirror' if engine.using_remote else 'local'}"
    )
    console.print(
        Panel(content, title="Ingest Complete", title_align="left", border_style="bold green")
    )
    if result.failed_batches:
        raise Exit(code=1)


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text query.")],
    k: Annotated[int, Option("-k", help="Maximum number of results.")] = 5,
    require_match: Annotated[
        bool,
        Option(
            "--require-match",
            help="Return nothing when no stored document shares a word with the query.",
        ),
    ] = False,
    as_json: Annotated[bool, Option("--json", help="Print raw JSON results.")] = False,
    store_path: StorePathOption = None,
) -> None:
    """Search the store and print ranked results."""
    console = Console()
    engine = build_engine(store_path)

    if require_match and engine.get_all() and engine.documents_matching(query) == 0:
        console.print("[bold yellow]No stored documents match those words.[/]")
        return

    try:
        results = engine.search(query, k)
    except ValueError as exc:
        console.print(f"[bold red]{exc}[/]")
        raise Exit(code=2)

    if as_json:
        echo(json.dumps([result.to_dict() for result in results], indent=2, default=str))
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Title")
    table.add_column("Snippet")
    for position, result in enumerate(results, start=1):
        table.add_row(
            str(position),
            f"{result.score:.3f}",
            str(result.meta.get("title") or "Untitled"),
            _snippet(result.text, 120),
        )
    console.print(table)


@app.command()
def dump(store_path: StorePathOption = None) -> None:
    """Print every persisted document."""
    console = Console()
    store = LocalDocumentStore(store_path)
    entries = store.get_all()
    if not entries:
        console.print(f"No persisted documents found at {store.path}")
        return

    console.print(f"Loaded {len(entries)} docs from {store.path}")
    for position, entry in enumerate(entries, start=1):
        lines = [f"{position}) id: {entry.id}"]
        title = entry.meta.get("title")
        url = entry.meta.get("url")
        if title:
            lines.append(f"   title: {title}")
        if url:
            lines.append(f"   url: {url}")
        lines.append(f"   snippet: {_snippet(entry.text, DUMP_SNIPPET_CHARS)}")
        console.print("\n".join(lines), markup=False, highlight=False)


@app.command()
def clear(store_path: StorePathOption = None) -> None:
    """Delete every stored document and the persisted snapshot."""
    engine = build_engine(store_path)
    engine.clear()
    Console().print("[bold green]Store cleared.[/]")


@app.command()
def serve(
    host: Annotated[str, Option("--host")] = "127.0.0.1",
    port: Annotated[int, Option("--port")] = 8000,
) -> None:
    """Run the HTTP search server."""
    from .server import run_server

    run_server(host=host, port=port)
