"""CLI entry points for judex.

Provides command-line tools for:
- Extracting elements from a single judgment file
- Batch extraction over a directory of judgments
- Serving the extraction API
"""

import click

from judex import __version__

from .extract import batch_command, extract_command


@click.group()
@click.version_option(version=__version__, prog_name="judex")
def main():
    """judex - Judgment Extraction.

    Hybrid rule-based and LLM-based extraction of dates, parties,
    amounts, legal clauses and facts from Chinese court judgments.
    """
    pass


@main.command("serve")
@click.option("--host", default=None, help="Bind address (default: settings.api_host)")
@click.option("--port", default=None, type=int, help="Port (default: settings.api_port)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve_command(host: str | None, port: int | None, reload: bool) -> None:
    """Run the extraction API with uvicorn."""
    import uvicorn

    from judex.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "judex.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_config=None,
    )


main.add_command(extract_command, name="extract")
main.add_command(batch_command, name="batch")


if __name__ == "__main__":
    main()
