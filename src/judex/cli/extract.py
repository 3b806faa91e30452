"""CLI commands for judgment extraction."""

import asyncio
import json
import sys
from pathlib import Path

import click

from ..extraction import (
    ExtractionOptions,
    ExtractionPipeline,
    ExtractionResponse,
    InvalidInputError,
    get_extraction_pipeline,
)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8-sig")


def _dump(response: ExtractionResponse) -> str:
    return json.dumps(
        response.model_dump(mode="json", by_alias=True),
        ensure_ascii=False,
        indent=2,
    )


def _print_summary(response: ExtractionResponse) -> None:
    data = response.data
    meta = response.metadata
    click.echo(f"Method: {meta.extraction_method}  Source: {data.source.value}")
    click.echo(f"Confidence: {data.confidence:.2f}  Time: {meta.processing_time:.0f}ms")
    click.echo(f"Document: {meta.document_type}")
    if meta.court:
        click.echo(f"Court: {meta.court}")
    if meta.case_number:
        click.echo(f"Case number: {meta.case_number}")
    click.echo(f"Case type: {data.case_type}")
    click.echo("")

    sections = (
        ("Dates", data.dates, lambda v: f"{v.date} [{v.type}]"),
        ("Parties", data.parties, lambda v: f"{v.name} [{v.role}]"),
        ("Amounts", data.amounts, lambda v: f"{v.value:,f} {v.currency} [{v.purpose}]"),
        ("Legal clauses", data.legal_clauses, lambda v: v.label),
        ("Facts", data.facts, lambda v: f"[{v.stance}] {v.content[:60]}"),
    )
    for title, elements, render in sections:
        click.echo(f"{title} ({len(elements)}):")
        for element in elements:
            click.echo(
                f"  - {render(element.value)}  "
                f"({element.confidence:.2f}, {element.source.value})"
            )
    if data.conflicts:
        click.echo(f"Conflicts ({len(data.conflicts)}):")
        for conflict in data.conflicts:
            fields = ", ".join(conflict.differing_fields)
            click.echo(f"  - {conflict.key}: {fields} -> {conflict.resolution.value}")
    if data.legal_references:
        click.echo("References:")
        for reference in data.legal_references:
            click.echo(f"  - {reference}")
    if response.suggestions:
        click.echo("Suggestions:")
        for suggestion in response.suggestions:
            click.echo(f"  * {suggestion}")


@click.command("extract")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-ai", is_flag=True, help="Use rule-based extraction only")
@click.option("--no-provisions", is_flag=True, help="Skip provision and reference mapping")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def extract_command(file: Path, no_ai: bool, no_provisions: bool, as_json: bool) -> None:
    """Extract elements from a judgment text file."""

    async def _extract() -> None:
        pipeline = get_extraction_pipeline()
        options = ExtractionOptions(
            enable_ai=not no_ai,
            enhance_with_provisions=not no_provisions,
        )
        try:
            response = await pipeline.extract(_read_text(file), options)
        except (InvalidInputError, OSError, UnicodeDecodeError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if as_json:
            click.echo(_dump(response))
        else:
            _print_summary(response)

    asyncio.run(_extract())


@click.command("batch")
@click.argument(
    "directory", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--pattern", default="*.txt", help="Glob for input files (default: *.txt)")
@click.option("--concurrency", "-c", default=4, type=click.IntRange(min=1), help="Parallel extractions")
@click.option("--no-ai", is_flag=True, help="Use rule-based extraction only")
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    help="Write one JSON result per input file into this directory",
)
def batch_command(
    directory: Path,
    pattern: str,
    concurrency: int,
    no_ai: bool,
    output: Path | None,
) -> None:
    """Extract elements from every judgment file in a directory.

    AI calls on this path retry with exponential backoff.
    """

    files = sorted(directory.glob(pattern))
    if not files:
        click.echo(f"No files matching {pattern} in {directory}", err=True)
        sys.exit(1)
    if output is not None:
        output.mkdir(parents=True, exist_ok=True)

    async def _run_one(
        pipeline: ExtractionPipeline, semaphore: asyncio.Semaphore, path: Path
    ) -> tuple[Path, ExtractionResponse | None, str | None]:
        async with semaphore:
            try:
                response = await pipeline.extract(
                    _read_text(path), ExtractionOptions(enable_ai=not no_ai)
                )
            except (InvalidInputError, OSError, UnicodeDecodeError) as e:
                return path, None, str(e)
        if output is not None:
            try:
                (output / f"{path.stem}.json").write_text(_dump(response), encoding="utf-8")
            except OSError as e:
                return path, None, f"cannot write result: {e}"
        return path, response, None

    async def _batch() -> list[tuple[Path, ExtractionResponse | None, str | None]]:
        pipeline = get_extraction_pipeline(batch=True)
        semaphore = asyncio.Semaphore(concurrency)
        return await asyncio.gather(*(_run_one(pipeline, semaphore, f) for f in files))

    results = asyncio.run(_batch())

    failed = 0
    for path, response, error in results:
        if error is not None:
            failed += 1
            click.echo(f"FAIL {path.name}: {error}")
            continue
        data = response.data
        count = (
            len(data.dates) + len(data.parties) + len(data.amounts)
            + len(data.legal_clauses) + len(data.facts)
        )
        click.echo(
            f"OK   {path.name}: {response.metadata.extraction_method}, "
            f"{count} elements, confidence {data.confidence:.2f}"
        )

    click.echo("")
    click.echo(f"Processed {len(results)} files, {failed} failed")
    if failed:
        sys.exit(1)
