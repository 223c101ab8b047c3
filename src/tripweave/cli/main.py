"""
Command Line Interface for tripweave.

Generates stories, slideshow videos, photo books, privacy settings, and
photo and face analyses from a JSON export of a trip's photos. Input files
hold either a list of photos or an object
``{"photos": [...], "trip": {...}}``; results are printed as camelCase JSON,
or written to ``--output``.

Example:
    tripweave story lisbon.json --mood peaceful -o story.json
    tripweave --offline photobook lisbon.json --size large
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from tripweave import __version__
from tripweave.ai.batch import BatchAnalyzer, BatchProgress
from tripweave.ai.client import get_client
from tripweave.ai.faces import FacePipeline
from tripweave.ai.images import ImageLoader
from tripweave.ai.photo_book import (
    BookFormat,
    BookSize,
    PhotoBookPipeline,
    PhotoBookRequest,
    PhotoBookSettings,
    THEME_BACKGROUNDS,
)
from tripweave.ai.privacy import AnonymizationPipeline, SharingContext
from tripweave.ai.story import (
    StoryLanguage,
    StoryLength,
    StoryMood,
    StoryPipeline,
    StoryRequest,
    StorySettings,
    StoryStyle,
)
from tripweave.ai.video import (
    VideoPipeline,
    VideoQuality,
    VideoRequest,
    VideoSettings,
    VideoStyle,
    VideoTemplate,
)
from tripweave.ai.vision import VisionPipeline
from tripweave.config import (
    APIKeyInvalidError,
    APIKeyManager,
    AppConfig,
    ConfigError,
    load_config,
)
from tripweave.core.models import Photo, Trip
from tripweave.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Status output goes to stderr so stdout stays valid JSON
console = Console(stderr=True)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_header(text: str) -> None:
    console.print()
    console.print(Panel(text, style="bold blue", expand=False))


def print_success(text: str) -> None:
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[bold red]✗[/bold red] {text}")


def create_progress() -> Progress:
    """Create standard progress bar setup."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


def load_input(path: Path) -> tuple[list[Photo], Trip | None]:
    """Read photos (and an optional trip) from a JSON export.

    Exits with status 1 when the file is not valid JSON or the photos do not
    validate.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print_error(f"Cannot read {path}: {e}")
        sys.exit(1)

    if isinstance(raw, list):
        raw = {"photos": raw}
    if not isinstance(raw, dict):
        print_error(f"{path} must hold a list of photos or an object with a 'photos' list")
        sys.exit(1)

    try:
        photos = [Photo.model_validate(item) for item in raw.get("photos") or []]
        trip = Trip.model_validate(raw["trip"]) if raw.get("trip") else None
    except ValidationError as e:
        print_error(f"Invalid input in {path}: {e.error_count()} error(s)")
        for error in e.errors()[:5]:
            console.print(f"  {'.'.join(str(p) for p in error['loc'])}: {error['msg']}")
        sys.exit(1)

    return photos, trip


def write_output(payload: Any, output: Path | None) -> None:
    """Write camelCase JSON to ``output`` or stdout."""
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output is None:
        click.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    print_success(f"Saved to {output}")


def pipeline_options(ctx: click.Context) -> dict[str, Any]:
    """Client and image loader shared by every pipeline of one invocation."""
    if "pipeline_options" in ctx.obj:
        return ctx.obj["pipeline_options"]

    config: AppConfig = ctx.obj["config"]
    if ctx.obj["offline"]:
        options: dict[str, Any] = {"client": None}
    else:
        client = get_client(config)
        if not client.is_available():
            print_warning("Gemini is not configured; generating fallback content")
        options = {
            "client": client,
            "image_loader": ImageLoader(
                config.paths.uploads_dir, timeout_seconds=config.ai.timeout_seconds
            ),
        }

    ctx.obj["pipeline_options"] = options
    return options


output_option = click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write JSON here instead of stdout",
)

input_argument = click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))


def _values(enum_cls: Any) -> list[str]:
    return [member.value for member in enum_cls]


# =============================================================================
# MAIN CLI GROUP
# =============================================================================


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Custom config file",
)
@click.option("--offline", is_flag=True, help="Never call the remote model")
@click.version_option(__version__, prog_name="tripweave")
@click.pass_context
def cli(ctx, verbose, debug, config_path, offline):
    """
    tripweave - AI content for travel photo albums.

    Stories, slideshow videos, photo books and privacy settings from your
    trip photos. Without a Gemini key (or with --offline) every command still
    produces content, built locally.
    """
    config = load_config(config_path)

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    setup_logging(level=level, log_file=config.paths.log_dir / "tripweave.log" if debug else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["debug"] = debug
    ctx.obj["offline"] = offline


# =============================================================================
# GENERATION COMMANDS
# =============================================================================


@cli.command()
@input_argument
@click.option("--style", type=click.Choice(_values(StoryStyle)), default="narrative")
@click.option("--mood", type=click.Choice(_values(StoryMood)), default="adventurous")
@click.option("--length", type=click.Choice(_values(StoryLength)), default="medium")
@click.option("--language", type=click.Choice(_values(StoryLanguage)), default="english")
@click.option("--focus", "focus_points", multiple=True, help="Theme to emphasise (repeatable)")
@click.option("--prompt", "custom_prompt", help="Extra instructions for the writer")
@output_option
@click.pass_context
def story(ctx, input_file, style, mood, length, language, focus_points, custom_prompt, output):
    """
    Write a travel story from a trip's photos.

    Example:
        tripweave story lisbon.json --style diary --language french
    """
    photos, trip = load_input(input_file)
    request = StoryRequest(
        trip=trip,
        photos=photos,
        settings=StorySettings(
            style=style,
            mood=mood,
            length=length,
            language=language,
            focus_points=list(focus_points),
        ),
        custom_prompt=custom_prompt,
    )

    result = StoryPipeline(**pipeline_options(ctx)).generate(request)
    print_success(f"Story '{result.title}': {result.word_count} words, {result.reading_time} min read")
    write_output(result.to_dict(), output)


@cli.command()
@input_argument
@click.option("--title", default="My trip", help="Video title")
@click.option("--duration", type=click.FloatRange(min=1.0), default=30.0, help="Seconds")
@click.option("--quality", type=click.Choice(_values(VideoQuality)), default="1080p")
@click.option("--style", type=click.Choice(_values(VideoStyle)), default="cinematic")
@click.option("--no-music", is_flag=True, help="Leave the soundtrack out")
@output_option
@click.pass_context
def video(ctx, input_file, title, duration, quality, style, no_music, output):
    """
    Plan a slideshow video: photo order, timing and transitions.

    Example:
        tripweave video lisbon.json --duration 60 --style dynamic
    """
    photos, trip = load_input(input_file)
    request = VideoRequest(
        title=title,
        trip_id=trip.id if trip else None,
        photos=photos,
        settings=VideoSettings(duration=duration, quality=quality, include_music=not no_music),
        template=VideoTemplate(duration=duration, style=style),
    )

    result = VideoPipeline(**pipeline_options(ctx)).generate(request)
    print_success(
        f"Video planned: {len(result.timeline)} clips, {result.duration:g}s, {result.metadata.file_size}"
    )
    write_output(result.to_dict(), output)


@cli.command()
@input_argument
@click.option("--title", default="My trip", help="Book title")
@click.option("--subtitle", help="Book subtitle")
@click.option("--size", type=click.Choice(_values(BookSize)), default="medium")
@click.option("--format", "book_format", type=click.Choice(_values(BookFormat)), default="landscape")
@click.option("--theme", type=click.Choice(list(THEME_BACKGROUNDS)), default="minimal", help="Page colours")
@click.option("--include-map", is_flag=True, help="Add a map page when photos have GPS")
@click.option("--include-story", is_flag=True, help="Add a short story to each page")
@output_option
@click.pass_context
def photobook(
    ctx, input_file, title, subtitle, size, book_format, theme, include_map, include_story, output
):
    """
    Lay out a printable photo book.

    Example:
        tripweave photobook lisbon.json --size large --theme vintage --include-map
    """
    photos, trip = load_input(input_file)
    request = PhotoBookRequest(
        title=title,
        subtitle=subtitle,
        trip_id=trip.id if trip else None,
        format=book_format,
        size=size,
        theme=theme,
        photos=photos,
        settings=PhotoBookSettings(include_map=include_map, include_story=include_story),
    )

    result = PhotoBookPipeline(**pipeline_options(ctx)).generate(request)
    print_success(f"Photo book laid out: {result.total_pages} pages")
    write_output(result.to_dict(), output)


@cli.command("privacy-settings")
@click.argument("context", type=click.Choice(_values(SharingContext)))
@output_option
@click.pass_context
def privacy_settings(ctx, context, output):
    """
    Suggest anonymization settings for a sharing audience.

    Example:
        tripweave privacy-settings public
    """
    settings = AnonymizationPipeline(**pipeline_options(ctx)).suggest_settings(None, [], context)
    write_output(settings.to_dict(), output)


def run_batch(
    ctx: click.Context,
    input_file: Path,
    output: Path | None,
    make_worker: Callable[[dict[str, Any]], tuple[Callable[[Photo], Any], bool]],
    label: str,
) -> None:
    """Run a per-photo analysis over every photo of the input in batches."""
    photos, _ = load_input(input_file)
    if not photos:
        print_warning("No photos to analyze")
        write_output([], output)
        return

    config: AppConfig = ctx.obj["config"]
    worker, ai_available = make_worker(pipeline_options(ctx))
    # Nothing to rate-limit when no remote call can happen
    delay = config.batch.delay_seconds if ai_available else 0.0
    analyzer = BatchAnalyzer(batch_size=config.batch.batch_size, delay_seconds=delay)

    with create_progress() as progress:
        task = progress.add_task(f"{label}...", total=len(photos))

        def update_progress(p: BatchProgress) -> None:
            progress.update(task, completed=p.completed, description=p.to_status_line())

        results = analyzer.run(
            photos, worker, key=lambda photo: photo.id, progress_callback=update_progress
        )

    failed = sum(1 for r in results if not r.success)
    if failed:
        print_warning(f"{failed} of {len(results)} photos failed")
    else:
        print_success(f"{label}: {len(results)} photos done")

    write_output(
        [
            {
                "photoId": r.item_id,
                "success": r.success,
                "analysis": r.result.to_dict() if r.result is not None else None,
                "error": r.error,
            }
            for r in results
        ],
        output,
    )


@cli.command()
@input_argument
@output_option
@click.pass_context
def analyze(ctx, input_file, output):
    """
    Analyze every photo: objects, landmarks, food, mood and tags.

    Photos are processed in small concurrent batches with a pause between
    batches (see the ``batch`` config section).

    Example:
        tripweave analyze lisbon.json -o analysis.json
    """

    def make_worker(options: dict[str, Any]) -> tuple[Callable[[Photo], Any], bool]:
        vision = VisionPipeline(**options)
        return vision.analyze, vision.ai_available

    run_batch(ctx, input_file, output, make_worker, "Analyzing photos")


@cli.command()
@input_argument
@output_option
@click.pass_context
def faces(ctx, input_file, output):
    """
    Detect faces in every photo: boxes, landmarks, group size and mood.

    Uses the same batching as ``analyze``. No identity, gender or
    ethnicity is inferred.

    Example:
        tripweave faces album.json -o faces.json
    """

    def make_worker(options: dict[str, Any]) -> tuple[Callable[[Photo], Any], bool]:
        pipeline = FacePipeline(**options)
        return pipeline.detect, pipeline.ai_available

    run_batch(ctx, input_file, output, make_worker, "Detecting faces")


# =============================================================================
# CONFIG GROUP
# =============================================================================


@cli.group()
def config():
    """Manage configuration settings."""


@config.command()
@click.pass_context
def show(ctx):
    """Display current configuration."""
    cfg: AppConfig = ctx.obj["config"]
    manager = APIKeyManager()
    has_key = manager.get_key() is not None

    table = Table(title="Settings")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("ai.mode", cfg.ai.mode.value)
    table.add_row("ai.model_name", cfg.ai.model_name)
    table.add_row("ai.vision_model", cfg.ai.vision_model)
    table.add_row("ai.temperature", str(cfg.ai.temperature))
    table.add_row("ai.timeout_seconds", f"{cfg.ai.timeout_seconds:g}")
    table.add_row("batch.batch_size", str(cfg.batch.batch_size))
    table.add_row("batch.delay_seconds", f"{cfg.batch.delay_seconds:g}")
    table.add_row("paths.uploads_dir", str(cfg.paths.uploads_dir))
    table.add_row(
        "API key",
        f"[CONFIGURED] ({manager.get_key_source().value})" if has_key else "[NOT SET]",
    )

    console.print(table)


@config.command("set-key")
def set_key():
    """Store the Gemini API key in the system keyring."""
    print_header("Set Gemini API Key")

    api_key = click.prompt("Enter your Gemini API key", hide_input=True)
    try:
        APIKeyManager().store_key(api_key)
    except APIKeyInvalidError as e:
        print_error(str(e))
        sys.exit(1)
    except ConfigError as e:
        print_error(str(e))
        console.print("Set GEMINI_API_KEY in your environment instead.")
        sys.exit(1)

    print_success("API key stored in system keyring")


@config.command("clear-key")
@click.option("--force", is_flag=True, help="Skip confirmation")
def clear_key(force):
    """Remove the stored API key."""
    if not force and not click.confirm("Remove API key?", default=False):
        return

    try:
        APIKeyManager().delete_key()
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)

    print_success("API key removed")


def main():
    """Entry point for the console script."""
    cli()


if __name__ == "__main__":
    main()
