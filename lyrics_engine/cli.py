"""
Command-line interface for lyrics-engine.

Every command builds the engine, sends one command message through the
dispatcher and prints the JSON response. A failed response exits with
status 1.

Commands:
    lyrics-engine fetch <title> <artist>                Fetch lyrics
    lyrics-engine translate <title> <artist>            Translate or romanize lyrics
    lyrics-engine display <title> <artist> --mode both  Merged lyrics as a player shows them
    lyrics-engine reset-cache                           Clear lyrics and translation caches
    lyrics-engine cache-size                            Show cache size
    lyrics-engine local upload <title> <artist> <file>  Upload lyrics from a JSON file
    lyrics-engine local list                            List uploaded lyrics
    lyrics-engine local show <song-id>                  Show uploaded lyrics
    lyrics-engine local update <song-id> <file>         Replace uploaded lyrics
    lyrics-engine local delete <song-id>                Delete uploaded lyrics

Options:
    --config <path>     Path to config.yaml (default: ./config.yaml if present)

Usage:
    lyrics-engine fetch "Lemon" "Kenshi Yonezu" --album "Lemon" --duration 255
    lyrics-engine translate "Lemon" "Kenshi Yonezu" --action romanize
    lyrics-engine translate "Lemon" "Kenshi Yonezu" --target it
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "cli": [
        {
            "name": "Lyrics",
            "commands": ["fetch", "translate", "display"],
        },
        {
            "name": "Cache",
            "commands": ["reset-cache", "cache-size", "local"],
        },
    ],
}

from lyrics_engine.app import open_engine
from lyrics_engine.commands import CommandKind
from lyrics_engine.core import (
    CONFIG_FILENAME,
    Config,
    ConfigError,
    LyricsEngineError,
    StoreError,
    get_logger,
    load_config,
    parse_config,
    setup_logging,
    shutdown_logging,
)
from lyrics_engine.core.models import SongIdentity
from lyrics_engine.session import DISPLAY_MODES

logger = get_logger(__name__)


# Version string (if updated, update also in setup.py)
__version__ = "0.1.0"


def _load_configuration(config_path: Optional[Path]) -> Config:
    """
    Load config.yaml, or defaults when no file was given and none exists.

    An explicit --config path that does not exist is an error.
    """
    if config_path is None and not (Path.cwd() / CONFIG_FILENAME).exists():
        return parse_config({})
    return load_config(config_path)


def _song_info(
    title: str,
    artist: str,
    album: str = "",
    duration: Optional[float] = None,
    video_id: Optional[str] = None,
) -> dict[str, Any]:
    return SongIdentity(title=title, artist=artist, album=album, duration=duration, video_id=video_id).to_dict()


def _read_lyrics_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e.msg}") from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


async def _dispatch(config: Config, message: dict[str, Any]) -> dict[str, Any]:
    async with open_engine(config) as engine:
        return await engine.dispatcher.dispatch(message)


def _run(ctx: click.Context, message: dict[str, Any]) -> None:
    """
    Send one command and print its response.

    Exit codes:
        0: Success
        1: Failed response or configuration error
        2: Cache database error
        4: Other engine error
        130: Interrupted
    """
    config: Config = ctx.obj["config"]

    try:
        response = asyncio.run(_dispatch(config, message))

    except StoreError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except LyricsEngineError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    _echo_json(response)
    if not response.get("success"):
        sys.exit(1)


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Path to config.yaml"
)
@click.version_option(__version__, prog_name="lyrics-engine")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """
    lyrics-engine: cached synced lyrics with translation and romanization.

    \b
    BASIC USAGE:
        lyrics-engine fetch "Title" "Artist"
        lyrics-engine translate "Title" "Artist" --target en
        lyrics-engine translate "Title" "Artist" --action romanize

    \b
    LOCAL LYRICS:
        lyrics-engine local upload "Title" "Artist" lyrics.json
        lyrics-engine local list
    """
    try:
        config = _load_configuration(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    setup_logging(config.logging.directory, config.logging.level)
    ctx.call_on_close(shutdown_logging)
    ctx.obj = {"config": config}


def song_options(func):
    """Shared --album/--duration options for song commands."""
    func = click.option("--duration", type=float, default=None, help="Track duration in seconds")(func)
    func = click.option("--album", type=str, default="", help="Album name")(func)
    return func


@cli.command()
@click.argument("title")
@click.argument("artist")
@song_options
@click.option("--video-id", type=str, default=None, help="Video id, enables the caption fallback")
@click.option("--force", is_flag=True, help="Bypass every cache")
@click.pass_context
def fetch(
    ctx: click.Context,
    title: str,
    artist: str,
    album: str,
    duration: Optional[float],
    video_id: Optional[str],
    force: bool
) -> None:
    """Fetch lyrics for a song."""
    _run(ctx, {
        "type": CommandKind.FETCH_LYRICS.value,
        "song_info": _song_info(title, artist, album, duration, video_id),
        "force_reload": force,
    })


@cli.command()
@click.argument("title")
@click.argument("artist")
@song_options
@click.option(
    "--action",
    type=click.Choice(["translate", "romanize"]),
    default="translate",
    show_default=True,
    help="Transformation to apply"
)
@click.option("--target", "target_lang", type=str, default="en", show_default=True, help="Target language")
@click.option("--force", is_flag=True, help="Bypass every cache")
@click.pass_context
def translate(
    ctx: click.Context,
    title: str,
    artist: str,
    album: str,
    duration: Optional[float],
    action: str,
    target_lang: str,
    force: bool
) -> None:
    """Translate or romanize lyrics for a song."""
    _run(ctx, {
        "type": CommandKind.TRANSLATE_LYRICS.value,
        "song_info": _song_info(title, artist, album, duration),
        "action": action,
        "target_lang": target_lang,
        "force_reload": force,
    })


@cli.command()
@click.argument("title")
@click.argument("artist")
@song_options
@click.option(
    "--mode",
    type=click.Choice(list(DISPLAY_MODES)),
    default="both",
    show_default=True,
    help="Display mode"
)
@click.option("--target", "target_lang", type=str, default="en", show_default=True, help="Target language")
@click.pass_context
def display(
    ctx: click.Context,
    title: str,
    artist: str,
    album: str,
    duration: Optional[float],
    mode: str,
    target_lang: str
) -> None:
    """Show lyrics merged with translation and romanization."""
    config: Config = ctx.obj["config"]
    song = SongIdentity(title=title, artist=artist, album=album, duration=duration)

    async def load():
        async with open_engine(config) as engine:
            return await engine.session.load(song, mode, target_lang)

    try:
        result = asyncio.run(load())
    except LyricsEngineError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(4)

    if result is None:
        click.echo("No lyrics found", err=True)
        sys.exit(1)

    _echo_json({"mode": result.mode, "lyrics": result.lyrics.to_dict()})


@cli.command("reset-cache")
@click.pass_context
def reset_cache(ctx: click.Context) -> None:
    """Clear the lyrics and translation caches (uploaded lyrics are kept)."""
    _run(ctx, {"type": CommandKind.RESET_CACHE.value})


@cli.command("cache-size")
@click.pass_context
def cache_size(ctx: click.Context) -> None:
    """Show the size of the lyrics and translation caches."""
    _run(ctx, {"type": CommandKind.GET_CACHED_SIZE.value})


# =============================================================================
# Local Lyrics
# =============================================================================

@cli.group()
def local() -> None:
    """Manage user-uploaded lyrics."""


@local.command("upload")
@click.argument("title")
@click.argument("artist")
@click.argument("lyrics_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@song_options
@click.pass_context
def local_upload(
    ctx: click.Context,
    title: str,
    artist: str,
    lyrics_file: Path,
    album: str,
    duration: Optional[float]
) -> None:
    """Upload lyrics from a JSON file."""
    _run(ctx, {
        "type": CommandKind.UPLOAD_LOCAL_LYRICS.value,
        "song_info": _song_info(title, artist, album, duration),
        "json_lyrics": _read_lyrics_file(lyrics_file),
    })


@local.command("list")
@click.pass_context
def local_list(ctx: click.Context) -> None:
    """List uploaded lyrics."""
    _run(ctx, {"type": CommandKind.GET_LOCAL_LYRICS_LIST.value})


@local.command("show")
@click.argument("song_id")
@click.pass_context
def local_show(ctx: click.Context, song_id: str) -> None:
    """Show uploaded lyrics."""
    _run(ctx, {"type": CommandKind.FETCH_LOCAL_LYRICS.value, "song_id": song_id})


@local.command("delete")
@click.argument("song_id")
@click.pass_context
def local_delete(ctx: click.Context, song_id: str) -> None:
    """Delete uploaded lyrics."""
    _run(ctx, {"type": CommandKind.DELETE_LOCAL_LYRICS.value, "song_id": song_id})


@local.command("update")
@click.argument("song_id")
@click.argument("lyrics_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def local_update(ctx: click.Context, song_id: str, lyrics_file: Path) -> None:
    """Replace uploaded lyrics with the contents of a JSON file."""
    _run(ctx, {
        "type": CommandKind.UPDATE_LOCAL_LYRICS.value,
        "song_id": song_id,
        "json_lyrics": _read_lyrics_file(lyrics_file),
    })


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `lyrics-engine` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
