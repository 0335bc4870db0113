"""CLI commands for vidagents using Typer and Rich.

Implements 3 CLI commands:
- agents: List registered video agents
- select: Show the agent and normalized config a request would get (no I/O)
- generate: Run a generation through the selected agent
"""

import asyncio
import json
import logging
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vidagents import validate_backend_urls
from vidagents.config import settings
from vidagents.errors import VideoAgentError
from vidagents.services.video_agent_manager import VideoAgentManager

app = typer.Typer(name="vidagents", help="Select and dispatch local video generation agents")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_extras(pairs: Optional[list[str]]) -> dict[str, Any]:
    """Parse repeated ``KEY=VALUE`` options; values are JSON when they parse as JSON."""
    extras: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            console.print(f"[red]Error:[/red] Expected KEY=VALUE, got {pair!r}")
            raise typer.Exit(code=1)
        try:
            extras[key] = json.loads(value)
        except json.JSONDecodeError:
            extras[key] = value
    return extras


def _build_settings(
    format: Optional[str],
    genre: Optional[str],
    quality: Optional[str],
    length: Optional[float],
    fps: Optional[float],
    resolution: Optional[str],
    aspect_ratio: Optional[str],
    audio: Optional[str],
    agent: Optional[str],
    extra: Optional[list[str]],
) -> dict[str, Any]:
    upm: dict[str, Any] = {
        "format": format,
        "genre": genre,
        "quality": quality,
        "length": length,
        "fps": fps,
        "resolution": resolution,
        "aspectRatio": aspect_ratio,
        "audio": audio,
        "agent": agent,
    }
    upm = {k: v for k, v in upm.items() if v is not None}
    upm.update(_parse_extras(extra))
    return upm


# Shared option declarations
_FORMAT = typer.Option(None, "--format", "-f", help="video or image")
_GENRE = typer.Option(None, "--genre", "-g", help="sfw or nsfw")
_QUALITY = typer.Option(None, "--quality", "-q", help="draft, high or ultra")
_LENGTH = typer.Option(None, "--length", "-l", help="Clip length in seconds")
_FPS = typer.Option(None, "--fps", help="Frames per second")
_RESOLUTION = typer.Option(None, "--resolution", "-r", help="WIDTHxHEIGHT, e.g. 1024x576")
_ASPECT = typer.Option(None, "--aspect-ratio", "-a", help="W:H, e.g. 16:9")
_AUDIO = typer.Option(None, "--audio", help="none, tts or music")
_AGENT = typer.Option(None, "--agent", help="auto or an agent key")
_SOURCE = typer.Option(None, "--source-image", "-i", help="Source image URL or data URI")
_EXTRA = typer.Option(None, "--extra", "-x", help="Extra setting KEY=VALUE (repeatable)")


@app.command()
def agents():
    """List registered video agents."""
    manager = VideoAgentManager.from_settings(settings)

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Key", style="dim")
    table.add_column("Label")
    table.add_column("Backend")

    backends = {
        "comfy-orchestrator": settings.backends.comfyui_url,
        "svd-local": settings.backends.stable_diffusion_url,
        "comfy-nsfw-pro": settings.backends.comfyui_url,
        "deforum-hub": settings.backends.deforum_url,
    }
    for descriptor in manager.list_agents():
        table.add_row(descriptor.key, descriptor.label, backends.get(descriptor.key, ""))
    console.print(table)


@app.command()
def select(
    prompt: str = typer.Argument(..., help="Generation prompt"),
    format: Optional[str] = _FORMAT,
    genre: Optional[str] = _GENRE,
    quality: Optional[str] = _QUALITY,
    length: Optional[float] = _LENGTH,
    fps: Optional[float] = _FPS,
    resolution: Optional[str] = _RESOLUTION,
    aspect_ratio: Optional[str] = _ASPECT,
    audio: Optional[str] = _AUDIO,
    agent: Optional[str] = _AGENT,
    source_image: Optional[str] = _SOURCE,
    extra: Optional[list[str]] = _EXTRA,
):
    """Show which agent a request would use and its normalized config.

    Does not contact any backend.
    """
    upm = _build_settings(format, genre, quality, length, fps, resolution, aspect_ratio, audio, agent, extra)
    manager = VideoAgentManager.from_settings(settings)
    try:
        key = manager.select_agent(upm)
        manager.get(key)
        config = manager.build_agent_config(prompt, upm, source_image)
    except (ValidationError, ValueError, VideoAgentError) as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    body = config.model_dump(by_alias=True, exclude={"raw"}, exclude_none=True)
    panel = Panel(
        json.dumps(body, indent=2),
        title=f"[bold]{key}[/bold] ({config.mode})",
        border_style="blue",
    )
    console.print(panel)


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Generation prompt"),
    format: Optional[str] = _FORMAT,
    genre: Optional[str] = _GENRE,
    quality: Optional[str] = _QUALITY,
    length: Optional[float] = _LENGTH,
    fps: Optional[float] = _FPS,
    resolution: Optional[str] = _RESOLUTION,
    aspect_ratio: Optional[str] = _ASPECT,
    audio: Optional[str] = _AUDIO,
    agent: Optional[str] = _AGENT,
    source_image: Optional[str] = _SOURCE,
    extra: Optional[list[str]] = _EXTRA,
    dry_run: bool = typer.Option(False, "--dry-run", help="Return placeholder media without contacting backends"),
):
    """Generate a video (or image) with the selected agent."""
    # Fail-fast backend URL validation
    try:
        validate_backend_urls(settings.backends.model_dump())
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    upm = _build_settings(format, genre, quality, length, fps, resolution, aspect_ratio, audio, agent, extra)
    run_settings = settings
    if dry_run:
        run_settings = settings.model_copy(
            update={"dispatch": settings.dispatch.model_copy(update={"dry_run": True})}
        )

    asyncio.run(_generate_async(run_settings, prompt, upm, source_image))


async def _generate_async(run_settings, prompt: str, upm: dict[str, Any], source_image: Optional[str]):
    """Async implementation of generate command."""
    manager = VideoAgentManager.from_settings(run_settings)
    try:
        with console.status(f"[bold green]Generating with {manager.select_agent(upm)}..."):
            result = await manager.generate_video(prompt, upm, source_image)
    except (ValidationError, ValueError, VideoAgentError) as e:
        console.print(f"[red]✗ Generation failed:[/red] {type(e).__name__}: {str(e)}")
        raise typer.Exit(code=1)
    finally:
        await manager.aclose()

    console.print(f"[green]✓[/green] Generated by [bold]{result.agent}[/bold]")
    console.print(f"[green]URL:[/green] {result.video_url}")
    if result.duration is not None:
        console.print(f"[green]Duration:[/green] {result.duration}s  [green]Audio:[/green] {result.has_audio}")
    if result.metadata:
        console.print_json(json.dumps(result.metadata))
