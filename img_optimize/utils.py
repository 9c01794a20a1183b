"""Utility functions for img-optimize.

Provides clipboard operations, output formatting and console helpers
for the CLI.
"""

import html
import json
from pathlib import Path

import pyperclip
from rich.console import Console

from .models import ProcessingResult


console = Console()

MIME_TYPES = {
    "webp": "image/webp",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "jxl": "image/jxl",
}

SUPPORTED_IMAGE_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.gif', '.webp',
    '.bmp', '.tiff', '.tif',
}


def copy_to_clipboard(text: str) -> bool:
    """Copy text to system clipboard.

    Args:
        text: Text to copy

    Returns:
        True if successful, False otherwise
    """
    try:
        pyperclip.copy(text)
        return True
    except pyperclip.PyperclipException:
        return False


def format_plain(result: ProcessingResult) -> str:
    """Format a manifest as newline-separated variant URLs."""
    return '\n'.join(v.url for v in result.variants)


def format_json(result: ProcessingResult) -> str:
    return json.dumps(result.to_dict(), indent=2)


def format_html(result: ProcessingResult, alt: str = "", sizes: str = "100vw") -> str:
    """Format a manifest as a responsive <picture> element.

    One <source> per format in srcset order; the <img> fallback points at
    the widest variant of the last format (typically JPEG).

    Args:
        result: Processing manifest
        alt: Alt text for the <img> element
        sizes: Value of the sizes attribute

    Returns:
        HTML markup
    """
    if not result.variants:
        return ""

    lines = ['<picture>']
    for fmt, srcset in result.srcset.items():
        mime = MIME_TYPES.get(fmt, f"image/{fmt}")
        lines.append(
            f'  <source type="{mime}" srcset="{html.escape(srcset)}" sizes="{html.escape(sizes)}">'
        )

    fallback_format = list(result.srcset)[-1]
    fallback = max(
        (v for v in result.variants if v.format == fallback_format),
        key=lambda v: v.width,
    )
    lines.append(
        f'  <img src="{html.escape(fallback.url)}" alt="{html.escape(alt)}" '
        f'width="{fallback.width}" height="{fallback.height}" loading="lazy">'
    )
    lines.append('</picture>')
    return '\n'.join(lines)


def format_output(result: ProcessingResult, format_type: str) -> str:
    """Format a manifest based on output format setting.

    Args:
        result: Processing manifest
        format_type: Output format (plain, json, html)

    Returns:
        Formatted output string
    """
    formatters = {
        'plain': format_plain,
        'json': format_json,
        'html': format_html,
    }

    formatter = formatters.get(format_type, format_plain)
    return formatter(result)


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if abs(size_bytes) < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}")


def is_supported_image(path: Path) -> bool:
    """Check if file is a supported image format.

    Args:
        path: Path to file

    Returns:
        True if supported image format
    """
    return path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
