# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
HEIC to JPEG conversion with EXIF auto-orientation.

Conversion is delegated to an external tool (``sips`` on macOS, ImageMagick
elsewhere). After transcoding, the EXIF orientation of the new JPEG is read
and applied as a physical rotation, then reset to 1 so viewers that honor
EXIF do not rotate the image a second time. Mirror flips (orientations
2, 4, 5, 7) are not handled.
"""

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from PIL import Image

from .config import ConversionConfig
from .errors import ConversionFailure, SyncCancelled

logger = logging.getLogger(__name__)

# EXIF orientation -> clockwise rotation in degrees
ROTATION_FOR_ORIENTATION = {
    3: 180,  # Upside down
    6: 90,   # Rotated 90 CW (portrait, most common)
    8: 270,  # Rotated 90 CCW
}

EXIF_ORIENTATION_TAG = 0x0112

# How often a running subprocess is checked for cancellation
POLL_INTERVAL_SECONDS = 0.25


def rotation_for_orientation(orientation: int) -> int:
    """Rotation (degrees clockwise) that undoes an EXIF orientation; 0 for none."""
    return ROTATION_FOR_ORIENTATION.get(orientation, 0)


def partial_path_for(dest_path: str) -> str:
    """Hidden sibling path used while a conversion is in progress."""
    directory, name = os.path.split(dest_path)
    stem, ext = os.path.splitext(name)
    return os.path.join(directory, f".{stem}.partial{ext}")


@dataclass
class CommandResult:
    """Exit status and stdout of a finished tool invocation."""
    returncode: int
    stdout: str = ""


@dataclass
class ConversionResult:
    """Outcome of a single conversion."""
    converted: bool
    rotated: bool = False
    orientation: int = 1


class ImageConverter:
    """
    Converts one image into a display-friendly JPEG.

    Subclasses provide the actual tool invocations. Tests substitute their
    own implementation of ``convert``.
    """

    def convert(
        self,
        source_path: str,
        dest_path: str,
        cancel_event: Optional[threading.Event] = None
    ) -> ConversionResult:
        raise NotImplementedError


class CommandImageConverter(ImageConverter):
    """
    ImageConverter driven by short-lived external processes.

    Runs three to four commands per image: convert, read orientation,
    rotate (only for 3/6/8) and reset orientation (only when > 1).
    """

    def __init__(self, quality: int = 85, timeout: int = 300):
        """
        Args:
            quality: JPEG quality (1-100).
            timeout: Seconds before a single tool invocation is killed.
        """
        self.quality = quality
        self.timeout = timeout

    # -- tool specific ---------------------------------------------------

    def convert_command(self, source_path: str, dest_path: str) -> List[str]:
        raise NotImplementedError

    def rotate_command(self, path: str, degrees: int) -> List[str]:
        raise NotImplementedError

    def reset_orientation_command(self, path: str) -> List[str]:
        raise NotImplementedError

    def read_orientation(self, path: str, cancel_event: Optional[threading.Event] = None) -> int:
        raise NotImplementedError

    # -- process handling ------------------------------------------------

    def _run(self, args: List[str], cancel_event: Optional[threading.Event] = None) -> Optional[CommandResult]:
        """
        Run a tool and wait for it, honoring cancellation.

        Returns:
            CommandResult, or None if the process could not be started or
            timed out.

        Raises:
            SyncCancelled: If cancel_event is set while the process runs.
                The process is killed first.
        """
        logger.debug(f"Running: {' '.join(args)}")
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            logger.warning(f"Failed to start {args[0]}: {e}")
            return None

        deadline = time.monotonic() + self.timeout
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    process.kill()
                    process.communicate()
                    raise SyncCancelled(f"Cancelled while running {args[0]}")
                if time.monotonic() >= deadline:
                    process.kill()
                    process.communicate()
                    logger.warning(f"{args[0]} timed out after {self.timeout}s")
                    return None

        if process.returncode != 0:
            logger.debug(f"{args[0]} exited with {process.returncode}: {(stderr or '').strip()}")

        return CommandResult(returncode=process.returncode, stdout=stdout or "")

    # -- protocol --------------------------------------------------------

    def convert(
        self,
        source_path: str,
        dest_path: str,
        cancel_event: Optional[threading.Event] = None
    ) -> ConversionResult:
        """
        Convert source_path into a JPEG at dest_path and auto-orient it.

        The JPEG is built in a hidden ``.partial`` file next to dest_path
        and only renamed into place once every step has run, so an
        interrupted conversion never leaves a fresh-looking destination.

        Returns:
            ConversionResult; ``converted`` is False when the tool failed.

        Raises:
            SyncCancelled: If the run is cancelled mid-conversion.
            ConversionFailure: If the finished file cannot be moved into place.
        """
        partial_path = partial_path_for(dest_path)

        try:
            result = self._run(self.convert_command(source_path, partial_path), cancel_event)
            if result is None or result.returncode != 0 or not os.path.exists(partial_path):
                return ConversionResult(converted=False)

            orientation = self.read_orientation(partial_path, cancel_event)
            degrees = rotation_for_orientation(orientation)
            rotated = False

            if degrees:
                rotate_result = self._run(self.rotate_command(partial_path, degrees), cancel_event)
                rotated = rotate_result is not None and rotate_result.returncode == 0
                if not rotated:
                    logger.warning(f"Rotation by {degrees} failed for {source_path}")

            if orientation > 1:
                reset_result = self._run(self.reset_orientation_command(partial_path), cancel_event)
                if reset_result is None or reset_result.returncode != 0:
                    logger.warning(f"Orientation reset failed for {source_path}, viewers may rotate it again")

            try:
                os.replace(partial_path, dest_path)
            except OSError as e:
                raise ConversionFailure(f"Cannot move {partial_path} to {dest_path}: {e}") from e

            return ConversionResult(converted=True, rotated=rotated, orientation=orientation)

        finally:
            if os.path.exists(partial_path):
                try:
                    os.remove(partial_path)
                except OSError as e:
                    logger.warning(f"Failed to remove partial file {partial_path}: {e}")


class SipsConverter(CommandImageConverter):
    """Converter using macOS ``sips``."""

    name = "sips"

    def __init__(self, quality: int = 85, timeout: int = 300, binary: str = "/usr/bin/sips"):
        super().__init__(quality=quality, timeout=timeout)
        self.binary = binary

    def convert_command(self, source_path: str, dest_path: str) -> List[str]:
        return [
            self.binary,
            "-s", "format", "jpeg",
            "-s", "formatOptions", str(self.quality),
            source_path,
            "--out", dest_path,
        ]

    def rotate_command(self, path: str, degrees: int) -> List[str]:
        return [self.binary, "-r", str(degrees), path]

    def reset_orientation_command(self, path: str) -> List[str]:
        return [self.binary, "-s", "orientation", "1", path]

    def read_orientation(self, path: str, cancel_event: Optional[threading.Event] = None) -> int:
        """Read orientation via ``sips -g orientation``; 1 if absent or unparseable."""
        result = self._run([self.binary, "-g", "orientation", path], cancel_event)
        if result is None:
            return 1
        return parse_sips_orientation(result.stdout)


def parse_sips_orientation(output: str) -> int:
    """
    Parse ``sips -g orientation`` output.

    Output looks like::

        /path/to/file.jpg
          orientation: 6
    """
    for line in output.splitlines():
        trimmed = line.strip()
        if trimmed.lower().startswith("orientation:"):
            value = trimmed.split(":", 1)[1].strip()
            try:
                return int(value)
            except ValueError:
                return 1
    return 1


class ImageMagickConverter(CommandImageConverter):
    """
    Converter using ImageMagick 7 (``magick``), for Linux hosts.

    HEIC input needs ImageMagick built with libheif.
    """

    name = "imagemagick"

    def __init__(self, quality: int = 85, timeout: int = 300, binary: str = "magick"):
        super().__init__(quality=quality, timeout=timeout)
        self.binary = binary

    def convert_command(self, source_path: str, dest_path: str) -> List[str]:
        return [self.binary, source_path, "-quality", str(self.quality), dest_path]

    def rotate_command(self, path: str, degrees: int) -> List[str]:
        return [self.binary, "mogrify", "-rotate", str(degrees), path]

    def reset_orientation_command(self, path: str) -> List[str]:
        return [self.binary, "mogrify", "-orient", "top-left", path]

    def read_orientation(self, path: str, cancel_event: Optional[threading.Event] = None) -> int:
        return read_exif_orientation(path)


def read_exif_orientation(path: str) -> int:
    """Read the EXIF orientation of a JPEG with Pillow; 1 if absent or unreadable."""
    try:
        with Image.open(path) as img:
            value = img.getexif().get(EXIF_ORIENTATION_TAG)
    except Exception as e:
        logger.debug(f"Error reading EXIF orientation from {path}: {e}")
        return 1

    try:
        return int(value) if value is not None else 1
    except (TypeError, ValueError):
        return 1


CONVERTERS = {
    SipsConverter.name: SipsConverter,
    ImageMagickConverter.name: ImageMagickConverter,
}


def create_converter(config: ConversionConfig) -> CommandImageConverter:
    """Build the converter selected in the configuration."""
    converter_cls = CONVERTERS.get(config.tool)
    if converter_cls is None:
        raise ValueError(f"Unknown conversion tool: {config.tool}")

    logger.info(f"Using {converter_cls.name} for HEIC conversion (quality {config.quality})")
    return converter_cls(quality=config.quality, timeout=config.timeout_seconds)
