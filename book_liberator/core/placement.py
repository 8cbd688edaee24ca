"""
Moves a decrypt run's output set from the scratch directory into the library.

Audio files are always moved last. Anyone watching a book directory can
therefore treat "audio file present" as "book complete": sidecars may show up
first, but the audio file only appears once everything else is in place.
"""

import logging
import shutil
from pathlib import Path

from book_liberator.media import cue
from book_liberator.models.book import AcquisitionItem
from book_liberator.models.status import PlacementResult
from book_liberator.storage.layout import StorageLayout
from book_liberator.utils.path import create_dir, get_valid_filename

log = logging.getLogger(__name__)


class FilePlacementEngine:
    """Relocates every file belonging to a product id into its final directory."""

    def __init__(self, layout: StorageLayout):
        self.layout = layout

    def get_product_files_sorted(self, product_id: str, audio_output: Path) -> list[Path]:
        """Files in the audio file's directory that belong to the product, audio last."""
        scratch_dir = Path(audio_output).parent
        if not scratch_dir.is_dir():
            return []

        needle = product_id.lower()
        files = sorted(
            f for f in scratch_dir.iterdir() if f.is_file() and needle in f.name.lower()
        )
        audio = [f for f in files if self.layout.is_audio_type(f)]
        others = [f for f in files if not self.layout.is_audio_type(f)]
        return others + audio

    def place(self, item: AcquisitionItem, audio_output: Path) -> PlacementResult:
        """
        Moves the output set of `item` into the library.

        Args:
            item: The item whose files are being moved.
            audio_output: Path of the audio file the decrypt engine produced; its
                directory is scanned for the rest of the output set.

        Returns:
            A PlacementResult. `audio_file_moved` is False when no audio file was
            found, even if sidecars were moved (those are left where they are).
        """
        destination_dir = self.layout.get_destination_dir(item.title, item.product_id)
        create_dir(destination_dir)

        audio_ext = Path(audio_output).suffix.lstrip(".")
        audio_dest = get_valid_filename(
            destination_dir, item.title, audio_ext, item.product_id
        )

        moved: list[Path] = []
        audio_file_moved = False
        for source in self.get_product_files_sorted(item.product_id, Path(audio_output)):
            is_audio = self.layout.is_audio_type(source)
            if is_audio:
                # Same as audio_dest for the first audio file; later ones get a counter
                dest = get_valid_filename(
                    destination_dir, item.title, source.suffix.lstrip("."), item.product_id
                )
            else:
                dest = get_valid_filename(
                    destination_dir,
                    item.title,
                    source.suffix.lstrip("."),
                    item.product_id,
                    audio_ext,
                )

            if dest.suffix.lower() == ".cue":
                cue.update_file_name(source, audio_dest.name)

            shutil.move(str(source), str(dest))
            log.debug(f"Moved '{source.name}' -> '{dest}'")
            moved.append(dest)
            audio_file_moved |= is_audio

        self.layout.refresh()

        if not audio_file_moved:
            log.warning(
                f"[yellow]No audio file for {item.product_id} found in "
                f"'{Path(audio_output).parent}'.[/yellow]"
            )
        return PlacementResult(destination_dir, audio_file_moved, tuple(moved))
