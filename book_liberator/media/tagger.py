"""
Reads tag metadata and artwork from decrypted audiobooks and embeds artwork
supplied after the fact.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import mutagen.id3 as id3
from mutagen.id3 import ID3NoHeaderError
from mutagen.mp4 import MP4, MP4Cover

log = logging.getLogger(__name__)

# MP4 atoms used by audiobook stores
MP4_TITLE, MP4_AUTHOR, MP4_NARRATOR, MP4_COVER = "\xa9nam", "\xa9ART", "\xa9nrt", "covr"
PNG_SIGNATURE = b"\x89PNG"


@dataclass(frozen=True)
class BookTags:
    title: Optional[str] = None
    author: Optional[str] = None
    narrator: Optional[str] = None


def _first(values) -> Optional[str]:
    if not values:
        return None
    value = values[0] if isinstance(values, list) else values
    return str(value) if value else None


def _image_mime(data: bytes) -> str:
    return "image/png" if data.startswith(PNG_SIGNATURE) else "image/jpeg"


class Tagger:
    """Tag access for M4B and MP3 output files."""

    @staticmethod
    def _is_mp3(filepath: str) -> bool:
        return filepath.lower().endswith(".mp3")

    def read_tags(self, filepath: str) -> BookTags:
        try:
            if self._is_mp3(filepath):
                audio = id3.ID3(filepath)
                return BookTags(
                    title=_first(audio.get("TIT2").text if "TIT2" in audio else None),
                    author=_first(audio.get("TPE1").text if "TPE1" in audio else None),
                    narrator=_first(audio.get("TCOM").text if "TCOM" in audio else None),
                )
            tags = MP4(filepath).tags or {}
            return BookTags(
                title=_first(tags.get(MP4_TITLE)),
                author=_first(tags.get(MP4_AUTHOR)),
                narrator=_first(tags.get(MP4_NARRATOR)),
            )
        except Exception as e:
            log.debug(f"Could not read tags from '{filepath}': {e}")
            return BookTags()

    def read_cover(self, filepath: str) -> Optional[bytes]:
        try:
            if self._is_mp3(filepath):
                frames = id3.ID3(filepath).getall("APIC")
                return bytes(frames[0].data) if frames else None
            covers = (MP4(filepath).tags or {}).get(MP4_COVER)
            return bytes(covers[0]) if covers else None
        except Exception as e:
            log.debug(f"Could not read cover art from '{filepath}': {e}")
            return None

    def embed_cover(self, filepath: str, data: bytes) -> bool:
        """Replaces any existing artwork with `data`."""
        try:
            if self._is_mp3(filepath):
                try:
                    audio = id3.ID3(filepath)
                except ID3NoHeaderError:
                    audio = id3.ID3()
                audio.delall("APIC")
                audio.add(
                    id3.APIC(encoding=3, mime=_image_mime(data), type=3, desc="Cover", data=data)
                )
                audio.save(filename=filepath, v2_version=3)
            else:
                audio = MP4(filepath)
                if audio.tags is None:
                    audio.add_tags()
                image_format = (
                    MP4Cover.FORMAT_PNG
                    if data.startswith(PNG_SIGNATURE)
                    else MP4Cover.FORMAT_JPEG
                )
                audio.tags[MP4_COVER] = [MP4Cover(data, imageformat=image_format)]
                audio.save()
            return True
        except Exception as e:
            log.error(
                f"Failed to embed cover art in '{filepath}': {e}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return False
