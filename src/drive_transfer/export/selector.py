"""Export selection — which representations a native document is transferred as."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from drive_transfer.hierarchy.resolver import safe_name
from drive_transfer.source.models import FOLDER_MIME_TYPE

logger = logging.getLogger(__name__)

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
ODT = "application/vnd.oasis.opendocument.text"
ODS = "application/x-vnd.oasis.opendocument.spreadsheet"
ODP = "application/vnd.oasis.opendocument.presentation"
PDF = "application/pdf"
PNG = "image/png"
SVG = "image/svg+xml"

# Native type -> export content types, in priority order. An empty tuple
# marks a container that is never transferred itself.
DEFAULT_EXPORTS: Mapping[str, tuple[str, ...]] = {
    FOLDER_MIME_TYPE: (),
    "application/vnd.google-apps.document": (DOCX, PDF),
    "application/vnd.google-apps.spreadsheet": (XLSX,),
    "application/vnd.google-apps.drawing": (PNG, SVG),
    "application/vnd.google-apps.presentation": (PPTX, PDF),
}

DEFAULT_EXTENSIONS: Mapping[str, str] = {
    DOCX: "docx",
    XLSX: "xlsx",
    PPTX: "pptx",
    ODT: "odt",
    ODS: "ods",
    ODP: "odp",
    PDF: "pdf",
    PNG: "png",
    SVG: "svg",
}


@dataclass(frozen=True)
class Representation:
    """One destination rendering of a source item.

    Attributes:
        content_type: Content type of the bytes that will be transferred.
        verbatim: True when the source bytes are copied unchanged.
        extension: Filename suffix (without dot) appended to exports, or "".
    """

    content_type: str
    verbatim: bool
    extension: str = ""


class ExportSelector:
    """Looks up the ordered representations for a native content type."""

    def __init__(
        self,
        exports: Mapping[str, Sequence[str]] = DEFAULT_EXPORTS,
        extensions: Mapping[str, str] = DEFAULT_EXTENSIONS,
    ) -> None:
        self._exports = {native: tuple(targets) for native, targets in exports.items()}
        self._extensions = dict(extensions)

    def is_container(self, native_type: str) -> bool:
        """True for types, such as folders, that are never transferred themselves."""
        return native_type in self._exports and not self._exports[native_type]

    def extension_for(self, content_type: str) -> str:
        """Return the filename extension for content_type, or "" if none is known."""
        return self._extensions.get(content_type, "")

    def representations(self, native_type: str) -> list[Representation]:
        """Return the representations an item of native_type is transferred as.

        Types missing from the export table are copied verbatim under their
        own content type. Container types return an empty list. Export
        targets without a known extension are skipped with a warning.
        """
        if native_type not in self._exports:
            return [Representation(content_type=native_type, verbatim=True)]
        representations: list[Representation] = []
        for target in self._exports[native_type]:
            extension = self.extension_for(target)
            if not extension:
                logger.warning(
                    "[representations] skipping export without extension;"
                    " native_type:%s;content_type:%s",
                    native_type,
                    target,
                )
                continue
            representations.append(
                Representation(content_type=target, verbatim=False, extension=extension)
            )
        return representations

    @staticmethod
    def filename_for(name: str, representation: Representation) -> str:
        """Return the destination filename for one representation of an item.

        The extension is appended only when the name does not already end
        with it, so renaming is idempotent.
        """
        filename = safe_name(name)
        if representation.verbatim or not representation.extension:
            return filename
        suffix = f".{representation.extension}"
        return filename if filename.endswith(suffix) else f"{filename}{suffix}"


def export_selector_from_overrides(overrides: Iterable[tuple[str, str]]) -> ExportSelector:
    """Construct an ExportSelector whose extension table includes overrides.

    Args:
        overrides: (content_type, extension) pairs, later pairs winning.

    Returns:
        ExportSelector using the default export table.
    """
    extensions = dict(DEFAULT_EXTENSIONS)
    extensions.update(overrides)
    return ExportSelector(DEFAULT_EXPORTS, extensions)
