"""Layered virtual file system.

Modules contribute embedded file sets (package resources shipped inside
``ingos_api/resources``). In development an embedded set can be replaced by
a physical directory so edits show up without reinstalling the package.
Lookups walk the sets newest first, so modules later in the initialization
order override files from their dependencies.
"""
from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from ingos_api.modules import ModuleDefinition

logger = logging.getLogger("ingos.virtual_files")

RESOURCES_PACKAGE = "ingos_api"
RESOURCES_DIR = "resources"
DEVELOPMENT_PHYSICAL_MODULES = ("domain_shared", "domain", "application_contracts", "application")


@dataclass(frozen=True)
class VirtualFile:
    path: str
    content: bytes
    # Read from a development directory; the content may change between reads.
    physical: bool = False

    @property
    def media_type(self) -> str:
        media_type, _ = mimetypes.guess_type(self.path)
        return media_type or "application/octet-stream"

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.content.decode(encoding)


@dataclass(frozen=True)
class FileSet:
    module: str
    root: Traversable | Path
    physical: bool = False

    def _locate(self, virtual_path: str) -> Traversable | Path | None:
        node = self.root
        for part in _split(virtual_path):
            if part in {"..", "."}:
                return None
            node = node.joinpath(part)
        return node

    def get_file(self, virtual_path: str) -> VirtualFile | None:
        node = self._locate(virtual_path)
        if node is None or not node.is_file():
            return None
        return VirtualFile(
            path="/" + "/".join(_split(virtual_path)),
            content=node.read_bytes(),
            physical=self.physical,
        )

    def list_directory(self, virtual_path: str) -> list[str]:
        node = self._locate(virtual_path)
        if node is None or not node.is_dir():
            return []
        return sorted(child.name for child in node.iterdir() if child.is_file())


def _split(virtual_path: str) -> list[str]:
    return [part for part in virtual_path.replace("\\", "/").split("/") if part]


class VirtualFileSystem:
    def __init__(self) -> None:
        self._file_sets: list[FileSet] = []

    @property
    def file_sets(self) -> list[FileSet]:
        return list(self._file_sets)

    @property
    def has_physical_files(self) -> bool:
        return any(file_set.physical for file_set in self._file_sets)

    def add_embedded(self, module: str, resource_dir: str) -> None:
        root = resources.files(RESOURCES_PACKAGE).joinpath(RESOURCES_DIR, resource_dir)
        self._file_sets.append(FileSet(module=module, root=root))

    def replace_embedded_by_physical(self, module: str, physical_path: Path) -> None:
        replaced = False
        for index, file_set in enumerate(self._file_sets):
            if file_set.module == module and not file_set.physical:
                self._file_sets[index] = FileSet(module=module, root=physical_path, physical=True)
                replaced = True
        if not replaced:
            self._file_sets.append(FileSet(module=module, root=physical_path, physical=True))
        logger.info("virtual_files_physical_override", extra={"path": str(physical_path)})

    def get_file(self, virtual_path: str) -> VirtualFile | None:
        for file_set in reversed(self._file_sets):
            found = file_set.get_file(virtual_path)
            if found is not None:
                return found
        return None

    def list_directory(self, virtual_path: str) -> list[str]:
        names: set[str] = set()
        for file_set in self._file_sets:
            names.update(file_set.list_directory(virtual_path))
        return sorted(names)


def configure_virtual_file_system(
    modules: list[ModuleDefinition],
    *,
    is_development: bool,
    content_root: Path,
) -> VirtualFileSystem:
    vfs = VirtualFileSystem()
    for module in modules:
        if module.resource_dir:
            vfs.add_embedded(module.name, module.resource_dir)

    if is_development:
        physical_root = content_root / RESOURCES_PACKAGE / RESOURCES_DIR
        resource_dirs = {m.name: m.resource_dir for m in modules if m.resource_dir}
        for module_name in DEVELOPMENT_PHYSICAL_MODULES:
            resource_dir = resource_dirs.get(module_name)
            if resource_dir:
                vfs.replace_embedded_by_physical(module_name, physical_root / resource_dir)
    return vfs
