"""Local project store: metadata, documents, and source files."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from pydantic import ValidationError

from codesensei.schemas import DocumentKind, FileNode, Project
from codesensei.tree_scanner import scan_tree

logger = logging.getLogger(__name__)

PROJECT_META_FILE = "project.json"
REQUIREMENT_FILE = "requirement.md"
DEFAULT_SOURCE_DIR = "src"
DEFAULT_DOCS_DIR = "docs"

INITIAL_REQUIREMENT_TEMPLATE = """# {name} Requirements

## Project Description
{description}

## Functional Requirements

## Tech Stack

"""


class ProjectStoreError(Exception):
    """Raised when project metadata cannot be read or parsed."""

    pass


class ProjectNotFoundError(ProjectStoreError):
    """Raised when a project id has no metadata on disk."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class InvalidPathError(ValueError):
    """Raised when a relative path escapes the project content root."""

    pass


class ProjectStore:
    """Projects stored as ``<projects_dir>/<id>/project.json``."""

    def __init__(self, projects_dir: Path | str):
        self.projects_dir = Path(projects_dir)
        self.projects_dir.mkdir(parents=True, exist_ok=True)

    # --- Metadata ---

    def project_dir(self, project_id: str) -> Path:
        """Application-side directory of a project."""
        return self.projects_dir / project_id

    def _read_meta(self, meta_file: Path) -> Project:
        try:
            return Project.model_validate_json(meta_file.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise ProjectStoreError(f"Failed to parse {meta_file}: {e}") from e

    def list_projects(self) -> list[Project]:
        """All projects, newest first."""
        projects = []
        for path in self.projects_dir.iterdir():
            meta_file = path / PROJECT_META_FILE
            if path.is_dir() and meta_file.exists():
                projects.append(self._read_meta(meta_file))

        projects.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return projects

    def get_project(self, project_id: str) -> Project:
        """Load one project's metadata."""
        meta_file = self.project_dir(project_id) / PROJECT_META_FILE
        if not meta_file.exists():
            raise ProjectNotFoundError(project_id)
        return self._read_meta(meta_file)

    def create_project(
        self,
        name: str,
        description: str = "",
        root_path: str | None = None,
    ) -> Project:
        """Create a project.

        Without an external ``root_path`` the project gets its own ``src`` and
        ``docs`` directories and a starter requirement document.
        """
        project_id = self._new_project_id()
        project_dir = self.project_dir(project_id)
        project_dir.mkdir(parents=True, exist_ok=False)

        if root_path is None:
            (project_dir / DEFAULT_SOURCE_DIR).mkdir()
            (project_dir / DEFAULT_DOCS_DIR).mkdir()

        now = int(time.time())
        project = Project(
            id=project_id,
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
            root_path=root_path,
        )
        self._save_meta(project)

        if root_path is None:
            (project_dir / REQUIREMENT_FILE).write_text(
                INITIAL_REQUIREMENT_TEMPLATE.format(name=name, description=description),
                encoding="utf-8",
            )

        logger.info(f"Created project {project_id} ({name})")
        return project

    def _new_project_id(self) -> str:
        # Millisecond timestamp, bumped past any existing directory
        candidate = time.time_ns() // 1_000_000
        while self.project_dir(str(candidate)).exists():
            candidate += 1
        return str(candidate)

    def _save_meta(self, project: Project) -> None:
        meta_file = self.project_dir(project.id) / PROJECT_META_FILE
        meta_file.write_text(project.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")

    def delete_project(self, project_id: str) -> None:
        """Remove a project's application directory (external roots are untouched)."""
        project_dir = self.project_dir(project_id)
        if project_dir.exists():
            shutil.rmtree(project_dir)
            logger.info(f"Deleted project {project_id}")

    # --- Roots ---

    def workspace_root(self, project: Project) -> Path:
        """Where the agent works: the external root or the project directory."""
        if project.root_path:
            return Path(project.root_path)
        return self.project_dir(project.id)

    def content_root(self, project: Project) -> Path:
        """Root of the browsable source tree: the external root or ``src``."""
        if project.root_path:
            return Path(project.root_path)
        return self.project_dir(project.id) / DEFAULT_SOURCE_DIR

    def requirement_path(self, project: Project) -> Path:
        """Location of the project's requirement document."""
        return self.workspace_root(project) / REQUIREMENT_FILE

    def read_requirement(self, project: Project) -> str:
        """Current requirement text, empty when the document does not exist."""
        path = self.requirement_path(project)
        if not path.exists():
            return ""
        return path.read_text(encoding="utf-8")

    def write_requirement(self, project: Project, content: str) -> Path:
        """Overwrite the requirement document, creating parent directories."""
        path = self.requirement_path(project)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    # --- Documents ---

    def _document_path(self, project_id: str, kind: DocumentKind) -> Path:
        project = self.get_project(project_id)
        if kind is DocumentKind.REQUIREMENT:
            return self.requirement_path(project)
        return self.project_dir(project_id) / kind.filename

    def read_document(self, project_id: str, kind: DocumentKind) -> str:
        """Read a project document; missing documents read as empty."""
        path = self._document_path(project_id, kind)
        if not path.exists():
            return ""
        return path.read_text(encoding="utf-8")

    def write_document(self, project_id: str, kind: DocumentKind, content: str) -> None:
        """Overwrite a project document."""
        path = self._document_path(project_id, kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    # --- Source Files ---

    def list_files(self, project_id: str) -> list[FileNode]:
        """Bounded tree of the project's content root; empty if anything is missing."""
        try:
            project = self.get_project(project_id)
        except ProjectNotFoundError:
            return []
        return scan_tree(self.content_root(project))

    def resolve(self, project_id: str, relative_path: str) -> Path:
        """Resolve a path under the content root, rejecting traversal."""
        root = self.content_root(self.get_project(project_id)).resolve()
        resolved = (root / relative_path).resolve()
        if resolved != root and root not in resolved.parents:
            raise InvalidPathError(f"Path escapes project root: {relative_path}")
        return resolved

    def read_source(self, project_id: str, relative_path: str) -> str:
        return self.resolve(project_id, relative_path).read_text(encoding="utf-8")

    def write_source(self, project_id: str, relative_path: str, content: str) -> None:
        """Create or overwrite a source file, creating parent directories."""
        path = self.resolve(project_id, relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def create_folder(self, project_id: str, relative_path: str) -> None:
        self.resolve(project_id, relative_path).mkdir(parents=True, exist_ok=True)

    def delete_entry(self, project_id: str, relative_path: str) -> None:
        """Delete a file or a whole directory."""
        path = self.resolve(project_id, relative_path)
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()

    def rename_entry(self, project_id: str, old_path: str, new_path: str) -> None:
        source = self.resolve(project_id, old_path)
        target = self.resolve(project_id, new_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)

    def move_entry(self, project_id: str, source_path: str, target_path: str) -> None:
        """Move an entry to a new path; falls back to copy-and-delete across filesystems.

        Raises:
            FileExistsError: If the target already exists
        """
        source = self.resolve(project_id, source_path)
        target = self.resolve(project_id, target_path)
        if target.exists():
            raise FileExistsError(f"Target already exists: {target_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
