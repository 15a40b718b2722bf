"""MCP server implementation for jjzettel."""

import json
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from jjzettel.config import JjzettelConfig
from jjzettel.exceptions import JjzettelError
from jjzettel.models.schema import Note
from jjzettel.observability import metrics, timed_operation
from jjzettel.services.zettel_service import ZettelService

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _format_note_list(notes: List[Note], heading: str) -> str:
    if not notes:
        return f"{heading}: none"
    result = f"{heading} ({len(notes)}):\n"
    for i, note in enumerate(notes, 1):
        tags = f" #{' #'.join(note.tags)}" if note.tags else ""
        result += f"{i}. {note.title} (ID: {note.id}){tags}\n"
    return result


class JjzettelMcpServer:
    """MCP server exposing the jjzettel engine as tools."""

    def __init__(self, settings: Optional[JjzettelConfig] = None):
        """Initialize the MCP server.

        Args:
            settings: Engine configuration. Built from the environment when None.
        """
        self.settings = settings or JjzettelConfig()
        self.mcp = FastMCP(self.settings.server_name)
        self.zettel_service = ZettelService(settings=self.settings)
        self.initialize()
        self._register_tools()

    def initialize(self) -> None:
        """Initialize the knowledge base repository."""
        self.zettel_service.initialize()
        logger.info("jjzettel MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, JjzettelError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            stderr = error.details.get("stderr") or error.details.get("diagnostic")
            if stderr:
                return f"Error: {error.message}\n{stderr}"
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: {str(error)}"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="jz_create_note")
        def jz_create_note(title: str, content: str, tags: Optional[str] = None) -> str:
            """Create a new note.
            Args:
                title: The title of the note
                content: The main content of the note
                tags: Comma-separated list of tags (optional)
            """
            with timed_operation("jz_create_note", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    tag_list = []
                    if tags:
                        tag_list = [t.strip() for t in tags.split(",") if t.strip()]
                    note = self.zettel_service.create_note(title, content, tags=tag_list)
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_get_note")
        def jz_get_note(note_id: str, format: str = "summary") -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
                format: "summary" (default) or "markdown" for the export format
            """
            with timed_operation("jz_get_note", note_id=note_id) as op:
                try:
                    note = self.zettel_service.get_note(str(note_id))
                    if not note:
                        op["found"] = False
                        return f"Note not found: {note_id}"
                    op["found"] = True
                    if format == "markdown":
                        return self.zettel_service.export_note_to_markdown(note)

                    result = f"# {note.title}\n"
                    result += f"ID: {note.id}\n"
                    result += f"Created: {note.created_at}\n"
                    result += f"Updated: {note.updated_at}\n"
                    if note.tags:
                        result += f"Tags: {', '.join(note.tags)}\n"
                    for target_id, target in self.zettel_service.links.resolve_links(note):
                        label = target.title if target else "(missing)"
                        result += f"Link: {label} (ID: {target_id})\n"
                    result += f"\n{note.content}\n"
                    return result
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_update_note")
        def jz_update_note(note_id: str, content: str) -> str:
            """Replace the content of an existing note.
            Args:
                note_id: The ID of the note to update
                content: The new content
            """
            with timed_operation("jz_update_note", note_id=note_id) as op:
                try:
                    _validate_input_lengths(content=content)
                    note = self.zettel_service.update_note(str(note_id), content)
                    return f"Note updated successfully: {note.id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_delete_note")
        def jz_delete_note(note_id: str) -> str:
            """Delete a note.
            Args:
                note_id: The ID of the note to delete
            """
            with timed_operation("jz_delete_note", note_id=note_id) as op:
                try:
                    deleted = self.zettel_service.delete_note(str(note_id))
                    op["deleted"] = deleted
                    if not deleted:
                        return f"Note not found: {note_id}"
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_duplicate_note")
        def jz_duplicate_note(note_id: str) -> str:
            """Copy a note (content and tags, not links) under a new ID.
            Args:
                note_id: The ID of the note to copy
            """
            with timed_operation("jz_duplicate_note", note_id=note_id) as op:
                try:
                    copy = self.zettel_service.duplicate_note(str(note_id))
                    op["note_id"] = copy.id
                    return f"Note duplicated as '{copy.title}' with ID: {copy.id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_list_notes")
        def jz_list_notes() -> str:
            """List all notes, most recently updated first."""
            with timed_operation("jz_list_notes") as op:
                try:
                    notes = self.zettel_service.list_notes()
                    op["result_count"] = len(notes)
                    return _format_note_list(notes, "Notes")
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_search_notes")
        def jz_search_notes(query: str) -> str:
            """Search notes by title or content, or by tag with a '#' prefix.
            Args:
                query: Substring to look for, or '#tag'
            """
            with timed_operation("jz_search_notes", query=query[:30]) as op:
                try:
                    notes = self.zettel_service.search_notes(query)
                    op["result_count"] = len(notes)
                    return _format_note_list(notes, f"Results for '{query}'")
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_search_by_tag")
        def jz_search_by_tag(tag: str) -> str:
            """Find notes with a tag (case-insensitive).
            Args:
                tag: The tag to look for
            """
            with timed_operation("jz_search_by_tag", tag=tag) as op:
                try:
                    notes = self.zettel_service.search_by_tag(tag)
                    op["result_count"] = len(notes)
                    return _format_note_list(notes, f"Notes tagged '{tag}'")
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_add_tag")
        def jz_add_tag(note_id: str, tag: str) -> str:
            """Add a tag to a note.
            Args:
                note_id: The ID of the note
                tag: The tag to add
            """
            with timed_operation("jz_add_tag", note_id=note_id) as op:
                try:
                    note = self.zettel_service.add_tag(str(note_id), tag.strip())
                    return f"Tags of {note.id}: {', '.join(note.tags)}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_remove_tag")
        def jz_remove_tag(note_id: str, tag: str) -> str:
            """Remove a tag from a note.
            Args:
                note_id: The ID of the note
                tag: The tag to remove (any casing)
            """
            with timed_operation("jz_remove_tag", note_id=note_id) as op:
                try:
                    note = self.zettel_service.remove_tag(str(note_id), tag.strip())
                    remaining = ", ".join(note.tags) if note.tags else "none"
                    return f"Tags of {note.id}: {remaining}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_link_notes")
        def jz_link_notes(source_id: str, target_id: str) -> str:
            """Link one note to another.
            Args:
                source_id: The note that gets the link
                target_id: The note being linked to
            """
            with timed_operation("jz_link_notes", source_id=source_id) as op:
                try:
                    self.zettel_service.link_notes(str(source_id), str(target_id))
                    return f"Linked {source_id} -> {target_id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_unlink_notes")
        def jz_unlink_notes(source_id: str, target_id: str) -> str:
            """Remove a link between two notes.
            Args:
                source_id: The note holding the link
                target_id: The linked note
            """
            with timed_operation("jz_unlink_notes", source_id=source_id) as op:
                try:
                    self.zettel_service.unlink_notes(str(source_id), str(target_id))
                    return f"Unlinked {source_id} -> {target_id}"
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_get_backlinks")
        def jz_get_backlinks(note_id: str) -> str:
            """List the notes that link to a note.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("jz_get_backlinks", note_id=note_id) as op:
                try:
                    notes = self.zettel_service.get_backlinks(str(note_id))
                    op["result_count"] = len(notes)
                    return _format_note_list(notes, f"Backlinks of {note_id}")
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_find_orphans")
        def jz_find_orphans() -> str:
            """List notes that neither link to nor are linked from any other note."""
            with timed_operation("jz_find_orphans") as op:
                try:
                    notes = self.zettel_service.find_orphaned_notes()
                    op["result_count"] = len(notes)
                    return _format_note_list(notes, "Orphaned notes")
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_note_history")
        def jz_note_history(note_id: str, limit: int = 20) -> str:
            """Get the revision history of a note, newest first.
            Args:
                note_id: The ID of the note
                limit: Maximum number of revisions to return (default: 20)
            """
            with timed_operation("jz_note_history", note_id=note_id) as op:
                try:
                    history = self.zettel_service.get_note_history(str(note_id), limit)
                    op["version_count"] = len(history)
                    if not history:
                        return (
                            f"No revision history found for note '{note_id}'. "
                            "Save the note at least once."
                        )
                    result = f"# Revision History for {note_id}\n\n"
                    result += "| Revision | Message | Author | Timestamp |\n"
                    result += "|---|---|---|---|\n"
                    for entry in history:
                        result += (
                            f"| {entry.revision_id} | {entry.message} "
                            f"| {entry.author} | {entry.timestamp} |\n"
                        )
                    return result
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_statistics")
        def jz_statistics() -> str:
            """Get statistics about the knowledge base."""
            with timed_operation("jz_statistics") as op:
                try:
                    stats = self.zettel_service.get_statistics()
                    return (
                        "Knowledge Base Statistics\n\n"
                        f"Total Notes: {stats.total_notes}\n"
                        f"Total Links: {stats.total_links}\n"
                        f"Total Tags: {stats.total_tags}\n"
                        f"Unique Tags: {stats.unique_tags_count}\n\n"
                        f"Average links per note: {stats.avg_links_per_note:.2f}\n"
                        f"Average tags per note: {stats.avg_tags_per_note:.2f}\n"
                    )
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_export_note")
        def jz_export_note(note_id: str) -> str:
            """Export a note as Markdown.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("jz_export_note", note_id=note_id) as op:
                try:
                    note = self.zettel_service.get_note(str(note_id))
                    if not note:
                        return f"Note not found: {note_id}"
                    return self.zettel_service.export_note_to_markdown(note)
                except Exception as e:
                    op["error"] = str(e)
                    return self.format_error_response(e)

        @self.mcp.tool(name="jz_server_metrics")
        def jz_server_metrics() -> str:
            """Get per-tool and per-jj-subcommand timing and error counts."""
            return json.dumps(
                {
                    "summary": metrics.get_summary(),
                    "operations": metrics.get_metrics(),
                    "backend": metrics.get_backend_metrics(),
                },
                indent=2,
            )

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
