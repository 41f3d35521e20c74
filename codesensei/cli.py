"""CLI for CodeSensei - projects, workspace trees, and agent tasks."""

from __future__ import annotations

import json
from pathlib import Path

import click

from codesensei import __version__
from codesensei.schemas import FileNode


def _config_store():
    from codesensei.config import ConfigStore

    return ConfigStore()


def _project_store():
    from codesensei.config import default_projects_dir
    from codesensei.projects import ProjectStore

    return ProjectStore(default_projects_dir())


def _client():
    from codesensei.session_client import SessionClient

    return SessionClient.from_config(_config_store().load())


def _orchestrator():
    from codesensei.events import Notifier
    from codesensei.sagas import AgentOrchestrator
    from codesensei.session_client import SessionClient

    config = _config_store().load()
    return AgentOrchestrator(
        projects=_project_store(),
        client=SessionClient.from_config(config),
        config=config,
        notifier=Notifier(),
    )


def _fail(exc: Exception) -> click.ClickException:
    return click.ClickException(str(exc))


def _echo_tree(nodes: list[FileNode], indent: int = 0) -> None:
    for node in nodes:
        suffix = "/" if not node.is_file and not node.depth_limited else ""
        click.echo(f"{'  ' * indent}{node.name}{suffix}")
        if node.children:
            _echo_tree(node.children, indent + 1)


@click.group()
@click.version_option(version=__version__, prog_name="codesensei")
def main() -> None:
    """CodeSensei - delegate requirements and code generation to an agent server.

    Manage local projects and drive a remote OpenCode agent from the terminal.
    """
    pass


@main.command()
@click.option("--port", default=8000, help="Port to run the backend on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(port: int, host: str, reload: bool) -> None:
    """Start the CodeSensei HTTP backend."""
    import uvicorn

    click.echo(f"Starting CodeSensei backend on {host}:{port}")
    uvicorn.run(
        "codesensei.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
def mcp() -> None:
    """Run the MCP server exposing CodeSensei tools.

    \b
    Configure in .mcp.json:
        {
            "mcpServers": {
                "codesensei": {
                    "command": "codesensei",
                    "args": ["mcp"]
                }
            }
        }
    """
    from mcp_codesensei.server import mcp as mcp_server

    mcp_server.run()


# --- Agent server ---


@main.command()
def health() -> None:
    """Check the connection to the configured agent server."""
    from codesensei.sagas import AgentTaskError, check_connection

    client = _client()
    try:
        status = check_connection(client)
    except AgentTaskError as e:
        raise _fail(e)

    click.echo(f"Connected to {client.base_url} (version {status.version})")


@main.command()
def providers() -> None:
    """List the providers and models available on the agent server."""
    from codesensei.session_client import SessionClientError

    try:
        available = _client().available_providers()
    except SessionClientError as e:
        raise _fail(e)

    if not available:
        click.echo("No providers available.")
        return

    for provider in available:
        click.echo(f"{provider.id} ({provider.name or provider.display_name or provider.id})")
        for model_id in provider.model_ids():
            click.echo(f"  - {model_id}")


@main.command()
@click.argument("session_id")
@click.option("--limit", "-n", type=int, default=None, help="Only the most recent N messages")
@click.option("--raw", is_flag=True, help="Output raw JSON instead of text")
def messages(session_id: str, limit: int | None, raw: bool) -> None:
    """Show the messages of a session (poll an async task)."""
    from codesensei.session_client import SessionClientError

    try:
        result = _client().get_messages(session_id, limit)
    except SessionClientError as e:
        raise _fail(e)

    if raw:
        click.echo(json.dumps([m.model_dump() for m in result], indent=2))
        return

    if not result:
        click.echo("No messages yet.")
        return

    for message in result:
        status = f" [{message.info.status}]" if message.info.status else ""
        click.echo(f"--- {message.info.role or 'unknown'}{status} ---")
        click.echo(message.content)


# --- Configuration ---


@main.group()
def config() -> None:
    """Show or change the agent server configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Print the current configuration (password masked)."""
    store = _config_store()
    current = store.load()
    data = current.model_dump()
    if data["password"]:
        data["password"] = "********"
    click.echo(f"# {store.config_path}")
    click.echo(json.dumps(data, indent=2))


@config.command("set")
@click.option("--server-url", default=None, help="Agent server URL")
@click.option("--username", default=None, help="Basic auth user name")
@click.option("--password", default=None, help="Basic auth password")
@click.option("--provider", default=None, help="Default provider id")
@click.option("--model", default=None, help="Default model id")
def config_set(
    server_url: str | None,
    username: str | None,
    password: str | None,
    provider: str | None,
    model: str | None,
) -> None:
    """Update configuration fields.

    \b
    Example:
        codesensei config set --server-url http://localhost:4096
        codesensei config set --username opencode --password secret
    """
    if not any(v is not None for v in (server_url, username, password, provider, model)):
        raise click.UsageError("Nothing to update; pass at least one option")

    store = _config_store()
    if server_url is not None:
        store.update_server_url(server_url)
    if username is not None or password is not None:
        current = store.load()
        store.update_auth(username or current.username, password if password is not None else current.password)
    if provider is not None or model is not None:
        current = store.load()
        store.update_provider(
            provider if provider is not None else current.default_provider,
            model if model is not None else current.default_model,
        )

    click.echo(f"Configuration saved to {store.config_path}")


# --- Projects ---


@main.command()
def projects() -> None:
    """List local projects, newest first."""
    found = _project_store().list_projects()
    if not found:
        click.echo("No projects found. Run 'codesensei create' to add one.")
        return

    for project in found:
        root = f" -> {project.root_path}" if project.root_path else ""
        click.echo(f"  {project.id}  {project.name}{root}")


@main.command()
@click.argument("name")
@click.option("--description", "-d", default="", help="Project description")
@click.option(
    "--root",
    "root_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    help="Use an existing directory as the project root",
)
def create(name: str, description: str, root_path: str | None) -> None:
    """Create a project.

    \b
    Example:
        codesensei create todo-app -d "A small todo app"
        codesensei create legacy --root /path/to/repo
    """
    project = _project_store().create_project(name=name, description=description, root_path=root_path)
    click.echo(f"Created project '{project.name}' with id {project.id}")


@main.command()
@click.argument("project_id", required=False)
@click.option(
    "--dir",
    "-d",
    "directory",
    default=None,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    help="Scan a directory instead of a project",
)
@click.option("--max-depth", default=10, show_default=True, help="Directories deeper than this are not listed")
@click.option("--max-files", default=1000, show_default=True, help="Maximum number of files listed")
@click.option("--raw", is_flag=True, help="Output raw JSON instead of a tree")
def tree(
    project_id: str | None,
    directory: str | None,
    max_depth: int,
    max_files: int,
    raw: bool,
) -> None:
    """Show the bounded file tree of a project or directory.

    \b
    Example:
        codesensei tree 1718000000000
        codesensei tree --dir . --max-depth 3
    """
    from codesensei.projects import ProjectNotFoundError
    from codesensei.tree_scanner import count_files, scan_tree

    if directory is None and project_id is None:
        raise click.UsageError("Pass a PROJECT_ID or --dir")

    if directory is not None:
        root = Path(directory)
    else:
        store = _project_store()
        try:
            root = store.content_root(store.get_project(project_id))
        except ProjectNotFoundError as e:
            raise _fail(e)

    nodes = scan_tree(root, max_depth=max_depth, max_files=max_files)

    if raw:
        click.echo(json.dumps([n.model_dump(exclude_none=True) for n in nodes], indent=2))
        return

    click.echo(f"{root}")
    _echo_tree(nodes, indent=1)
    click.echo(f"\n{count_files(nodes)} files")


# --- Agent tasks ---


@main.command()
@click.argument("project_id")
@click.argument("user_input")
@click.option("--async", "run_async", is_flag=True, help="Return the session id instead of waiting")
def requirement(project_id: str, user_input: str, run_async: bool) -> None:
    """Create or update a project's requirement document with the agent.

    \b
    Example:
        codesensei requirement 1718000000000 "Add user login"
        codesensei requirement 1718000000000 "Add user login" --async
    """
    from codesensei.projects import ProjectStoreError
    from codesensei.sagas import AgentTaskError

    orchestrator = _orchestrator()
    try:
        if run_async:
            session_id = orchestrator.update_requirement_async(project_id, user_input)
            click.echo(f"Task started. Poll with: codesensei messages {session_id}")
            return
        response = orchestrator.update_requirement(project_id, user_input)
    except (AgentTaskError, ProjectStoreError, OSError) as e:
        raise _fail(e)

    click.echo(f"{response.message}: {response.file_modified}")


@main.command()
@click.argument("project_id")
@click.argument("user_input")
@click.option("--async", "run_async", is_flag=True, help="Return the session id instead of waiting")
def generate(project_id: str, user_input: str, run_async: bool) -> None:
    """Have the agent create or modify files in a project.

    \b
    Example:
        codesensei generate 1718000000000 "Implement the login form"
    """
    from codesensei.projects import ProjectStoreError
    from codesensei.sagas import AgentTaskError

    orchestrator = _orchestrator()
    try:
        if run_async:
            session_id = orchestrator.generate_code_async(project_id, user_input)
            click.echo(f"Task started. Poll with: codesensei messages {session_id}")
            return
        response = orchestrator.generate_code(project_id, user_input)
    except (AgentTaskError, ProjectStoreError, OSError) as e:
        raise _fail(e)

    click.echo(response.message or "Done (the agent returned no summary).")


if __name__ == "__main__":
    main()
