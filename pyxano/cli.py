"""CLI interface for syncing Xano workspaces."""

import json as json_lib
import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import XanoClient
from .config import config
from .exceptions import (
    AmbiguousRouteError,
    DatasourcePermissionError,
    RouteResolutionError,
    XanoAPIError,
    XanoConfigError,
    XanoError,
)
from .models import FileStatus, ObjectKind
from .naming import API_GROUP_FILENAME, DEFAULT_PATHS, detect_naming_mode
from .output import OutputFormatter
from .permissions import (
    Operation,
    check_datasource_permission,
    format_datasource_name,
)
from .project import (
    CONFIG_JSON,
    ProjectSettings,
    find_project_root,
    load_local_config,
    load_project_settings,
    metadata_path,
    save_local_config,
)
from .routes import RouteMatcher, normalize_route_path, resolve_canonical
from .search_index import SearchIndex
from .sync.scanner import DirectoryScanner

logger = logging.getLogger(__name__)

HTTP_VERBS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _load_settings(ctx: Any, out: OutputFormatter) -> ProjectSettings:
    """Load the settings of the project containing the current directory."""
    root = find_project_root()
    if root is None:
        out.error("Not inside a Xano project.")
        out.info("Run 'pyxano init' to set up the current directory")
        ctx.exit(1)
    try:
        return load_project_settings(root)
    except XanoConfigError as e:
        out.error(str(e))
        ctx.exit(1)


def _create_client(ctx: Any, out: OutputFormatter, settings: ProjectSettings) -> XanoClient:
    if not config.is_configured():
        out.error("Xano credentials not configured.")
        out.info("Run 'pyxano init' or set XANO_API_KEY and XANO_INSTANCE_ORIGIN")
        ctx.exit(1)
    try:
        return XanoClient(
            workspace_id=settings.workspace_id,
            branch=settings.branch or None,
        )
    except XanoConfigError as e:
        out.error(str(e))
        ctx.exit(1)


def _create_engine(ctx: Any, settings: ProjectSettings, client: XanoClient) -> Any:
    from .sync import SyncEngine

    return SyncEngine(
        settings,
        client=client,
        output=ctx.obj["out"],
        max_workers=ctx.obj.get("workers", 4),
    )


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--workers",
    "-j",
    type=int,
    default=4,
    show_default=True,
    help="Number of collections fetched concurrently",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pyxano")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, workers: int, verbose: bool) -> None:
    """pyxano - Sync Xano workspaces with local XanoScript files."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["workers"] = max(1, workers)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyxano").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--api-key", "-k", prompt="Enter your Xano access token", hide_input=True)
@click.option(
    "--instance",
    "-i",
    prompt="Enter your Xano instance URL",
    help="Instance origin, e.g. https://x8ki-letl-twmt.n7.xano.io",
)
@click.option("--workspace-id", "-w", type=int, prompt="Enter the workspace ID")
@click.option("--branch", "-b", default="", help="Branch label (default: live branch)")
@click.pass_context
def init(
    ctx: Any, api_key: str, instance: str, workspace_id: int, branch: str
) -> None:
    """Initialize credentials and a project in the current directory.

    Stores the access token in ~/.config/pyxano/config and writes
    .xano/config.json unless the directory already holds a project. Files
    already laid out by the VS Code extension keep their naming mode.
    """
    out: OutputFormatter = ctx.obj["out"]
    instance = instance.rstrip("/")

    out.info("Validating access token...")
    try:
        client = XanoClient(
            api_key=api_key,
            instance_origin=instance,
            workspace_id=workspace_id,
            branch=branch,
        )
        with client:
            response = client.list(ObjectKind.API_GROUP, page=1, per_page=1)
    except XanoConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    if response.ok:
        out.success("Access token is valid")
    else:
        out.error(f"Validation failed: {response.error}")
        if not click.confirm("Save configuration anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    config.save(
        XANO_API_KEY=api_key,
        XANO_INSTANCE_ORIGIN=instance,
        XANO_WORKSPACE_ID=str(workspace_id),
        XANO_BRANCH=branch,
    )

    root = Path.cwd()
    local = load_local_config(root)
    if local is None:
        local_config: dict[str, Any] = {
            "instanceName": instance,
            "workspaceId": workspace_id,
            "branch": branch,
            "paths": dict(DEFAULT_PATHS),
        }
        xs_files = DirectoryScanner(root, DEFAULT_PATHS).scan_paths()
        if any(Path(p).name == API_GROUP_FILENAME for p in xs_files):
            naming = detect_naming_mode(xs_files)
            out.info(f"Detected existing {naming.value} layout")
            local_config["naming"] = naming.value
        save_local_config(root, local_config)

    out.print_summary(
        "Initialization Complete",
        [
            ("Config file", str(config.get_config_path())),
            ("Project", str(metadata_path(root, CONFIG_JSON))),
            ("Workspace", str(workspace_id)),
            ("Branch", branch or "live"),
        ],
    )


@main.command()
@click.option("--all", "-a", "show_all", is_flag=True, help="Also list unchanged files")
@click.pass_context
def status(ctx: Any, show_all: bool) -> None:
    """Show differences between local files and the workspace.

    Every file is compared against the body recorded at the last sync and
    against the current remote body.

    Examples:
        pyxano status
        pyxano status --all
        pyxano --json status
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    client = _create_client(ctx, out, settings)

    try:
        with client:
            entries = _create_engine(ctx, settings, client).status()
    except XanoError as e:
        out.error(str(e))
        ctx.exit(1)

    out.status_entries(entries, show_unchanged=show_all)
    if not out.json_output and not out.quiet:
        counts: dict[str, int] = {}
        for entry in entries:
            counts[entry.status.value] = counts.get(entry.status.value, 0) + 1
        if counts:
            out.print_summary(
                "Summary",
                [(s.value, counts[s.value]) for s in FileStatus if s.value in counts],
            )
        conflicts = sum(1 for entry in entries if entry.is_conflict)
        if conflicts:
            out.warning(f"{conflicts} file(s) changed both locally and remotely")


@main.command()
@click.option("--force", "-f", is_flag=True, help="Overwrite local changes")
@click.option("--merge", "-m", is_flag=True, help="Merge local changes with remote changes")
@click.option(
    "--clean",
    is_flag=True,
    help="Delete unchanged local files whose remote object was deleted",
)
@click.option("--dry-run", is_flag=True, help="Show what would be done without doing it")
@click.pass_context
def pull(ctx: Any, force: bool, merge: bool, clean: bool, dry_run: bool) -> None:
    """Download remote changes into local files.

    Files with local changes are skipped unless --merge or --force is given.

    Examples:
        pyxano pull
        pyxano pull --merge
        pyxano pull --force --clean
    """
    out: OutputFormatter = ctx.obj["out"]
    if force and merge:
        out.error("--force and --merge cannot be combined")
        ctx.exit(1)

    settings = _load_settings(ctx, out)
    client = _create_client(ctx, out, settings)

    try:
        with client:
            stats = _create_engine(ctx, settings, client).pull(
                force=force, merge=merge, clean=clean, dry_run=dry_run
            )
    except KeyboardInterrupt:
        out.warning("\nPull cancelled by user")
        ctx.exit(130)
    except XanoError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(stats)
    else:
        title = "Pull Preview" if dry_run else "Pull Complete"
        out.print_summary(title, [(key.capitalize(), value) for key, value in stats.items()])

    if stats["conflicts"] and not out.quiet:
        out.warning(
            f"{stats['conflicts']} file(s) contain conflict markers. "
            "Resolve them and push."
        )
    if stats["errors"]:
        ctx.exit(1)


@main.command()
@click.argument("paths", nargs=-1, type=click.Path())
@click.option("--force", "-f", is_flag=True, help="Overwrite remote changes")
@click.option("--delete", is_flag=True, help="Delete remote objects of deleted files")
@click.option("--datasource", "-d", help="Datasource whose permissions apply")
@click.option("--dry-run", is_flag=True, help="Show what would be done without doing it")
@click.pass_context
def push(
    ctx: Any,
    paths: tuple[str, ...],
    force: bool,
    delete: bool,
    datasource: Optional[str],
    dry_run: bool,
) -> None:
    """Upload local changes to the workspace.

    PATHS: Restrict the push to these files (default: all changed files)

    Examples:
        pyxano push
        pyxano push functions/calc.xs
        pyxano push --delete --dry-run
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    client = _create_client(ctx, out, settings)

    try:
        with client:
            stats = _create_engine(ctx, settings, client).push(
                targets=list(paths) or None,
                force=force,
                delete=delete,
                datasource=datasource,
                dry_run=dry_run,
            )
    except DatasourcePermissionError as e:
        out.error(str(e))
        ctx.exit(1)
    except KeyboardInterrupt:
        out.warning("\nPush cancelled by user")
        ctx.exit(130)
    except XanoError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(stats)
    else:
        title = "Push Preview" if dry_run else "Push Complete"
        out.print_summary(title, [(key.capitalize(), value) for key, value in stats.items()])
    if stats["errors"]:
        ctx.exit(1)


@main.command()
@click.pass_context
def fetch(ctx: Any) -> None:
    """Refresh API group and endpoint metadata used for route matching."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    client = _create_client(ctx, out, settings)

    try:
        with client:
            result = _create_engine(ctx, settings, client).refresh_metadata()
    except XanoError as e:
        out.error(str(e))
        ctx.exit(1)

    endpoint_count = sum(len(entries) for entries in result.endpoints.values())
    if out.json_output:
        out.output_json(
            {
                "groups": len(result.groups),
                "endpoints": endpoint_count,
                "errors": result.errors,
            }
        )
    else:
        out.print_summary(
            "Metadata Refreshed",
            [("API groups", len(result.groups)), ("Endpoints", endpoint_count)],
        )
    if not result.complete:
        ctx.exit(1)


@main.command()
@click.argument("query", required=False)
@click.option(
    "--type",
    "-t",
    "kind",
    type=click.Choice([kind.value for kind in ObjectKind]),
    help="Restrict the lookup to one object type",
)
@click.pass_context
def index(ctx: Any, query: Optional[str], kind: Optional[str]) -> None:
    """Rebuild the search index, or look up QUERY in it.

    QUERY may be a path, a path fragment or an object name.

    Examples:
        pyxano index
        pyxano index calc
        pyxano index orders --type table
    """
    from .sync import SyncEngine

    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    if query is None:
        search_index = SyncEngine(settings, output=out).rebuild_index()
        if out.json_output:
            out.output_json({"paths": len(search_index.paths)})
        else:
            out.success(f"Indexed {len(search_index.paths)} objects")
        return

    search_index = SearchIndex.load(settings.root)
    if search_index is None:
        search_index = SyncEngine(settings, output=out).rebuild_index()
    matches = search_index.lookup(query, ObjectKind(kind) if kind else None)

    if out.json_output:
        out.output_json(matches)
    elif not matches:
        out.warning(f"No object matches '{query}'")
    else:
        for path in matches:
            out.print(path)
    if not matches:
        ctx.exit(1)


@main.command()
@click.argument("verb", type=click.Choice(HTTP_VERBS, case_sensitive=False))
@click.argument("path")
@click.pass_context
def route(ctx: Any, verb: str, path: str) -> None:
    """Show which endpoint serves VERB PATH.

    Examples:
        pyxano route GET /users/42
        pyxano route post "/orders?expand=true"
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    matcher = RouteMatcher.from_file(settings.root)
    if matcher.is_empty:
        out.error("No endpoint data found. Run 'pyxano fetch' first.")
        ctx.exit(1)

    try:
        match = matcher.match(verb, path)
    except AmbiguousRouteError as e:
        out.error(str(e))
        ctx.exit(1)

    if match is None:
        out.error(f"No endpoint matches {verb.upper()} {normalize_route_path(path)}")
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            {
                "canonical": match.canonical_id,
                "id": match.id,
                "pattern": match.pattern,
                "path_params": match.path_params,
                "query_params": match.query_params,
            }
        )
        return

    items: list[tuple[str, Any]] = [
        ("Canonical", match.canonical_id),
        ("Endpoint ID", match.id),
        ("Pattern", match.pattern),
    ]
    for name, value in match.path_params.items():
        items.append((f":{name}", value))
    for name, value in match.query_params.items():
        items.append((f"?{name}", value))
    out.print_summary("Route", items)


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected 'Name: value', got '{value}'")
        headers[name.strip()] = content.strip()
    return headers


@main.command()
@click.argument("method", type=click.Choice(HTTP_VERBS, case_sensitive=False))
@click.argument("path")
@click.option("--group", "-g", "api_group", help="API group name or canonical ID")
@click.option("--data", "-d", "data", help="JSON request body")
@click.option("--header", "-H", "header_values", multiple=True, help="Extra header 'Name: value'")
@click.option("--datasource", help="Datasource to run the request against")
@click.pass_context
def call(
    ctx: Any,
    method: str,
    path: str,
    api_group: Optional[str],
    data: Optional[str],
    header_values: tuple[str, ...],
    datasource: Optional[str],
) -> None:
    """Call a live endpoint of the workspace.

    The API group is resolved from the synced endpoint patterns unless
    --group is given.

    Examples:
        pyxano call GET /users/42
        pyxano call POST /orders -d '{"sku": "A-1"}' --datasource test
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    body = None
    if data is not None:
        try:
            body = json_lib.loads(data)
        except ValueError as e:
            out.error(f"Invalid JSON body: {e}")
            ctx.exit(1)
    headers = _parse_headers(header_values)

    operation = Operation.READ if method.upper() == "GET" else Operation.WRITE
    datasource = datasource or settings.default_datasource
    try:
        if datasource is not None or settings.datasources:
            check_datasource_permission(datasource, operation, settings.datasources)
        canonical = resolve_canonical(settings.root, method, path, api_group)
    except (DatasourcePermissionError, RouteResolutionError, AmbiguousRouteError) as e:
        out.error(str(e))
        ctx.exit(1)

    client = _create_client(ctx, out, settings)
    logger.debug(
        f"Calling {method.upper()} {path} on {canonical} "
        f"({format_datasource_name(datasource)})"
    )
    try:
        with client:
            response = client.call_route(
                canonical,
                normalize_route_path(path),
                method=method,
                body=body,
                headers=headers,
                datasource=datasource,
            )
    except XanoAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if not response.ok:
        out.error(f"HTTP {response.status}: {response.error}")
        ctx.exit(1)

    if response.data is None:
        out.success(f"HTTP {response.status}")
    else:
        out.output_json(response.data)


if __name__ == "__main__":
    main()
