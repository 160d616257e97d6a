"""coman CLI - manage API collections and replay their endpoints."""

import logging
import sys

import click

from coman import __version__
from coman.errors import ComanError, DeletionCancelled
from coman.models import Method, ResolvedRequest

TOOL_HELP = """\
coman — Simple API manager.

Stores collections (a base URL plus default headers) and named endpoints
inside them, and replays any endpoint as an HTTP request.

\b
COLLECTIONS
───────────
  coman man col api http://localhost:8080 -H "Accept: application/json"
  coman man endpoint api ping /ping
  coman man endpoint api create /users -m POST -b '{"name": ":?"}'
  coman man list -v

\b
REQUESTS
────────
  coman req get http://localhost:8080/health
  coman req -v post http://localhost:8080/users -b '{"name": "test"}'
  coman run api ping
  cat photo.png | coman run api upload        # binary → multipart upload
  coman run api users -o 1-5                  # lines 1 to 5 of the body
  coman run api users -o data[0].name         # one JSON key
  coman url api ping                          # print the equivalent req command
  coman test api                              # run every endpoint in order

\b
PLACEHOLDERS
────────────
  ':?' in a URL, header value or body is asked for before sending.
  Streaming (-s) and binary piped input skip the prompts.

\b
STORAGE
───────
  Collections live in ~/coman.json. Override with COMAN_JSON, or with
  'store' under defaults in .coman.yaml / ~/.coman/config.yaml.
"""

STATUS_COLORS = {
    "success": "bright_green",
    "redirect": "bright_cyan",
    "client_error": "bright_yellow",
    "server_error": "bright_red",
    "other": "white",
}


def _parse_header_option(ctx, param, values):
    """Parse -H 'KEY:VALUE' options into (key, value) pairs."""
    headers = []
    for h in values:
        if ":" not in h:
            raise click.BadParameter(f"Invalid header format: '{h}'. Use KEY:VALUE")
        k, v = h.split(":", 1)
        headers.append((k.strip(), v.strip()))
    return headers


header_option = click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    metavar="KEY:VALUE",
    callback=_parse_header_option,
    help="HTTP header as 'Name: Value'. Repeatable.",
)


@click.group(help=TOOL_HELP, context_settings={"max_content_width": 88})
@click.version_option(__version__, prog_name="coman")
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .coman.yaml in CWD, then ~/.coman/config.yaml.",
)
@click.option("--debug", is_flag=True, default=False, help="Log debug output to stderr.")
@click.pass_context
def main(ctx, config_file, debug):
    from coman.core import (
        load_config,
        load_env,
        resolve_config_path,
        resolve_store_path,
        resolve_timeout,
    )

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

    try:
        config = load_config(resolve_config_path(config_file))
    except ComanError as e:
        _fail(e)
    defaults = config.get("defaults", {})
    env = load_env(defaults.get("env_file"), config.get("_config_dir") or ".")

    ctx.obj = {
        "config": config,
        "store_path": resolve_store_path(config, env),
        "timeout": resolve_timeout(defaults.get("timeout")),
        "follow_redirects": bool(defaults.get("follow_redirects", False)),
    }


# ── man: collection management ──────────────────────────────────────────


@main.group(help="Manage collections and endpoints.")
def man():
    pass


@man.command("list", help="List collections and endpoints.")
@click.option("-c", "--col", default="", help="Only show this collection.")
@click.option("-e", "--endpoint", default="", help="Only show this endpoint.")
@click.option("-q", "--quiet", is_flag=True, default=False, help="Collection names only.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show endpoint headers and bodies.")
@click.pass_context
def man_list(ctx, col, endpoint, quiet, verbose):
    try:
        collections = _get_manager(ctx).get_collections()
    except ComanError as e:
        _fail(e)
    if not collections:
        _fail("No collections found.")

    for collection in collections:
        if col and collection.name != col:
            continue
        click.echo(f"[{click.style(collection.name, fg='bright_magenta')}] - {collection.url}")
        if quiet:
            continue
        if collection.headers:
            click.echo("  Headers:")
            for key, value in collection.headers:
                click.echo(f"  {click.style(f'{key}: {value}', fg='bright_cyan')}")
        for ep in collection.requests:
            if endpoint and ep.name != endpoint:
                continue
            click.echo(
                f"  [{click.style(ep.name, fg='bright_yellow')}] "
                f"{click.style(str(ep.method), fg='bright_green')} - {ep.endpoint} - "
                f"{len(ep.headers)} - {len(ep.body or '')}",
            )
            if not verbose:
                continue
            if ep.headers:
                click.echo("    Headers:")
                for key, value in ep.headers:
                    click.echo(f"    {click.style(f'{key}: {value}', fg='bright_cyan')}")
            if ep.body is not None:
                click.echo("    Body:")
                click.echo(f"    {click.style(ep.body, fg='bright_cyan')}")


@man.command("col", help="Add a collection, or update the URL and headers of an existing one.")
@click.argument("name")
@click.argument("url")
@header_option
@click.pass_context
def man_col(ctx, name, url, headers):
    try:
        _get_manager(ctx).add_collection(name, url, headers)
    except ComanError as e:
        _fail(e)
    click.echo("Collection added successfully!")


@man.command("endpoint", help="Add an endpoint to a collection, replacing one with the same name.")
@click.argument("collection")
@click.argument("name")
@click.argument("path")
@click.option("-m", "--method", default="GET", show_default=True, help="HTTP method.")
@header_option
@click.option("-b", "--body", default="", help="Request body template.")
@click.pass_context
def man_endpoint(ctx, collection, name, path, method, headers, body):
    try:
        _get_manager(ctx).add_endpoint(
            collection,
            name,
            path,
            Method.parse(method),
            headers,
            body if body.strip() else None,
        )
    except ComanError as e:
        _fail(e)
    click.echo("Endpoint added successfully!")


@man.command("update", help="Update a collection, or one of its endpoints with -e.")
@click.argument("collection")
@click.option("-e", "--endpoint", default="", help="Endpoint to update.")
@click.option("-u", "--url", default=None, help="New collection URL, or endpoint path with -e.")
@header_option
@click.option("-b", "--body", default=None, help="New endpoint body. Pass '' to clear it.")
@click.pass_context
def man_update(ctx, collection, endpoint, url, headers, body):
    manager = _get_manager(ctx)
    try:
        if endpoint:
            if body is not None and not body.strip():
                body = ""
            manager.update_endpoint(
                collection,
                endpoint,
                path=url or None,
                headers=headers or None,
                body=body,
            )
        else:
            if body is not None:
                _fail("--body only applies to endpoints (use -e).")
            manager.update_collection(collection, url=url or None, headers=headers or None)
    except ComanError as e:
        _fail(e)
    what = "endpoint" if endpoint else "collection"
    click.echo(f"{what.capitalize()} updated successfully!")


@man.command("delete", help="Delete a collection, or one of its endpoints with -e.")
@click.argument("collection")
@click.option("-e", "--endpoint", default="", help="Endpoint to delete.")
@click.option("-y", "--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_context
def man_delete(ctx, collection, endpoint, yes):
    manager = _get_manager(ctx)
    what = "endpoint" if endpoint else "collection"
    click.echo(f"Deleting {what} '{endpoint or collection}'")
    try:
        if not yes and not click.confirm(f"Are you sure you want to delete this {what}?", err=True):
            raise DeletionCancelled()
        if endpoint:
            manager.delete_endpoint(collection, endpoint)
        else:
            manager.delete_collection(collection)
    except ComanError as e:
        _fail(e)
    click.echo(f"{what.capitalize()} deleted successfully!")


@man.command("copy", help="Copy a collection, or one of its endpoints with -e.")
@click.argument("collection")
@click.argument("new_name")
@click.option("-e", "--endpoint", default="", help="Endpoint to copy.")
@click.option(
    "-c",
    "--to-col",
    is_flag=True,
    default=False,
    help="Copy the endpoint into the collection NEW_NAME, keeping its name.",
)
@click.pass_context
def man_copy(ctx, collection, new_name, endpoint, to_col):
    manager = _get_manager(ctx)
    try:
        if not endpoint:
            manager.copy_collection(collection, new_name)
        elif to_col:
            manager.copy_endpoint(collection, endpoint, new_name, to_collection=new_name)
        else:
            manager.copy_endpoint(collection, endpoint, new_name)
    except ComanError as e:
        _fail(e)
    click.echo("Copy command successful!")


# ── req: ad-hoc requests ────────────────────────────────────────────────


@main.group(help="Send an ad-hoc request.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show request and response details.")
@click.option("-s", "--stream", is_flag=True, default=False, help="Stream the response body as it arrives.")
@click.option("-o", "--output", "selector", default=None, help="Line(s) like 3, 2-5, 1,4 or a JSON key.")
@click.pass_context
def req(ctx, verbose, stream, selector):
    ctx.obj.update({"verbose": verbose, "stream": stream, "selector": selector})


def _make_request_command(method: Method):
    @click.command(name=method.value.lower(), help=f"Send a {method} request.")
    @click.argument("url")
    @header_option
    @click.option("-b", "--body", default="", help="Request body.")
    @click.pass_context
    def command(ctx, url, headers, body):
        request = ResolvedRequest(url=url, method=method, headers=headers, body=body)
        _send(ctx, request, ctx.obj["verbose"], ctx.obj["stream"], ctx.obj["selector"])

    return command


for _method in Method:
    req.add_command(_make_request_command(_method))


# ── run / url / test: stored endpoints ──────────────────────────────────


@main.command(help="Send a stored endpoint. Piped input replaces its body.")
@click.argument("collection")
@click.argument("endpoint")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show request and response details.")
@click.option("-s", "--stream", is_flag=True, default=False, help="Stream the response body as it arrives.")
@click.option("-o", "--output", "selector", default=None, help="Line(s) like 3, 2-5, 1,4 or a JSON key.")
@click.pass_context
def run(ctx, collection, endpoint, verbose, stream, selector):
    try:
        request = _get_manager(ctx).resolve_endpoint(collection, endpoint)
    except ComanError as e:
        _fail(e)
    if verbose:
        click.echo(f"Running collection '{collection}' with endpoint '{endpoint}'")
    _send(ctx, request, verbose, stream, selector)


@main.command(help="Print the 'coman req' command equivalent to a stored endpoint.")
@click.argument("collection")
@click.argument("endpoint")
@click.pass_context
def url(ctx, collection, endpoint):
    try:
        request = _get_manager(ctx).resolve_endpoint(collection, endpoint)
    except ComanError as e:
        _fail(e)
    parts = ["coman", "req", "-v", request.method.value.lower(), _shell_quote(request.url)]
    for key, value in request.headers:
        parts += ["-H", _shell_quote(f"{key}: {value}")]
    if request.body:
        parts += ["-b", _shell_quote(request.body)]
    click.echo(" ".join(parts))


@main.command("test", help="Send every endpoint of a collection in order and report each status.")
@click.argument("collection")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show the URL of each endpoint.")
@click.pass_context
def smoke_test(ctx, collection, verbose):
    from coman.core import run_collection_tests

    def report(outcome):
        label = f"[{click.style(outcome.name, fg='bright_yellow')}] {outcome.method}"
        if verbose:
            label += f" {outcome.url}"
        if outcome.ok:
            click.echo(
                f"{label} - {_styled_status(outcome.status_code)} ({int(outcome.elapsed_ms)} ms)",
            )
        else:
            click.echo(f"{label} - {click.style('ERROR', fg='bright_red')}: {outcome.error}")

    try:
        outcomes = run_collection_tests(
            _get_manager(ctx),
            collection,
            prompt=_prompt,
            timeout=ctx.obj["timeout"],
            follow_redirects=ctx.obj["follow_redirects"],
            on_outcome=report,
        )
    except ComanError as e:
        _fail(e)
    if not outcomes:
        click.echo(f"No endpoints in collection '{collection}'.")
    failed = sum(1 for o in outcomes if not o.ok)
    click.echo(f"\nTests completed ({len(outcomes) - failed} sent, {failed} failed)")


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_manager(ctx):
    from coman.manager import CollectionManager
    from coman.store import CollectionStore

    return CollectionManager(CollectionStore(ctx.obj["store_path"]))


def _fail(error):
    click.echo(f"ERROR: {error}", err=True)
    sys.exit(1)


def _prompt(message):
    try:
        return click.prompt(message, default="", show_default=False, err=True)
    except click.Abort:
        raise ComanError("No value entered for placeholder") from None


def _read_stdin():
    """Piped input as bytes; nothing when stdin is a terminal."""
    stdin = click.get_binary_stream("stdin")
    if stdin.isatty():
        return b""
    return stdin.read()


def _styled_status(status_code):
    from coman.filters import status_category

    return click.style(str(status_code), fg=STATUS_COLORS[status_category(status_code)], bold=True)


def _send(ctx, request, verbose, stream, selector):
    """Prepare, send and print one request."""
    from coman import executor
    from coman.core import prepare_request
    from coman.filters import format_headers, render_body

    try:
        prepared = prepare_request(request, _read_stdin(), stream, prompt=_prompt)
    except ComanError as e:
        _fail(e)

    if verbose and not stream:
        click.echo(click.style("Request Headers:", fg="bright_blue", bold=True))
        if prepared.headers:
            click.echo(format_headers(prepared.headers))
        click.echo(click.style("Request Body:", fg="bright_blue", bold=True))
        if isinstance(prepared.body, bytes):
            click.echo(f"<{len(prepared.body)} bytes of binary data>")
        else:
            click.echo(click.style(prepared.body, italic=True))

    result = executor.execute_prepared(
        prepared,
        sink=click.get_binary_stream("stdout") if stream else None,
        timeout=ctx.obj["timeout"],
        follow_redirects=ctx.obj["follow_redirects"],
    )
    if result.error:
        _fail(result.error)

    if stream:
        return

    if verbose:
        click.echo(result.version)
        click.echo(
            f"\n[{click.style(str(prepared.method), fg='bright_yellow', bold=True)}] "
            f"{click.style(result.url or prepared.url, bold=True)} - "
            f"{_styled_status(result.status_code)} ({int(result.elapsed_ms)} ms)\n",
        )
        click.echo(click.style("Response Headers:", fg="bright_blue", bold=True))
        if result.headers:
            click.echo(format_headers(result.headers))
        click.echo("\n" + click.style("Response Body:", fg="bright_blue", bold=True))

    try:
        text, is_json = render_body(result.body, selector)
    except ComanError as e:
        _fail(e)
    click.echo(click.style(text, fg="green") if is_json else click.style(text, italic=True))


def _shell_quote(s):
    if not s:
        return "''"
    if all(c.isalnum() or c in "-_=./:@" for c in s):
        return s
    return "'" + s.replace("'", "'\\''") + "'"
