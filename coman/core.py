"""coman core - config loading, placeholder prompts, request preparation."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import dotenv_values

from coman.errors import ComanError
from coman.models import Headers, Method, ResolvedRequest

log = logging.getLogger(__name__)

GLOBAL_DIR = Path.home() / ".coman"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".coman.yaml",
    ".coman.yml",
]

STORE_ENV_VAR = "COMAN_JSON"
DEFAULT_STORE_FILE = "coman.json"
DEFAULT_TIMEOUT = 120

PLACEHOLDER = ":?"

Prompt = Callable[[str], str]


# ── Config ───────────────────────────────────────────────────────────────


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (no fallthrough if missing)
      2. .coman.yaml / .coman.yml in CWD
      3. ~/.coman/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' in the returned dict so a relative store path
    can be resolved against the config file's directory.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ComanError(f"Invalid config file {path}: {e}") from e
    log.debug("Loaded config from %s", path)
    return {
        "defaults": data.get("defaults") or {},
        "_config_dir": path.resolve().parent,
    }


def load_env(env_file: str | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load .env file on top of os.environ."""
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def resolve_store_path(config: dict, env: dict[str, str]) -> Path:
    """Where the collections file lives.

    Resolution order:
      1. COMAN_JSON from the environment (or env_file)
      2. store from config defaults (relative to the config file)
      3. ~/coman.json
    """
    override = env.get(STORE_ENV_VAR)
    if override:
        return Path(override)
    configured = config.get("defaults", {}).get("store")
    if configured:
        p = Path(configured).expanduser()
        config_dir = config.get("_config_dir")
        if not p.is_absolute() and config_dir:
            p = Path(config_dir) / p
        return p
    return Path.home() / DEFAULT_STORE_FILE


def resolve_timeout(*sources, default=DEFAULT_TIMEOUT):
    """Return the first truthy timeout from sources, or default."""
    for t in sources:
        if t:
            return t
    return default


# ── Placeholders ─────────────────────────────────────────────────────────


class ValuesPrompter:
    """Answer placeholder prompts from a fixed list, in order."""

    def __init__(self, values: Iterable[str]):
        self._values = iter(values)
        self.messages: list[str] = []

    def __call__(self, message: str) -> str:
        self.messages.append(message)
        try:
            return next(self._values)
        except StopIteration:
            raise ComanError(f"No value supplied for prompt: {message}") from None


def no_prompt(message: str) -> str:
    """Leave the placeholder in place."""
    return PLACEHOLDER


def resolve_text_placeholders(text: str, prompt: Prompt) -> str:
    """Replace each ':?' left to right with a prompted value."""
    start = 0
    while True:
        idx = text.find(PLACEHOLDER, start)
        if idx == -1:
            return text
        value = prompt(
            f"Missing data at position {idx} - {text}. Please provide the correct value",
        ).strip()
        text = text[:idx] + value + text[idx + len(PLACEHOLDER) :]
        start = idx + len(value)


def resolve_header_placeholders(headers: Headers, prompt: Prompt) -> Headers:
    """Replace every header value containing ':?' with a prompted value."""
    resolved: Headers = []
    for key, value in headers:
        if PLACEHOLDER in value:
            value = prompt(
                f"Header value for key '{key}' is missing data. "
                "Please provide the correct value",
            ).strip()
        resolved.append((key, value))
    return resolved


def is_text_data(data: bytes) -> bool:
    """True when data decodes as UTF-8."""
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


# ── Request preparation ──────────────────────────────────────────────────

MODE_TEXT = "text"
MODE_STREAM = "stream"
MODE_MULTIPART = "multipart"


@dataclass
class PreparedRequest:
    """A request ready for the executor.

    body is str in text mode and bytes in stream and multipart modes.
    """

    method: Method
    url: str
    headers: Headers = field(default_factory=list)
    mode: str = MODE_TEXT
    body: str | bytes = ""


def prepare_request(
    request: ResolvedRequest,
    stdin_input: bytes = b"",
    stream: bool = False,
    prompt: Prompt = no_prompt,
) -> PreparedRequest:
    """Pick the body source and transfer mode, then fill placeholders.

    Piped input replaces the stored body. Streaming requests and binary
    input are sent untouched, without any prompts.
    """
    stored_body = request.body or ""

    if stream:
        return PreparedRequest(
            method=request.method,
            url=request.url,
            headers=list(request.headers),
            mode=MODE_STREAM,
            body=stdin_input or stored_body.encode("utf-8"),
        )

    if stdin_input and not is_text_data(stdin_input):
        log.debug("Piped input is binary (%d bytes), sending as multipart", len(stdin_input))
        return PreparedRequest(
            method=request.method,
            url=request.url,
            headers=list(request.headers),
            mode=MODE_MULTIPART,
            body=stdin_input,
        )

    body = stdin_input.decode("utf-8") if stdin_input else stored_body
    return PreparedRequest(
        method=request.method,
        url=resolve_text_placeholders(request.url, prompt),
        headers=resolve_header_placeholders(request.headers, prompt),
        mode=MODE_TEXT,
        body=resolve_text_placeholders(body, prompt),
    )


# ── Collection test run ──────────────────────────────────────────────────


@dataclass
class EndpointOutcome:
    """Result line of one endpoint in a collection test run."""

    name: str
    method: Method
    url: str
    status_code: int | None = None
    elapsed_ms: float = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_collection_tests(
    manager,
    col_name: str,
    prompt: Prompt = no_prompt,
    timeout: int = DEFAULT_TIMEOUT,
    follow_redirects: bool = False,
    on_outcome: Callable[[EndpointOutcome], None] | None = None,
) -> list[EndpointOutcome]:
    """Send every endpoint of a collection, one after another.

    A failing endpoint is recorded and the run moves on to the next one.
    Raises CollectionNotFound only when the collection itself is missing.
    """
    from coman import executor

    col = manager.get_collection(col_name)
    outcomes: list[EndpointOutcome] = []
    for ep in col.requests:
        url = col.url + ep.endpoint
        outcome = EndpointOutcome(name=ep.name, method=ep.method, url=url)
        try:
            resolved = manager.resolve_endpoint(col_name, ep.name)
            prepared = prepare_request(resolved, prompt=prompt)
            outcome.url = prepared.url
            result = executor.execute_prepared(
                prepared,
                timeout=timeout,
                follow_redirects=follow_redirects,
            )
            if result.error:
                raise result.error
            outcome.status_code = result.status_code
            outcome.elapsed_ms = result.elapsed_ms
        except ComanError as e:
            log.debug("Endpoint %s in %s failed: %s", ep.name, col_name, e)
            outcome.error = str(e)
        outcomes.append(outcome)
        if on_outcome:
            on_outcome(outcome)
    return outcomes
