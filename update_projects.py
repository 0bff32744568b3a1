#!/usr/bin/env python3
"""
README projects updater.

Rewrites the "Meus Projetos" section of README.md with the account's public
repositories (name, description, language), most recently updated first.

Usage:
  python update_projects.py              # updates README.md next to this script
  python update_projects.py OTHER.md     # updates another document

Environment Variables:
  USER_NAME       : GitHub login. Falls back to GITHUB_ACTOR, then 'simionidev'.
  ACCESS_TOKEN    : (optional) token. Falls back to GITHUB_TOKEN in Actions.
  README_PATH     : document to rewrite. Default README.md beside this script.
  REQUEST_TIMEOUT : seconds for the API call. Default 40.
  DEBUG           : '1' => print [DEBUG] lines.

The document must contain the marker lines:
  <!-- PROJECTS_START -->
  <!-- PROJECTS_END -->
Everything between them is replaced on every run.
"""

from __future__ import annotations
import os
import re
import sys
import datetime
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests
from dateutil import parser as date_parser
from dateutil import relativedelta

# ------------------ Constants ------------------
DEFAULT_USER_NAME = "simionidev"
REPO_API = "https://api.github.com/users/{user}/repos"
ACCEPT_HEADER = "application/vnd.github.v3+json"
PER_PAGE = 100
DEFAULT_TIMEOUT = 40.0

REPO_ROOT = Path(__file__).resolve().parent
DEFAULT_README = REPO_ROOT / "README.md"

START_MARKER = "<!-- PROJECTS_START -->"
END_MARKER = "<!-- PROJECTS_END -->"

MAX_ROWS = 20
MAX_CELL_CHARS = 80
EMPTY_CELL = "-"

TABLE_HEADER = "| Repositório | Descrição | Linguagem |"
TABLE_SEPARATOR = "| :---------- | :-------- | :-------- |"
EMPTY_SECTION = "\n*Nenhum repositório público encontrado.*\n"
TRUNCATED_NOTE = "<sub>*Mostrando os {shown} mais recentes. Total: {total} repositórios.*</sub>"

# a pipe behind an even run of backslashes (possibly none)
UNESCAPED_PIPE = re.compile(r"(?<!\\)((?:\\\\)*)\|")
NEWLINE = re.compile(r"\r\n|\r|\n")


def debug(enabled: bool, msg: str):
    if enabled:
        print(f"[DEBUG] {msg}")


# ------------------ Errors ------------------
class FetchError(RuntimeError):
    """The repository listing endpoint answered with a non-2xx status."""

    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason
        super().__init__(f"GitHub API: {status} {reason}")


class MissingMarkerError(RuntimeError):
    """The document lacks one or both marker lines."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(
            f"README deve conter os marcadores {START_MARKER} e {END_MARKER} "
            f"(ausente: {', '.join(missing)})"
        )


# ------------------ Config & Env ------------------
@dataclass(frozen=True)
class Config:
    user_name: str
    token: Optional[str] = None
    readme_path: Path = DEFAULT_README
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": ACCEPT_HEADER}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


def load_config(argv: Optional[Sequence[str]] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    env = os.environ if environ is None else environ
    user_name = env.get("USER_NAME") or env.get("GITHUB_ACTOR") or DEFAULT_USER_NAME
    token = env.get("ACCESS_TOKEN") or env.get("GITHUB_TOKEN") or None

    timeout_str = env.get("REQUEST_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(timeout_str)
        if timeout <= 0:
            raise ValueError(timeout_str)
    except ValueError:
        print(f"Invalid REQUEST_TIMEOUT '{timeout_str}'. Using default {DEFAULT_TIMEOUT:g}s.")
        timeout = DEFAULT_TIMEOUT

    if argv:
        readme_path = Path(argv[0])
    elif env.get("README_PATH"):
        readme_path = Path(env["README_PATH"])
    else:
        readme_path = DEFAULT_README

    return Config(
        user_name=user_name,
        token=token,
        readme_path=readme_path,
        timeout=timeout,
        debug=env.get("DEBUG", "0") == "1",
    )


# ------------------ Data Collection ------------------
@dataclass(frozen=True)
class RepositoryRecord:
    name: str
    html_url: str
    description: Optional[str] = None
    language: Optional[str] = None
    fork: bool = False
    private: bool = False
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RepositoryRecord":
        return cls(
            name=payload["name"],
            html_url=payload["html_url"],
            description=payload.get("description"),
            language=payload.get("language"),
            fork=bool(payload.get("fork", False)),
            private=bool(payload.get("private", False)),
            updated_at=parse_updated_at(payload.get("updated_at")),
        )


def parse_updated_at(raw: Any) -> Optional[datetime.datetime]:
    # informational only; a bad timestamp must not abort the run
    if not raw:
        return None
    try:
        return date_parser.isoparse(raw)
    except (ValueError, TypeError):
        return None


def fetch_repos(config: Config) -> List[RepositoryRecord]:
    """Single page of the account's own repositories, most recently updated first."""
    url = REPO_API.format(user=config.user_name)
    params = {"per_page": PER_PAGE, "sort": "updated", "type": "owner"}
    debug(config.debug, f"GET {url} params={params} auth={'yes' if config.token else 'no'}")
    r = requests.get(url, params=params, headers=config.headers, timeout=config.timeout)
    # Response.ok also accepts 3xx
    if not 200 <= r.status_code < 300:
        raise FetchError(r.status_code, r.reason)
    return [RepositoryRecord.from_api(item) for item in r.json()]


# ------------------ Formatting ------------------
def rel_updated(updated_at: Optional[datetime.datetime], now: Optional[datetime.datetime] = None) -> str:
    if updated_at is None:
        return "unknown"
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=datetime.timezone.utc)
    diff = relativedelta.relativedelta(now, updated_at)
    return f"{diff.years}y {diff.months}m {diff.days}d ago"


def escape_table_cell(text: Optional[str]) -> str:
    """Make text safe for a single Markdown table cell.

    Pipes get escaped, newlines become spaces, whitespace is trimmed and the
    result is cut at MAX_CELL_CHARS. Applying it twice changes nothing.
    """
    if text is None:
        return EMPTY_CELL
    cell = UNESCAPED_PIPE.sub(r"\1\\|", str(text))
    cell = NEWLINE.sub(" ", cell).strip()
    cell = cell[:MAX_CELL_CHARS].rstrip()
    return cell or EMPTY_CELL


def filter_repos(repos: Iterable[RepositoryRecord], user_name: str) -> List[RepositoryRecord]:
    # name == login is the profile README repository
    return [r for r in repos if r.name != user_name and not r.fork and not r.private]


def format_row(repo: RepositoryRecord) -> str:
    name = f"[{escape_table_cell(repo.name)}]({repo.html_url})"
    return f"| {name} | {escape_table_cell(repo.description)} | {escape_table_cell(repo.language)} |"


def build_projects_section(repos: Iterable[RepositoryRecord], user_name: str, verbose: bool = False) -> str:
    filtered = filter_repos(repos, user_name)
    if not filtered:
        return EMPTY_SECTION

    shown = filtered[:MAX_ROWS]
    for repo in shown:
        debug(verbose, f"{repo.name}: updated {rel_updated(repo.updated_at)}")

    lines = ["", TABLE_HEADER, TABLE_SEPARATOR]
    lines.extend(format_row(r) for r in shown)
    lines.append("")
    if len(filtered) > MAX_ROWS:
        lines.append(TRUNCATED_NOTE.format(shown=MAX_ROWS, total=len(filtered)))
        lines.append("")
    return "\n".join(lines)


# ------------------ README Update ------------------
def splice_markers(text: str, block: str) -> str:
    start_idx = text.find(START_MARKER)
    end_idx = text.find(END_MARKER, start_idx + len(START_MARKER)) if start_idx != -1 else text.find(END_MARKER)
    missing = []
    if start_idx == -1:
        missing.append(START_MARKER)
    if end_idx == -1:
        missing.append(END_MARKER)
    if missing:
        raise MissingMarkerError(missing)

    before = text[:start_idx + len(START_MARKER)]
    after = text[end_idx:]
    return before + block + "\n" + after


def update_readme(path: Path, block: str, verbose: bool = False):
    if START_MARKER in block or END_MARKER in block:
        # not escaped: the next run splices at the marker found inside the block
        print("[WARN] Generated section contains a marker string; the next run may cut it short.")
    with open(path, "r", encoding="utf-8") as f:
        readme = f.read()
    new_readme = splice_markers(readme, block)
    with open(path, "w", encoding="utf-8") as f:
        f.write(new_readme)
    debug(verbose, f"Wrote {path} ({len(new_readme)} chars)")


# ------------------ Main ------------------
def main(argv: Optional[Sequence[str]] = None) -> int:
    config = load_config(sys.argv[1:] if argv is None else argv)
    try:
        repos = fetch_repos(config)
        section = build_projects_section(repos, config.user_name, verbose=config.debug)
        update_readme(config.readme_path, section, verbose=config.debug)
    except (FetchError, MissingMarkerError, OSError, requests.RequestException):
        traceback.print_exc(file=sys.stderr)
        return 1
    print(f"README atualizado com {len(repos)} repositórios.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
