"""
Blueprint file parser — one directive per line into Rule models.

Syntax:

    # comment
    install git curl snap:code [id: x] [after: a, b] [group: g] [on: [linux, mac]]
    clone https://github.com/me/dotfiles.git to: ~/dotfiles [branch: main]
    mkdir ~/projects [perms: 0750]
    decrypt secrets/ssh.enc to: ~/.ssh/id_ed25519 [password-id: personal]
    asdf nodejs@20.11.0 python@3.12.1
    asdf install nodejs 20.11.0 ruby 3.3.0
    known_hosts github.com [key: ed25519]
    gpg-key https://example.com/key.gpg keyring: example deb-url: https://example.com/apt
    homebrew jq ripgrep
    ollama llama3:8b
    include other.bp   # trailing comment

A "#" starts a comment at the beginning of a line or after whitespace;
inside a token (``repo.git#main``, ``~/a#b``) it is literal.

Included files resolve relative to the including file. A file already
visited in this parse is skipped with a warning, which also breaks
include cycles.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable
from pathlib import Path
from typing import Any

from blueprint.core.errors import ParseError
from blueprint.core.models.rule import Package, Rule

logger = logging.getLogger(__name__)

_COMMON_OPTIONS = {"id", "after", "on", "group"}

_KIND_OPTIONS: dict[str, set[str]] = {
    "install": set(),
    "clone": {"to", "branch"},
    "decrypt": {"to", "password-id"},
    "mkdir": {"perms"},
    "asdf": set(),
    "known_hosts": {"key"},
    "gpg-key": {"keyring", "deb-url"},
    "homebrew": set(),
    "ollama": set(),
}

_ALL_OPTIONS = _COMMON_OPTIONS.union(*_KIND_OPTIONS.values())

_LIST_SPLIT = re.compile(r"[,\s]+")

# "#" inside a token (URL fragments, paths) is literal
_COMMENT = re.compile(r"(?:^|\s)#")

# Target paths are anchored at the blueprint's directory when relative
_PATH_FIELDS = ("clone_path", "decrypt_path", "mkdir")


def _strip_comment(line: str) -> str:
    match = _COMMENT.search(line)
    return line[: match.start()] if match else line


class Parser:
    """Stateful parser: remembers visited files across includes.

    Relative target paths anchor at the including file's directory, or at
    ``anchor_dir`` when one is given (a remote checkout is temporary).
    """

    def __init__(self, anchor_dir: Path | None = None) -> None:
        self._visited: set[Path] = set()
        self._anchor_dir = anchor_dir

    def parse_file(self, path: Path) -> list[Rule]:
        resolved = path.expanduser().resolve()
        if resolved in self._visited:
            logger.warning("Skipping %s: already included", resolved)
            return []
        self._visited.add(resolved)

        try:
            text = resolved.read_text(encoding="utf-8")
        except OSError as e:
            raise ParseError(f"Cannot read blueprint {path}: {e}") from e

        logger.debug("Parsing %s", resolved)
        return self.parse_text(text, base_dir=resolved.parent, source=str(resolved))

    def parse_text(
        self,
        text: str,
        base_dir: Path | None = None,
        source: str = "<string>",
    ) -> list[Rule]:
        base_dir = base_dir or Path.cwd()
        rules: list[Rule] = []

        for line_num, line in enumerate(text.splitlines(), start=1):
            try:
                tokens = shlex.split(_strip_comment(line))
            except ValueError as e:
                raise ParseError(str(e), source, line_num) from e
            if not tokens:
                continue

            directive, args = tokens[0], tokens[1:]

            if directive == "include":
                if len(args) != 1:
                    raise ParseError("include takes exactly one path", source, line_num)
                target = Path(args[0]).expanduser()
                if not target.is_absolute():
                    target = base_dir / target
                if not target.is_file():
                    raise ParseError(f"Included file not found: {args[0]}", source, line_num)
                rules.extend(self.parse_file(target))
                continue

            if directive not in _BUILDERS:
                raise ParseError(f"Unknown directive '{directive}'", source, line_num)

            try:
                rules.append(_build_rule(directive, args, self._anchor_dir or base_dir))
            except ParseError as e:
                raise ParseError(str(e), source, line_num) from e

        return rules


def parse_file(path: Path | str, anchor_dir: Path | None = None) -> list[Rule]:
    """Parse a blueprint file, following includes."""
    return Parser(anchor_dir).parse_file(Path(path))


def parse_text(text: str, base_dir: Path | None = None, source: str = "<string>") -> list[Rule]:
    """Parse blueprint text. Includes resolve against ``base_dir`` (default: cwd)."""
    return Parser().parse_text(text, base_dir=base_dir, source=source)


# ── Directive parsing ───────────────────────────────────────────


def _split_clauses(tokens: list[str]) -> tuple[list[str], dict[str, list[str]]]:
    """Separate positional arguments from ``name:`` option clauses."""
    args: list[str] = []
    options: dict[str, list[str]] = {}
    current: str | None = None

    for token in tokens:
        name, sep, rest = token.partition(":")
        if sep and name in _ALL_OPTIONS and not rest.startswith("//"):
            if name in options:
                raise ParseError(f"Option '{name}:' given twice")
            current = name
            options[current] = [rest] if rest else []
            continue
        if current is None:
            args.append(token)
        else:
            options[current].append(token)

    return args, options


def _anchor(path: str, base_dir: Path) -> str:
    if path.startswith("~") or Path(path).is_absolute():
        return path
    return str(base_dir / path)


def _list_value(values: list[str]) -> tuple[str, ...]:
    text = " ".join(values).replace("[", " ").replace("]", " ")
    return tuple(v for v in _LIST_SPLIT.split(text) if v)


def _single_value(options: dict[str, list[str]], name: str, required: bool = False) -> str:
    values = options.get(name)
    if not values:
        if required or name in options:
            raise ParseError(f"Missing value for '{name}:'")
        return ""
    if len(values) != 1:
        raise ParseError(f"Option '{name}:' takes one value, got {len(values)}")
    return values[0]


def _one_arg(kind: str, args: list[str]) -> str:
    if len(args) != 1:
        raise ParseError(f"{kind} takes exactly one argument, got {len(args)}")
    return args[0]


def _some_args(kind: str, args: list[str]) -> list[str]:
    if not args:
        raise ParseError(f"{kind} needs at least one argument")
    return args


def _build_install(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    packages = []
    for arg in _some_args("install", args):
        manager, sep, name = arg.partition(":")
        if sep and manager and name:
            packages.append(Package(name=name, package_manager=manager))
        else:
            packages.append(Package(name=arg))
    return {"packages": tuple(packages)}


def _build_clone(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {
        "clone_url": _one_arg("clone", args),
        "clone_path": _single_value(opts, "to", required=True),
        "branch": _single_value(opts, "branch"),
    }


def _build_decrypt(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {
        "decrypt_file": _one_arg("decrypt", args),
        "decrypt_path": _single_value(opts, "to", required=True),
        "password_id": _single_value(opts, "password-id"),
    }


def _build_mkdir(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {
        "mkdir": _one_arg("mkdir", args),
        "mkdir_perms": _single_value(opts, "perms"),
    }


def _build_asdf(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    args = list(_some_args("asdf", args))
    if args[0] == "install":
        args = args[1:]

    if all("@" in a for a in args) and args:
        return {"asdf_packages": tuple(args)}

    if not args or len(args) % 2:
        raise ParseError("asdf expects plugin@version entries or plugin/version pairs")
    pairs = [f"{args[i]}@{args[i + 1]}" for i in range(0, len(args), 2)]
    return {"asdf_packages": tuple(pairs)}


def _build_known_hosts(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {
        "known_hosts": _one_arg("known_hosts", args),
        "known_hosts_key": _single_value(opts, "key"),
    }


def _build_gpg_key(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {
        "gpg_key_url": _one_arg("gpg-key", args),
        "gpg_keyring": _single_value(opts, "keyring", required=True),
        "gpg_deb_url": _single_value(opts, "deb-url", required=True),
    }


def _build_homebrew(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {"homebrew_packages": tuple(_some_args("homebrew", args))}


def _build_ollama(args: list[str], opts: dict[str, list[str]]) -> dict[str, Any]:
    return {"ollama_models": tuple(_some_args("ollama", args))}


_BUILDERS: dict[str, Callable[[list[str], dict[str, list[str]]], dict[str, Any]]] = {
    "install": _build_install,
    "clone": _build_clone,
    "decrypt": _build_decrypt,
    "mkdir": _build_mkdir,
    "asdf": _build_asdf,
    "known_hosts": _build_known_hosts,
    "gpg-key": _build_gpg_key,
    "homebrew": _build_homebrew,
    "ollama": _build_ollama,
}


def _build_rule(kind: str, tokens: list[str], base_dir: Path) -> Rule:
    args, opts = _split_clauses(tokens)

    unexpected = set(opts) - _COMMON_OPTIONS - _KIND_OPTIONS[kind]
    if unexpected:
        raise ParseError(f"{kind} does not accept: {', '.join(sorted(unexpected))}")

    fields = _BUILDERS[kind](args, opts)
    for name in _PATH_FIELDS:
        if fields.get(name):
            fields[name] = _anchor(fields[name], base_dir)
    return Rule(
        kind=kind,
        id=_single_value(opts, "id"),
        after=_list_value(opts.get("after", [])),
        os_list=_list_value(opts.get("on", [])),
        group=_single_value(opts, "group"),
        **fields,
    )
