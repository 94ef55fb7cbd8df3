"""Command gate: decides whether a caller command line may run.

The pipeline runs in a fixed order and stops at the first rejection:

1. deny-pattern scan over the raw command string
2. tokenization into a flat token list plus chained segments
3. allow-list check of the main verb
4. secondary-token check (shells, interpreters, escalation verbs), then the
   allow-list check for every chained verb
5. confinement of path arguments and redirection targets, including every
   path a wildcard argument expands to
6. confinement of the effective working directory
"""

from __future__ import annotations

import fnmatch
import glob
import itertools
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

import anyio

from toolgate.core.errors import (
    AccessDenied,
    CommandNotAllowed,
    GatewayError,
    HarmfulPatternDetected,
    ResolutionError,
)
from toolgate.core.types import CommandDecision, CommandSpec, ConfinementDecision
from toolgate.observability.metrics import get_metrics_registry
from toolgate.security.command_policy import (
    ALLOWED_COMMANDS,
    DENY_PATTERNS,
    ENV_SPLIT_OPTION,
    FILESYSTEM_VERBS,
    FIND_EXEC_ACTIONS,
    GIT_DENIED_OPTIONS,
    GIT_VALUE_OPTIONS,
    SECONDARY_DENIED_TOKENS,
    WRAPPER_VERBS,
    DenyPattern,
    is_protected_env,
)
from toolgate.security.confinement import ConfinementChecker
from toolgate.security.paths import absolute_path

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(
    r"""
    \d*>&-?\d*-?            # descriptor duplication (2>&1, >&2)
    | \d*>>?\|?             # output redirection (>, >>, >|, 2>)
    | &>>?                  # stdout and stderr redirection
    | <<<|<<-?|<>|<         # input redirection and here-documents
    | \$\(                  # command substitution
    | \{\}                  # find placeholder, a plain word
    | \|\||&&|[|&;()`{}\n]  # command separators and grouping
    | [^\s|&;<>()`{}]+      # words
    """,
    re.VERBOSE,
)
_DUP_RE = re.compile(r"\d*>&-?\d*-?")
_REDIRECT_RE = re.compile(r"\d*>>?\|?|&>>?|<<<|<<-?|<>|<")
_BREAK_TOKENS = frozenset({"|", "||", "&&", "&", ";", "(", ")", "`", "{", "}", "\n", "$("})
_EXPANSION_RE = re.compile(r"\$(?:\{|\(|[A-Za-z_])")
_GLOB_RE = re.compile(r"[*?\[]")
_MAX_GLOB_MATCHES = 1000


def _clean_word(token: str) -> str:
    return token.replace('"', "").replace("'", "").replace("\\", "")


def _basename(token: str) -> str:
    return re.split(r"[\\/]", token)[-1]


@dataclass(slots=True)
class CommandSegment:
    """One simple command inside a chained command line."""

    words: list[str] = field(default_factory=list)
    redirect_targets: list[str] = field(default_factory=list)

    @property
    def verb(self) -> str | None:
        return self.words[0] if self.words else None


@dataclass(slots=True)
class ParsedCommand:
    """Flat token list plus the segment structure of a command line."""

    tokens: list[str]
    segments: list[CommandSegment]
    main_index: int | None = None

    @property
    def main_verb(self) -> str | None:
        return None if self.main_index is None else self.tokens[self.main_index]


def tokenize(command: str) -> ParsedCommand:
    """Split a command on whitespace and shell metacharacters.

    Quotes and backslashes are removed from words so that ``"sh"`` and ``sh``
    compare equal. Separators, grouping characters and command substitution
    start a new segment; the word following a redirection operator is
    recorded as a redirection target of the current segment.
    """
    tokens: list[str] = []
    segments: list[CommandSegment] = [CommandSegment()]
    expect_target = False
    main_index: int | None = None

    for match in _TOKEN_RE.finditer(command):
        raw = match.group(0)
        if raw in _BREAK_TOKENS:
            segments.append(CommandSegment())
            expect_target = False
            continue
        if _DUP_RE.fullmatch(raw):
            continue
        if _REDIRECT_RE.fullmatch(raw):
            expect_target = True
            continue

        word = _clean_word(raw)
        if not word:
            continue
        tokens.append(word)
        if expect_target:
            segments[-1].redirect_targets.append(word)
            expect_target = False
        else:
            if main_index is None:
                main_index = len(tokens) - 1
            segments[-1].words.append(word)

    segments = [segment for segment in segments if segment.words or segment.redirect_targets]
    return ParsedCommand(tokens=tokens, segments=segments, main_index=main_index)


def _looks_like_flag(word: str) -> bool:
    return word.startswith("-") and word != "-"


def _flag_value(word: str) -> str | None:
    """Return a path-like value embedded in a flag (``--out=x``, ``-o/x``)."""
    if "=" in word:
        value = word.split("=", 1)[1]
        return value or None
    if not word.startswith("--") and len(word) > 2 and any(c in word[2:] for c in "/~\\"):
        return word[2:]
    return None


def _looks_like_path(word: str) -> bool:
    return "/" in word or "\\" in word or word.startswith("~") or word == ".."


def _access_reason(path: str, decision: ConfinementDecision) -> str:
    detail = decision.reason if decision.canonical is None else None
    return AccessDenied(path, detail).message


def _matches_parent(candidate: str) -> bool:
    """Return True when a wildcard component can expand to ``..``."""
    return any(
        _GLOB_RE.search(part) and fnmatch.fnmatchcase("..", part)
        for part in re.split(r"[\\/]", candidate)
    )


def _expand_glob(candidate: str, base: str) -> list[str] | None:
    """Expand ``candidate`` as the shell would; None when it matches too much."""
    pattern = absolute_path(candidate, base)
    matches = list(itertools.islice(glob.iglob(pattern), _MAX_GLOB_MATCHES + 1))
    return None if len(matches) > _MAX_GLOB_MATCHES else matches


def _resolve_wrapped(words: list[str]) -> tuple[str | None, list[str]]:
    """Return the effective verb and its arguments, unwrapping ``env``."""
    verb = words[0]
    if verb not in WRAPPER_VERBS:
        return verb, words[1:]
    for index, word in enumerate(words[1:], start=1):
        if _looks_like_flag(word) or "=" in word:
            continue
        return word, words[index + 1 :]
    return None, []


def _nested_commands(words: list[str]) -> Iterator[tuple[str, list[str]]]:
    """Yield ``(verb, args)`` for a segment and every program it starts.

    ``env`` runs the first plain word after its options and assignments;
    ``find -exec`` and its siblings run the word following the action.
    """
    verb, args = words[0], words[1:]
    yield verb, args
    if verb in WRAPPER_VERBS:
        nested, rest = _resolve_wrapped(words)
        if nested is not None:
            yield from _nested_commands([nested, *rest])
    elif verb == "find":
        for index, word in enumerate(args):
            if word in FIND_EXEC_ACTIONS and index + 1 < len(args):
                yield from _nested_commands(args[index + 1 :])


def _env_option_denial(args: list[str]) -> tuple[str, str] | None:
    for word in args:
        if _looks_like_flag(word):
            name = word.split("=", 1)[0]
            if name.startswith("--"):
                split = len(name) > 2 and ENV_SPLIT_OPTION.startswith(name)
            else:
                split = "S" in name[1:]
            if split:
                return word, f"Option '{word}' of 'env' is not permitted (it splits its argument)"
            continue
        if "=" not in word:
            return None
        name = word.split("=", 1)[0]
        if is_protected_env(name):
            return word, f"Setting the environment variable '{name}' is not permitted"
    return None


def _git_option_denial(args: list[str]) -> tuple[str, str] | None:
    # Only global options before the subcommand can change configuration.
    expects_value = False
    for word in args:
        if expects_value:
            expects_value = False
            continue
        if not _looks_like_flag(word):
            return None
        name = word.split("=", 1)[0]
        if name in GIT_DENIED_OPTIONS or (name.startswith("-c") and not name.startswith("--")):
            return word, (
                f"Option '{word}' of 'git' is not permitted "
                "(configuration overrides can run arbitrary programs)"
            )
        expects_value = word in GIT_VALUE_OPTIONS
    return None


def _option_denial(verb: str, args: list[str]) -> tuple[str, str] | None:
    """Return the word and reason when an option makes ``verb`` run unchecked code."""
    if verb in WRAPPER_VERBS:
        return _env_option_denial(args)
    if verb == "git":
        return _git_option_denial(args)
    return None


class CommandGate:
    """Evaluate command lines against the allow-list, deny-list and roots."""

    def __init__(
        self,
        checker: ConfinementChecker,
        *,
        allowed_commands: Iterable[str] = ALLOWED_COMMANDS,
        deny_patterns: Iterable[DenyPattern] = DENY_PATTERNS,
        secondary_denied: Iterable[str] = SECONDARY_DENIED_TOKENS,
        filesystem_verbs: Iterable[str] = FILESYSTEM_VERBS,
    ) -> None:
        self.checker = checker
        self.allowed_commands = frozenset(allowed_commands)
        self.deny_patterns = tuple(deny_patterns)
        self.secondary_denied = frozenset(secondary_denied)
        self.filesystem_verbs = frozenset(filesystem_verbs)

    def scan_deny_patterns(self, command: str) -> DenyPattern | None:
        for deny in self.deny_patterns:
            if deny.pattern.search(command):
                return deny
        return None

    def _not_allowed_reason(self, verb: str, context: str = "Command") -> str:
        allowed = ", ".join(sorted(self.allowed_commands))
        return f"{context} '{verb}' is not in the allowed list. Allowed commands are: {allowed}"

    def _path_candidates(self, parsed: ParsedCommand) -> list[str]:
        candidates: list[str] = []
        for segment in parsed.segments:
            candidates.extend(segment.redirect_targets)
            if not segment.words:
                continue
            verb, args = _resolve_wrapped(segment.words)
            if verb is None:
                continue
            filesystem = verb in self.filesystem_verbs
            plain = [word for word in args if not _looks_like_flag(word)]
            if verb == "cd" and not plain:
                # Bare ``cd`` moves the shell to $HOME.
                plain = ["~"]
            candidates.extend(word for word in plain if filesystem or _looks_like_path(word))
            for word in args:
                if _looks_like_flag(word):
                    value = _flag_value(word)
                    if value and (filesystem or _looks_like_path(value)):
                        candidates.append(value)
        return candidates

    def _chained_verb_denial(self, parsed: ParsedCommand) -> CommandDecision | None:
        main_verb = parsed.main_verb
        for segment in parsed.segments:
            if not segment.words:
                continue
            for depth, (verb, args) in enumerate(_nested_commands(segment.words)):
                if verb not in self.allowed_commands:
                    context = "Chained command" if depth == 0 else "Nested command"
                    reason = self._not_allowed_reason(verb, context)
                    return CommandDecision.deny("allow-list", verb, reason, main_verb=main_verb)
                option = _option_denial(verb, args)
                if option is not None:
                    word, reason = option
                    return CommandDecision.deny(
                        "secondary-token", word, reason, main_verb=main_verb
                    )
        return None

    async def _glob_denial(
        self, candidate: str, base_dir: str, main_verb: str | None
    ) -> CommandDecision | None:
        """Confine every path the shell could expand a wildcard argument to."""
        if _matches_parent(candidate):
            return CommandDecision.deny(
                "path-argument",
                candidate,
                f"Access denied - wildcard {candidate} can match the parent directory",
                main_verb=main_verb,
            )
        try:
            matches = await anyio.to_thread.run_sync(_expand_glob, candidate, base_dir)
        except (OSError, ResolutionError) as exc:
            logger.warning("Wildcard expansion failed for %r: %s", candidate, exc)
            matches = None
        if matches is None:
            return CommandDecision.deny(
                "path-argument",
                candidate,
                f"Access denied - cannot verify every path matched by {candidate}",
                main_verb=main_verb,
            )
        for match in matches:
            decision = await self.checker.check(match, base=base_dir)
            if not decision.allowed:
                return CommandDecision.deny(
                    "path-argument", match, _access_reason(match, decision), main_verb=main_verb
                )
        return None

    async def evaluate(self, spec: CommandSpec, current_dir: str) -> CommandDecision:
        """Run ``spec`` through the gate pipeline.

        ``current_dir`` is the working-directory state read by the caller; it
        is the default execution root and the base for relative paths.
        """
        command = spec.command

        deny = self.scan_deny_patterns(command)
        if deny is not None:
            return CommandDecision.deny(
                "deny-pattern",
                deny.name,
                f"Potentially harmful command detected ({deny.description})",
            )

        parsed = tokenize(command)
        main_verb = parsed.main_verb
        if main_verb is None:
            return CommandDecision.deny("allow-list", "", "Command cannot be empty")

        if main_verb not in self.allowed_commands:
            return CommandDecision.deny(
                "allow-list", main_verb, self._not_allowed_reason(main_verb), main_verb=main_verb
            )

        for index, token in enumerate(parsed.tokens):
            if index == parsed.main_index:
                continue
            if token in self.secondary_denied or _basename(token) in self.secondary_denied:
                return CommandDecision.deny(
                    "secondary-token",
                    token,
                    f"Command contains disallowed token '{token}' "
                    "(nested shells, interpreters and privilege escalation are not permitted)",
                    main_verb=main_verb,
                )

        chained = self._chained_verb_denial(parsed)
        if chained is not None:
            return chained

        target_dir = spec.working_dir or current_dir
        workdir_decision = await self.checker.check(target_dir, base=current_dir)
        base_dir = workdir_decision.canonical or current_dir

        for candidate in self._path_candidates(parsed):
            if _EXPANSION_RE.search(candidate):
                return CommandDecision.deny(
                    "path-argument",
                    candidate,
                    f"Access denied - cannot verify path {candidate} containing shell expansion",
                    main_verb=main_verb,
                )
            if _GLOB_RE.search(candidate):
                denied = await self._glob_denial(candidate, base_dir, main_verb)
                if denied is not None:
                    return denied
            decision = await self.checker.check(candidate, base=base_dir)
            if not decision.allowed:
                return CommandDecision.deny(
                    "path-argument",
                    candidate,
                    _access_reason(candidate, decision),
                    main_verb=main_verb,
                )

        if not workdir_decision.allowed or workdir_decision.canonical is None:
            return CommandDecision.deny(
                "working-directory",
                target_dir,
                _access_reason(target_dir, workdir_decision),
                main_verb=main_verb,
            )

        return CommandDecision(
            permitted=True, main_verb=main_verb, working_dir=workdir_decision.canonical
        )

    async def enforce(self, spec: CommandSpec, current_dir: str) -> CommandDecision:
        """Evaluate ``spec`` and raise the matching error when it is denied."""
        decision = await self.evaluate(spec, current_dir)
        if decision.permitted:
            logger.info("Command permitted: %s (cwd=%s)", spec.command, decision.working_dir)
            return decision

        logger.warning(
            "Command denied at %s stage (offending=%r): %s",
            decision.stage,
            decision.offending,
            spec.command,
        )
        get_metrics_registry().record_denial(decision.stage or "unknown")
        raise denial_error(decision)


def denial_error(decision: CommandDecision) -> GatewayError:
    """Map a denied decision onto the error taxonomy."""
    offending = decision.offending or ""
    reason = decision.reason or "Command denied"
    if decision.stage == "deny-pattern":
        return HarmfulPatternDetected(offending, offending, message=reason)
    if decision.stage in ("path-argument", "working-directory"):
        return AccessDenied(offending, message=reason)
    return CommandNotAllowed(offending, reason)


__all__ = [
    "CommandGate",
    "CommandSegment",
    "ParsedCommand",
    "denial_error",
    "tokenize",
]
