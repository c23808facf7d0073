"""
Argument grammar shared by the document commands.

Tokens starting with ``-`` are flags, everything else is positional. A flag
takes its value from ``key=value`` or from the next token when that token does
not start with ``-``; otherwise its value is the string ``"true"``.
"""
import dataclasses
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import json_util
from bson.errors import BSONError

from pgdoc.common.errors import ErrorCode, PayloadError, UsageError
from pgdoc.models import DEFAULT_LIMIT, InvocationMode, InvocationRequest

TRUE_SENTINEL = "true"

SHORT_ALIASES = {
    "c": "collection",
    "q": "query",
    "p": "project",
    "s": "sort",
    "l": "limit",
    "i": "insert",
    "h": "help",
    "o": "index-options",
}

LONG_FLAGS = {
    "collection",
    "query",
    "project",
    "sort",
    "limit",
    "insert",
    "help",
    "create-index",
    "index-options",
}

MAX_POSITIONALS = 3
HELP_TOKENS = ("-h", "--help")

_DIGITS = re.compile(r"^[0-9]+$")


def document_usage(prog: str) -> str:
    return (
        f"Usage: {prog} <collection> ['<query JSON>'] ['<projection JSON>'] "
        "[--query='{}'] [--project='{}'] [--sort='{}'] [--limit=50] [--insert='{}'] "
        "[--create-index='{}'] [--index-options='{}']\n"
        f"Short: {prog} <collection> [-q '{{}}'] [-p '{{}}'] [-s '{{}}'] [-l 50] [-i '{{}}'] "
        "[-c '{}'] [-o '{}']\n"
        "\n"
        "  -c, --collection     collection name (a JSON object value means --create-index)\n"
        "  -q, --query          filter, JSON object (default {})\n"
        "  -p, --project        projection, JSON object (default {})\n"
        "  -s, --sort           sort specification, JSON object\n"
        f"  -l, --limit          maximum documents returned, positive integer (default {DEFAULT_LIMIT})\n"
        "  -i, --insert         document to insert, JSON object\n"
        "      --create-index   index key specification, JSON object\n"
        "  -o, --index-options  index options such as name or unique, JSON object\n"
        "  -h, --help           show this message and exit"
    )


def raw_usage(prog: str, what: str) -> str:
    return f"Usage: {prog} <{what}...>\n\nAll arguments are joined with spaces and sent as a single {what}."


@dataclasses.dataclass
class ParsedArgs:
    """Flags by canonical long name, plus positionals in order."""
    flags: Dict[str, str] = dataclasses.field(default_factory=dict)
    positionals: List[str] = dataclasses.field(default_factory=list)
    unknown: List[str] = dataclasses.field(default_factory=list)

    @property
    def wants_help(self) -> bool:
        return "help" in self.flags


def _strip_dashes(key: str) -> str:
    return re.sub(r"^--?", "", key)


def _split_flags(argv: Sequence[str]) -> Tuple[List[Tuple[str, str]], List[str]]:
    raw_flags: List[Tuple[str, str]] = []
    positionals: List[str] = []

    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg.startswith("-"):
            if "=" in arg:
                key, value = arg.split("=", 1)
                raw_flags.append((_strip_dashes(key), value))
            else:
                next_arg = argv[i + 1] if i + 1 < len(argv) else None
                if next_arg is not None and not next_arg.startswith("-"):
                    raw_flags.append((_strip_dashes(arg), next_arg))
                    i += 1
                else:
                    raw_flags.append((_strip_dashes(arg), TRUE_SENTINEL))
        else:
            positionals.append(arg)
        i += 1

    return raw_flags, positionals


def tokenize(argv: Sequence[str]) -> ParsedArgs:
    """Splits argv into flags and positionals and resolves short aliases.

    The long form of a flag wins over its short alias regardless of order.
    Repeating the same form is last-writer-wins.
    """
    raw_flags, positionals = _split_flags(argv)

    long_values: Dict[str, str] = {}
    short_values: Dict[str, str] = {}
    unknown: List[str] = []

    for key, value in raw_flags:
        if key in SHORT_ALIASES:
            name = SHORT_ALIASES[key]
            if key == "c" and value.lstrip().startswith("{"):
                name = "create-index"
            short_values[name] = value
        elif key in LONG_FLAGS:
            long_values[key] = value
        else:
            unknown.append(key)

    flags = dict(short_values)
    flags.update(long_values)
    return ParsedArgs(flags=flags, positionals=positionals, unknown=unknown)


def parse_json_object(name: str, raw: str) -> Dict[str, Any]:
    """Parses a JSON-bearing argument as a (MongoDB extended) JSON object.

    Raises:
        PayloadError: If the text is not valid JSON or not an object.
    """
    try:
        value = json_util.loads(raw)
    except (ValueError, TypeError, BSONError) as e:
        raise PayloadError(f"--{name} is not valid JSON", ErrorCode.INVALID_JSON, detail=str(e)) from e
    if not isinstance(value, dict):
        raise PayloadError(
            f"--{name} must be a JSON object, got {type(value).__name__}", ErrorCode.INVALID_DOCUMENT
        )
    return value


def parse_limit(raw: str) -> int:
    text = raw.strip()
    if not _DIGITS.match(text) or int(text) <= 0:
        raise UsageError(f"--limit must be a positive integer, got '{raw}'", ErrorCode.INVALID_LIMIT)
    return int(text)


def _or_empty_object(raw: Optional[str]) -> str:
    # Absent means match-all; an explicitly empty value is malformed JSON.
    return "{}" if raw is None else raw


def build_document_request(parsed: ParsedArgs) -> InvocationRequest:
    """Turns tokenized arguments into a DocumentFind, DocumentInsert or CreateIndex request.

    Positionals fill ``[collection, query, projection]``; a flag for the same
    field takes precedence over its positional.

    Raises:
        UsageError: Unknown flags, missing collection, conflicting modes or a bad limit.
        PayloadError: Malformed JSON in any JSON-bearing argument.
    """
    if parsed.unknown:
        names = ", ".join(f"'{name}'" for name in parsed.unknown)
        raise UsageError(f"Unknown option(s): {names}", ErrorCode.UNKNOWN_FLAG)
    if len(parsed.positionals) > MAX_POSITIONALS:
        raise UsageError(
            f"Expected at most {MAX_POSITIONALS} positional arguments, got {len(parsed.positionals)}",
            ErrorCode.TOO_MANY_ARGUMENTS,
        )

    flags = parsed.flags
    positionals = parsed.positionals + [None] * (MAX_POSITIONALS - len(parsed.positionals))

    target = flags.get("collection", positionals[0])
    if flags.get("collection") == TRUE_SENTINEL:
        raise UsageError("--collection requires a value", ErrorCode.MISSING_TARGET)
    if not target:
        raise UsageError("A collection name is required", ErrorCode.MISSING_TARGET)

    find_fields = {
        "query": flags.get("query", positionals[1]),
        "project": flags.get("project", positionals[2]),
        "sort": flags.get("sort"),
        "limit": flags.get("limit"),
    }
    given = [name for name, value in find_fields.items() if value is not None]
    insert_raw = flags.get("insert")
    index_raw = flags.get("create-index")
    options_raw = flags.get("index-options")

    if insert_raw is not None and index_raw is not None:
        raise UsageError("--insert cannot be combined with --create-index", ErrorCode.CONFLICTING_MODES)
    for mode_flag, raw in (("insert", insert_raw), ("create-index", index_raw)):
        if raw is not None and given:
            raise UsageError(
                f"--{mode_flag} cannot be combined with " + ", ".join(f"--{name}" for name in given),
                ErrorCode.CONFLICTING_MODES,
            )
    if options_raw is not None and index_raw is None:
        raise UsageError("--index-options requires --create-index", ErrorCode.CONFLICTING_MODES)

    if insert_raw is not None:
        return InvocationRequest(
            mode=InvocationMode.DOCUMENT_INSERT,
            target=target,
            payload=parse_json_object("insert", insert_raw),
        )

    if index_raw is not None:
        keys = parse_json_object("create-index", index_raw)
        if not keys:
            raise PayloadError("--create-index needs at least one key", ErrorCode.INVALID_DOCUMENT)
        options = parse_json_object("index-options", options_raw) if options_raw is not None else {}
        return InvocationRequest(
            mode=InvocationMode.CREATE_INDEX,
            target=target,
            payload=keys,
            index_options=options,
        )

    limit_raw = find_fields["limit"]
    return InvocationRequest(
        mode=InvocationMode.DOCUMENT_FIND,
        target=target,
        filter=parse_json_object("query", _or_empty_object(find_fields["query"])),
        projection=parse_json_object("project", _or_empty_object(find_fields["project"])),
        sort=parse_json_object("sort", find_fields["sort"]) if find_fields["sort"] is not None else None,
        limit=parse_limit(limit_raw) if limit_raw is not None else DEFAULT_LIMIT,
    )


def parse_document_args(argv: Sequence[str]) -> Optional[InvocationRequest]:
    """Parses document-command argv. Returns None when help was requested."""
    parsed = tokenize(argv)
    if parsed.wants_help:
        return None
    return build_document_request(parsed)


def wants_raw_help(argv: Sequence[str]) -> bool:
    return bool(argv) and argv[0] in HELP_TOKENS


def build_raw_request(argv: Sequence[str], what: str = "statement") -> InvocationRequest:
    """Joins argv into one statement, as typed on the command line."""
    statement = " ".join(argv).strip()
    if not statement:
        raise UsageError(f"A {what} is required", ErrorCode.MISSING_STATEMENT)
    return InvocationRequest(mode=InvocationMode.RAW_QUERY, statement=statement)
