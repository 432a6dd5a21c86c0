import argparse
import json
import sys
from pathlib import Path
from typing import List

from emailgen.config import Settings
from emailgen.diff import generate_modifications
from emailgen.errors import EmailGenError, InvalidSuggestionError
from emailgen.log_config import configure_logging
from emailgen.models import Modification, Severity
from emailgen.patch.engine import apply_modifications, revert_modifications
from emailgen.suggestions import parse_assistant_reply, parse_modifications

# --- Helper Utilities ---

def _read_text(path: Path) -> str:
    if not path.exists():
        raise EmailGenError(f"File not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return f.read()

def _load_modifications(path: Path) -> List[Modification]:
    """
    Accepts a JSON list of modifications, an object with a "modifications"
    list, or a raw model answer containing such an object.
    """
    text = _read_text(path)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return parse_assistant_reply(text).modifications

    if isinstance(data, list):
        return parse_modifications(data)
    if isinstance(data, dict):
        return parse_modifications(data.get("modifications") or [])
    raise InvalidSuggestionError(f"{path} does not contain modifications")

def _write_or_print(text: str, output: Path):
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Saved to {output}", file=sys.stderr)
    else:
        sys.stdout.write(text)

# --- Command Handlers ---

def handle_apply(args):
    document = _read_text(args.document)
    modifications = _load_modifications(args.edits)
    print(f"Applying {len(modifications)} modifications...", file=sys.stderr)
    _write_or_print(apply_modifications(document, modifications), args.output)

def handle_revert(args):
    document = _read_text(args.document)
    # The edits file describes changes already present in the document
    modifications = [
        m.model_copy(update={"applied": True}) for m in _load_modifications(args.edits)
    ]
    print(f"Reverting {len(modifications)} modifications...", file=sys.stderr)
    _write_or_print(revert_modifications(document, modifications), args.output)

def handle_diff(args):
    modifications = generate_modifications(_read_text(args.original), _read_text(args.modified))

    if args.json:
        print(json.dumps([m.to_wire() for m in modifications], indent=2))
        return

    print(f"Found {len(modifications)} changes:", file=sys.stderr)
    for m in modifications:
        print(f"[~] lines {m.start_line}-{m.end_line}: {m.description}")
        for line in m.original_lines:
            print(f"  - {line}")
        for line in m.new_lines:
            print(f"  + {line}")

def handle_qa(args):
    from emailgen.services.qa import QAService
    from emailgen.store import build_store

    settings = Settings.from_env()
    report = QAService(build_store(settings)).validate(_read_text(args.document))

    if args.json:
        print(json.dumps(report.model_dump(by_alias=True, mode="json"), indent=2))
    else:
        for r in report.results:
            mark = "PASS" if r.is_passing else "FAIL"
            print(f"[{mark}] {r.rule_name} ({r.severity.value}): {r.message}")
        if report.lint:
            for error in report.lint.errors:
                print(f"[LINT ERROR] {error}")
            for warning in report.lint.warnings:
                print(f"[LINT WARN] {warning}")
        print(f"Result: {'passed' if report.passed else 'failed'}", file=sys.stderr)

    failing = [r for r in report.results if not r.is_passing and r.severity == Severity.ERROR]
    if failing:
        sys.exit(1)

def handle_serve(args):
    import uvicorn

    from emailgen.api.app import create_app

    settings = Settings.from_env()
    configure_logging(
        verbosity=max(args.verbose, settings.log_verbosity),
        json_output=args.log_json or settings.log_json,
    )
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)

# --- Main Entrypoint ---

def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="emailgen",
        description="EmailGen Studio: HTML email patching, QA and API server"
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    # Command: apply
    p_apply = subparsers.add_parser("apply", help="Apply modifications to an HTML document")
    p_apply.add_argument("document", type=Path, help="HTML document")
    p_apply.add_argument("edits", type=Path, help="JSON modifications or raw model answer")
    p_apply.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_apply.set_defaults(func=handle_apply)

    # Command: revert
    p_revert = subparsers.add_parser("revert", help="Revert previously applied modifications")
    p_revert.add_argument("document", type=Path, help="HTML document with the modifications applied")
    p_revert.add_argument("edits", type=Path, help="The JSON modifications that were applied")
    p_revert.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_revert.set_defaults(func=handle_revert)

    # Command: diff
    p_diff = subparsers.add_parser("diff", help="Express the changes between two documents as modifications")
    p_diff.add_argument("original", type=Path, help="Original HTML")
    p_diff.add_argument("modified", type=Path, help="Modified HTML")
    p_diff.add_argument("--json", action="store_true", help="Output raw JSON modifications")
    p_diff.set_defaults(func=handle_diff)

    # Command: qa
    p_qa = subparsers.add_parser("qa", help="Run QA rules and email lint on a document")
    p_qa.add_argument("document", type=Path, help="HTML document")
    p_qa.add_argument("--json", action="store_true", help="Output the JSON report")
    p_qa.set_defaults(func=handle_qa)

    # Command: serve
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=handle_serve)

    args = parser.parse_args(argv)
    configure_logging(verbosity=args.verbose, json_output=args.log_json)

    try:
        args.func(args)
    except EmailGenError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    main()
