#!/usr/bin/env python3
"""
Command-line checks for routing configuration payloads.

    python -m routing_rules normalize-tag PatientName "0010, 0020"
    python -m routing_rules operators --parameter SOURCE_IP
    python -m routing_rules validate-rule rule.json
    python -m routing_rules validate-backend backend.json --form
    python -m routing_rules validate-source source.json --type dimse_qr

Validation commands print the canonical payload on success, or the list of
issues and exit with status 1.
"""
import argparse
import json
import sys
from typing import Any, List, Optional

import structlog
from pydantic import BaseModel

from routing_rules.core.exceptions import InvalidTagIdentifierError
from routing_rules.core.logging_config import configure_cli_logging
from routing_rules.schemas.enums import AssociationParameter, PollingSourceType
from routing_rules.schemas.validation import ValidationResult
from routing_rules.services.operator_catalog import OPERATOR_CATALOG, operators_for_parameter
from routing_rules.services.validation import (
    validate_polling_source, validate_rule_create, validate_rule_update,
    validate_storage_backend_create, validate_storage_backend_form, validate_storage_backend_update,
)
from routing_rules.utils.dicom_tags import lookup_by_tag_pair, normalize_tag, tag_pair_for

log = structlog.get_logger(__name__)


def _jsonable(value: Any, partial: bool = False) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json', exclude_unset=partial)
    if isinstance(value, list):
        return [_jsonable(item, partial) for item in value]
    return value


def _load_json(path: str) -> Any:
    if path == '-':
        return json.load(sys.stdin)
    with open(path, 'r', encoding='utf-8') as fh:
        return json.load(fh)


def _report(result: ValidationResult, partial: bool = False) -> int:
    if result.ok:
        print(json.dumps(_jsonable(result.value, partial), indent=2))
        return 0
    issues = [issue.model_dump(mode='json') for issue in result.issues]
    for issue in issues:
        issue['field'] = ".".join(str(part) for part in issue['loc'])
    print(json.dumps({'ok': False, 'issues': issues}, indent=2))
    return 1


def cmd_normalize_tag(args: argparse.Namespace) -> int:
    status = 0
    rows = []
    for raw in args.tags:
        try:
            canonical = normalize_tag(raw, require_known=args.strict)
        except InvalidTagIdentifierError as e:
            rows.append({'input': raw, 'error': e.reason})
            status = 1
            continue
        tag = tag_pair_for(canonical)
        info = lookup_by_tag_pair(tag) if tag else None
        rows.append({
            'input': raw,
            'canonical': canonical,
            'tag': tag,
            'dictionary': info._asdict() if info else None,
        })
    print(json.dumps(rows, indent=2))
    return status


def cmd_operators(args: argparse.Namespace) -> int:
    rows = [
        {
            'op': op.value,
            'arity': OPERATOR_CATALOG[op].arity.value,
            'ip_only': OPERATOR_CATALOG[op].ip_only,
        }
        for op in operators_for_parameter(args.parameter)
    ]
    print(json.dumps(rows, indent=2))
    return 0


def cmd_validate_rule(args: argparse.Namespace) -> int:
    data = _load_json(args.file)
    result = validate_rule_update(data) if args.update else validate_rule_create(data)
    return _report(result, partial=args.update)


def cmd_validate_backend(args: argparse.Namespace) -> int:
    data = _load_json(args.file)
    if args.update:
        return _report(validate_storage_backend_update(data), partial=True)
    if args.form:
        return _report(validate_storage_backend_form(data))
    return _report(validate_storage_backend_create(data))


def cmd_validate_source(args: argparse.Namespace) -> int:
    data = _load_json(args.file)
    return _report(validate_polling_source(data, args.type, update=args.update), partial=args.update)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='routing_rules', description="DICOM routing rule validation tool")
    parser.add_argument('--log-level', default='WARNING', help='Log level for diagnostics written to stderr (default: WARNING)')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    tag_parser = subparsers.add_parser('normalize-tag', help='Print the canonical form of DICOM tag identifiers')
    tag_parser.add_argument('tags', nargs='+', help="Keyword (PatientName) or group,element pair (0010,0010)")
    tag_parser.add_argument('--strict', action='store_true', help='Require keywords to exist in the DICOM dictionary')
    tag_parser.set_defaults(func=cmd_normalize_tag)

    ops_parser = subparsers.add_parser('operators', help='List match operators and the value each one takes')
    ops_parser.add_argument('--parameter', choices=[p.value for p in AssociationParameter],
                            help='Association parameter to list operators for (default: dataset tags)')
    ops_parser.set_defaults(func=cmd_operators)

    rule_parser = subparsers.add_parser('validate-rule', help='Validate a rule create (or update) payload')
    rule_parser.add_argument('file', help="JSON file, or '-' for stdin")
    rule_parser.add_argument('--update', action='store_true', help='Treat the payload as a partial update')
    rule_parser.set_defaults(func=cmd_validate_rule)

    backend_parser = subparsers.add_parser('validate-backend', help='Validate a storage backend payload')
    backend_parser.add_argument('file', help="JSON file, or '-' for stdin")
    mode = backend_parser.add_mutually_exclusive_group()
    mode.add_argument('--update', action='store_true', help='Treat the payload as a partial update')
    mode.add_argument('--form', action='store_true', help='Treat the payload as the flat form shape')
    backend_parser.set_defaults(func=cmd_validate_backend)

    source_parser = subparsers.add_parser('validate-source', help='Validate a polled source payload')
    source_parser.add_argument('file', help="JSON file, or '-' for stdin")
    source_parser.add_argument('--type', required=True, choices=[t.value for t in PollingSourceType])
    source_parser.add_argument('--update', action='store_true', help='Treat the payload as a partial update')
    source_parser.set_defaults(func=cmd_validate_source)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    configure_cli_logging(args.log_level)

    try:
        return args.func(args)
    except (OSError, json.JSONDecodeError) as e:
        log.error("Could not read input", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
