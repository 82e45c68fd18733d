#!/usr/bin/env python3
"""
memberscope - Nested Directory Group Membership Resolver
========================================================

Command-line interface for resolving group membership.

Usage:
    # From a JSON directory export
    python -m memberscope "Tier0 Admins" --snapshot tenant.json --csv

    # Live against Active Directory
    python -m memberscope "Tier0 Admins" -s 192.168.1.100 -d corp.local -u auditor -p Password123

    # By object id, failing on stale members
    python -m memberscope --group-id S-1-5-21-...-1107 --snapshot export.zip --on-error abort

Exit Codes:
    0   Success
    1   Unexpected error
    2   Usage or configuration error
    3   Group not found
    4   Directory connection failure

Environment Variables:
    MEMBERSCOPE_LDAP_PASSWORD   LDAP bind password
    MEMBERSCOPE_LDAP_NTLM_HASH  NTLM hash for Pass-the-Hash binds

Author: memberscope Project
"""

import argparse
import sys
from typing import Optional

from . import __version__
from .config import MemberscopeConfig, LOOKUP_ERROR_POLICIES
from .directory import SnapshotDirectoryClient, LDAPDirectoryClient
from .errors import (
    ConfigurationError, DirectoryConnectionError, GroupNotFoundError, ObjectNotFoundError
)
from .reporting.report_builder import ReportBuilder, format_member_table, generate_text_report
from .resolution import GroupMembershipResolver


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_CONNECTION = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memberscope",
        description="memberscope - Nested Directory Group Membership Resolver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resolve from a JSON snapshot and export CSV
  %(prog)s "Tier0 Admins" --snapshot tenant.json --csv

  # Live LDAP collection
  %(prog)s "Tier0 Admins" -s 192.168.1.100 -d corp.local -u auditor -p Password123

  # Everything, into a custom directory
  %(prog)s "Tier0 Admins" --snapshot export.zip --csv --json --html -o ./results
        """
    )

    target_group = parser.add_argument_group("Target")
    target_group.add_argument(
        "group",
        nargs="?",
        help="Display name of the group to resolve"
    )
    target_group.add_argument(
        "--group-id",
        dest="group_id",
        help="Object id of the group to resolve (instead of a name)"
    )

    source_group = parser.add_argument_group("Directory Source")
    source_group.add_argument(
        "--snapshot",
        nargs="+",
        metavar="FILE",
        help="JSON or zip directory export(s) to read instead of a live directory"
    )
    source_group.add_argument("-s", "--server", help="Domain controller IP address or hostname")
    source_group.add_argument("-d", "--domain", help="Domain name (e.g., corp.local)")
    source_group.add_argument("-u", "--username", help="Username for LDAP authentication")
    source_group.add_argument("-p", "--password", help="Password for LDAP authentication")
    source_group.add_argument(
        "--ntlm-hash",
        dest="ntlm_hash",
        help="NTLM hash for Pass-the-Hash authentication (instead of password)"
    )
    source_group.add_argument("--ssl", action="store_true", help="Use LDAPS")

    resolution_group = parser.add_argument_group("Resolution")
    resolution_group.add_argument(
        "--on-error",
        dest="on_error",
        choices=LOOKUP_ERROR_POLICIES,
        help="What to do when a member lookup fails (default: skip)"
    )
    resolution_group.add_argument(
        "--max-depth",
        dest="max_depth",
        type=int,
        help="Deepest nesting level to expand (default: unlimited)"
    )

    output_group = parser.add_argument_group("Output")
    output_group.add_argument("-o", "--output", help="Output directory for exports (default: ./output)")
    output_group.add_argument("--csv", action="store_true", help="Export the member list as CSV")
    output_group.add_argument("--json", action="store_true", help="Export a JSON report")
    output_group.add_argument("--html", action="store_true", help="Export an interactive membership graph")
    output_group.add_argument("--report", action="store_true", help="Print the full text report instead of the table")

    parser.add_argument("-c", "--config", help="JSON configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"memberscope {__version__}")
    return parser


def build_config(args: argparse.Namespace) -> MemberscopeConfig:
    """Merge the optional config file with command-line overrides."""
    config = MemberscopeConfig.from_file(args.config) if args.config else MemberscopeConfig()

    ldap = config.ldap
    for attr in ("server", "domain", "username", "password", "ntlm_hash"):
        value = getattr(args, attr)
        if value:
            setattr(ldap, attr, value)
    if args.ssl:
        ldap.use_ssl = True
        ldap.port = 636

    if args.on_error:
        config.resolver.on_lookup_error = args.on_error
    if args.max_depth is not None:
        if args.max_depth < 1:
            raise ConfigurationError(f"--max-depth must be at least 1, got {args.max_depth}")
        config.resolver.max_depth = args.max_depth

    if args.output:
        config.output.output_dir = args.output
    config.output.export_csv = config.output.export_csv or args.csv
    config.output.export_json = config.output.export_json or args.json
    config.output.export_html = config.output.export_html or args.html

    config.verbose = config.verbose or args.verbose
    return config


def build_client(args: argparse.Namespace, config: MemberscopeConfig):
    """Create the directory client selected on the command line."""
    if args.snapshot:
        client = SnapshotDirectoryClient(verbose=config.verbose)
        client.load_files(args.snapshot)
        return client

    if not (config.ldap.server and config.ldap.domain):
        raise ConfigurationError("Provide --snapshot FILE or LDAP connection details (-s SERVER -d DOMAIN)")

    return LDAPDirectoryClient(config.ldap, verbose=config.verbose)


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.group and not args.group_id:
        parser.error("Provide a group name or --group-id")

    try:
        config = build_config(args)
        client = build_client(args, config)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        with client:
            resolver = GroupMembershipResolver(client, config.resolver, verbose=config.verbose)
            if args.group_id:
                result = resolver.resolve_detailed(args.group_id)
            else:
                result = resolver.resolve_by_name(args.group)

        if args.report:
            print(generate_text_report(result))
        else:
            print(format_member_table(result.records))
            print(f"\n{len(result.records)} members across {len(result.visited_groups)} groups")
            if result.skipped:
                print(f"[!] {len(result.skipped)} members could not be resolved")
            for warning in result.warnings:
                print(f"[!] {warning}")

        output = config.output
        if output.export_csv or output.export_json or output.export_html:
            builder = ReportBuilder(output.output_dir, output.file_prefix, verbose=config.verbose)
            paths = builder.export(
                result,
                as_csv=output.export_csv,
                as_json=output.export_json,
                as_html=output.export_html
            )
            print("\nResults saved to:")
            for fmt, path in paths.items():
                print(f"  - {fmt.upper()}: {path}")

        return EXIT_OK

    except GroupNotFoundError as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except DirectoryConnectionError as e:
        print(f"[!] Directory connection failed: {e}", file=sys.stderr)
        return EXIT_CONNECTION
    except ObjectNotFoundError as e:
        print(f"[!] Resolution aborted: {e}", file=sys.stderr)
        return EXIT_ERROR
    except ConfigurationError as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_USAGE
    except Exception as e:
        print(f"\n[!] Error: {e}", file=sys.stderr)
        if config.verbose:
            import traceback
            traceback.print_exc()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
