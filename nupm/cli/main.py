"""
nupm CLI - command line front end for the nupm package manager.

Usage:
    nupm search <text>          Search packages across sources
    nupm find <id>              Find a package by id
    nupm install <id>...        Install packages and their dependencies
    nupm uninstall <id>...      Remove installed packages
    nupm list [name]            List installed packages
    nupm depends <id>           Show dependency candidates
    nupm download <id>...       Save package archives
    nupm source list|add|remove Manage package sources
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from .. import __version__
from ..core.config import load_config
from ..core.hooks import ScriptHooks
from ..core.operations import PackageOperations
from ..core.progress import CancellationToken
from .commands import (
    cmd_search, cmd_find, cmd_list, cmd_depends,
    cmd_install, cmd_uninstall, cmd_download,
    cmd_source_list, cmd_source_add, cmd_source_remove,
)


def default_config_path() -> Path:
    """$XDG_CONFIG_HOME/nupm/config.yaml (~/.config when unset)."""
    base = os.environ.get('XDG_CONFIG_HOME') or str(Path.home() / '.config')
    return Path(base) / 'nupm' / 'config.yaml'


def default_destination() -> Path:
    """$XDG_DATA_HOME/nupm/packages (~/.local/share when unset)."""
    base = os.environ.get('XDG_DATA_HOME') or str(Path.home() / '.local' / 'share')
    return Path(base) / 'nupm' / 'packages'


class AliasedSubParsersAction(argparse._SubParsersAction):
    """Custom action to support command aliases in argparse."""

    def add_parser(self, name, **kwargs):
        aliases = kwargs.pop('aliases', [])
        parser = super().add_parser(name, **kwargs)

        for alias in aliases:
            self._name_parser_map[alias] = parser

        return parser


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with all commands and aliases."""

    parser = argparse.ArgumentParser(
        prog='nupm',
        description='Package resolution and installation for NuGet feeds',
        epilog='Use "nupm <command> --help" for command-specific help.'
    )
    parser.add_argument('--version', '-V', action='version', version=f'nupm {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--nocolor', action='store_true', help='Disable colored output')
    parser.add_argument('--config', metavar='FILE',
                        help='Configuration file (default: $XDG_CONFIG_HOME/nupm/config.yaml)')
    parser.add_argument('--destination', '-d', metavar='DIR',
                        help='Install root (overrides the configuration)')

    # Shared source/filter options
    source_parent = argparse.ArgumentParser(add_help=False)
    source_parent.add_argument('--source', '-s', action='append', metavar='NAME|URI|DIR',
                               help='Source to query (repeatable, default: all registered)')
    source_parent.add_argument('--prerelease', action='store_true',
                               help='Consider prerelease versions')
    source_parent.add_argument('--skip-validate', action='store_true',
                               help='Do not check ad-hoc source locations')
    source_parent.add_argument('--json', action='store_true', help='JSON output for scripting')

    filter_parent = argparse.ArgumentParser(add_help=False)
    filter_parent.add_argument('--required-version', metavar='VERSION',
                               help='Exact version')
    filter_parent.add_argument('--min-version', metavar='VERSION',
                               help='Minimum version (inclusive)')
    filter_parent.add_argument('--max-version', metavar='VERSION',
                               help='Maximum version (inclusive)')
    filter_parent.add_argument('--all-versions', '-a', action='store_true',
                               help='Show every version, not only the latest')
    filter_parent.add_argument('--contains', metavar='TEXT',
                               help='Id or description must contain TEXT')
    filter_parent.add_argument('--tag', '-t', action='append', metavar='TAG',
                               help='Package must carry TAG (repeatable)')

    parser.register('action', 'parsers', AliasedSubParsersAction)
    subparsers = parser.add_subparsers(dest='command', title='commands', metavar='<command>')

    # =========================================================================
    # search / s
    # =========================================================================
    search_parser = subparsers.add_parser(
        'search', aliases=['s'], help='Search packages',
        parents=[source_parent, filter_parent]
    )
    search_parser.add_argument('query', nargs='?', default='',
                               help='Text or wildcard pattern (*, ?, [...])')

    # =========================================================================
    # find / f
    # =========================================================================
    find_parser = subparsers.add_parser(
        'find', aliases=['f'], help='Find a package by id',
        parents=[source_parent, filter_parent]
    )
    find_parser.add_argument('package', help='Package id, reference or .nupkg file')

    # =========================================================================
    # install / i
    # =========================================================================
    install_parser = subparsers.add_parser(
        'install', aliases=['i'], help='Install packages',
        parents=[source_parent]
    )
    install_parser.add_argument('packages', nargs='+',
                                help='Package ids, references or .nupkg files')
    install_parser.add_argument('--version', dest='pkg_version', metavar='VERSION',
                                help='Version to install (default: latest)')
    install_parser.add_argument('--skip-dependencies', action='store_true',
                                help='Do not install dependencies')
    install_parser.add_argument('--continue-on-failure', action='store_true',
                                help='Keep going after a package fails')
    install_parser.add_argument('--exclude-version', action='store_true',
                                help='Install into <id>/ instead of <id>.<version>/')
    install_parser.add_argument('--scripts', action='store_true',
                                help='Run the tools/*.sh scripts shipped by packages')

    # =========================================================================
    # uninstall / erase / e
    # =========================================================================
    uninstall_parser = subparsers.add_parser(
        'uninstall', aliases=['erase', 'e'], help='Uninstall packages'
    )
    uninstall_parser.add_argument('packages', nargs='+', help='Package ids')
    uninstall_parser.add_argument('--version', dest='pkg_version', metavar='VERSION',
                                  help='Only this version (default: every version)')
    uninstall_parser.add_argument('--scripts', action='store_true',
                                  help='Run the tools/*.sh scripts shipped by packages')

    # =========================================================================
    # list / l
    # =========================================================================
    list_parser = subparsers.add_parser('list', aliases=['l'], help='List installed packages')
    list_parser.add_argument('name', nargs='?', help='Filter by id')
    list_parser.add_argument('--json', action='store_true', help='JSON output for scripting')

    # =========================================================================
    # depends / d
    # =========================================================================
    depends_parser = subparsers.add_parser(
        'depends', aliases=['d'], help='Show package dependencies',
        parents=[source_parent]
    )
    depends_parser.add_argument('package', help='Package id, reference or .nupkg file')
    depends_parser.add_argument('--version', dest='pkg_version', metavar='VERSION',
                                help='Package version (default: latest)')

    # =========================================================================
    # download / dl
    # =========================================================================
    download_parser = subparsers.add_parser(
        'download', aliases=['dl'], help='Download package archives',
        parents=[source_parent]
    )
    download_parser.add_argument('packages', nargs='+', help='Package ids or references')
    download_parser.add_argument('--version', dest='pkg_version', metavar='VERSION',
                                 help='Version to download (default: latest)')
    download_parser.add_argument('--output', '-o', default='.', metavar='DIR',
                                 help='Target directory (default: current directory)')

    # =========================================================================
    # source / src
    # =========================================================================
    source_parser = subparsers.add_parser(
        'source', aliases=['src'], help='Manage package sources'
    )
    source_parser.register('action', 'parsers', AliasedSubParsersAction)
    source_sub = source_parser.add_subparsers(dest='source_command', metavar='<action>')

    source_list = source_sub.add_parser('list', aliases=['l', 'ls'], help='List sources')
    source_list.add_argument('--json', action='store_true', help='JSON output for scripting')

    source_add = source_sub.add_parser('add', aliases=['a'], help='Register a source')
    source_add.add_argument('name', help='Source name')
    source_add.add_argument('location', help='Feed URL (v3 index.json) or directory')
    source_add.add_argument('--trusted', action='store_true', help='Mark the source trusted')
    source_add.add_argument('--update', action='store_true',
                            help='Replace an existing source with the same name')
    source_add.add_argument('--skip-validate', action='store_true',
                            help='Do not check that the location is reachable')

    source_remove = source_sub.add_parser('remove', aliases=['r', 'rm'],
                                          help='Unregister a source')
    source_remove.add_argument('name', help='Source name or location')

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(name)s - %(levelname)s - %(message)s',
            stream=sys.stderr
        )

    from . import colors, display
    colors.init(nocolor=args.nocolor)
    display.init(json_mode=getattr(args, 'json', False))

    if not args.command:
        parser.print_help()
        return 1

    config_path = Path(args.config).expanduser() if args.config else default_config_path()
    config = load_config(config_path, destination=default_destination())
    if args.destination:
        config.destination = Path(args.destination).expanduser()
    if getattr(args, 'exclude_version', False):
        config.installer.exclude_version = True

    token = CancellationToken()
    ops = PackageOperations(
        config,
        reporter=display.ProgressDisplay(quiet=display.json_mode()),
        token=token,
        hooks=ScriptHooks() if getattr(args, 'scripts', False) else None,
    )

    try:
        if args.command in ('search', 's'):
            return cmd_search(args, ops)

        elif args.command in ('find', 'f'):
            return cmd_find(args, ops)

        elif args.command in ('install', 'i'):
            return cmd_install(args, ops)

        elif args.command in ('uninstall', 'erase', 'e'):
            return cmd_uninstall(args, ops)

        elif args.command in ('list', 'l'):
            return cmd_list(args, ops)

        elif args.command in ('depends', 'd'):
            return cmd_depends(args, ops)

        elif args.command in ('download', 'dl'):
            return cmd_download(args, ops)

        elif args.command in ('source', 'src'):
            if args.source_command in ('list', 'l', 'ls', None):
                return cmd_source_list(args, ops)
            elif args.source_command in ('add', 'a'):
                return cmd_source_add(args, ops)
            elif args.source_command in ('remove', 'r', 'rm'):
                return cmd_source_remove(args, ops)

        parser.print_help()
        return 1

    except KeyboardInterrupt:
        token.cancel()
        print("\nInterrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
