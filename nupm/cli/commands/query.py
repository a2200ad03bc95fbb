"""Query commands: search, find, list, depends."""

from typing import TYPE_CHECKING

from ...core.operations import QueryOptions

if TYPE_CHECKING:
    from ...core.operations import PackageOperations


def query_options(args) -> QueryOptions:
    """Build QueryOptions from the shared source/filter arguments."""
    return QueryOptions(
        sources=list(getattr(args, 'source', None) or []),
        all_versions=getattr(args, 'all_versions', False),
        allow_prerelease=getattr(args, 'prerelease', False),
        contains=getattr(args, 'contains', None) or '',
        tags=list(getattr(args, 'tag', None) or []),
        skip_validate=getattr(args, 'skip_validate', False),
        skip_dependencies=getattr(args, 'skip_dependencies', False),
        continue_on_failure=getattr(args, 'continue_on_failure', False),
    )


def cmd_search(args, ops: 'PackageOperations') -> int:
    """Handle search command - free text search across sources."""
    from .. import display

    result = ops.search(args.query or '', args.required_version, args.min_version,
                        args.max_version, options=query_options(args))
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1

    packages = sorted(result.value, key=lambda p: (p.id.lower(), p.semver))
    if not packages and not display.json_mode():
        print(f"No package matching '{args.query or ''}'")
        return 1

    display.print_packages(packages)
    return 0


def cmd_find(args, ops: 'PackageOperations') -> int:
    """Handle find command - exact id lookup, falling back to search."""
    from .. import display

    result = ops.find(args.package, args.required_version, args.min_version,
                      args.max_version, options=query_options(args))
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1
    if not result.value:
        if not display.json_mode():
            print(f"Package '{args.package}' not found")
        return 1

    display.print_packages(sorted(result.value, key=lambda p: p.semver, reverse=True))
    return 0


def cmd_list(args, ops: 'PackageOperations') -> int:
    """Handle list command - show installed packages."""
    from .. import display

    result = ops.list_installed(args.name)
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1

    packages = sorted(result.value, key=lambda p: (p.id.lower(), p.semver))
    display.print_packages(packages, show_source=False)
    if not display.json_mode():
        print(display.summary_line(len(packages), 'installed package'))
    return 0


def cmd_depends(args, ops: 'PackageOperations') -> int:
    """Handle depends command - show candidates for each dependency."""
    from .. import colors, display

    result = ops.dependencies(args.package, args.pkg_version, options=query_options(args))
    display.print_diagnostics(result, args.verbose)
    if result.value is None:
        return 1

    if not result.value and not display.json_mode():
        print(f"{args.package}: no dependencies")
        return 0 if result.success else 1

    display.print_packages(result.value, show_summary=False)
    if not result.success and not display.json_mode():
        print(colors.warning("Some dependencies could not be resolved"))
    return 0 if result.success else 1
