"""Package source management commands: list, add, remove."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...core.operations import PackageOperations


def cmd_source_list(args, ops: 'PackageOperations') -> int:
    """Handle source list command - show registered sources."""
    import json
    from .. import colors, display

    result = ops.list_sources()
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1

    sources = result.value
    if display.json_mode():
        print(json.dumps([
            {'name': s.name, 'location': s.location, 'trusted': s.trusted,
             'validated': s.validated}
            for s in sources
        ], indent=2))
        return 0

    if not sources:
        print("No package source registered")
        return 0

    width = max(len(s.name) for s in sources)
    for source in sources:
        flags = colors.success('trusted') if source.trusted else colors.dim('untrusted')
        print(f"{colors.bold(source.name.ljust(width))}  {source.location}  {flags}")
    return 0


def cmd_source_add(args, ops: 'PackageOperations') -> int:
    """Handle source add command - register a package source."""
    from .. import colors, display

    result = ops.add_source(args.name, args.location, trusted=args.trusted,
                            update=args.update, skip_validate=args.skip_validate)
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1

    verb = 'Updated' if args.update else 'Added'
    print(colors.success(f"{verb} source {result.value}"))
    return 0


def cmd_source_remove(args, ops: 'PackageOperations') -> int:
    """Handle source remove command - unregister a package source."""
    from .. import colors, display

    result = ops.remove_source(args.name)
    display.print_diagnostics(result, args.verbose)
    if not result.success:
        return 1

    print(colors.success(f"Removed source {result.value}"))
    return 0
