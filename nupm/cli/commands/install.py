"""Install, uninstall and download commands."""

from typing import TYPE_CHECKING

from .query import query_options

if TYPE_CHECKING:
    from ...core.operations import PackageOperations


def cmd_install(args, ops: 'PackageOperations') -> int:
    """Handle install command - install packages with their dependencies."""
    from .. import colors, display

    options = query_options(args)
    failures = 0

    for package in args.packages:
        result = ops.install(package, args.pkg_version, options=options)
        display.print_diagnostics(result, args.verbose)
        display.print_install_report(result.value, args.verbose)

        if result.success:
            if not display.json_mode():
                report = result.value
                count = len(report.installed) if report is not None else 0
                print(colors.success(f"{package}: ") + display.summary_line(count, 'package')
                      + " installed")
        else:
            failures += 1
            if not args.continue_on_failure:
                break

    return 1 if failures else 0


def cmd_uninstall(args, ops: 'PackageOperations') -> int:
    """Handle uninstall command - remove installed packages."""
    from .. import colors, display

    failures = 0
    for package in args.packages:
        result = ops.uninstall(package, args.pkg_version)
        display.print_diagnostics(result, args.verbose)
        if not result.success:
            failures += 1
            continue
        if not result.value:
            print(colors.dim(f"{package} is not installed"))
        for report in result.value or []:
            print(f"{colors.success('removed')} {colors.package(report.package)}")

    return 1 if failures else 0


def cmd_download(args, ops: 'PackageOperations') -> int:
    """Handle download command - save package archives without installing."""
    from .. import colors, display

    failures = 0
    for package in args.packages:
        result = ops.download(package, args.output, args.pkg_version,
                              options=query_options(args))
        display.print_diagnostics(result, args.verbose)
        if result.success:
            print(f"{colors.success('saved')} {result.value}")
        else:
            failures += 1

    return 1 if failures else 0
