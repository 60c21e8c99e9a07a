"""CLI entry points for judgelink.

Provides command-line tools for:
- Case-judge linking runs
- Judge case-count maintenance
- Integrity validation
"""

import click

from .. import __version__
from .link import cli as link_cli


@click.group()
@click.version_option(version=__version__, prog_name="judgelink")
def main():
    """judgelink - Case-to-Judge Entity Resolution.

    Command-line tools for linking case records to judges and
    keeping judge case counts consistent.
    """
    pass


main.add_command(link_cli, name="link")


if __name__ == "__main__":
    main()
