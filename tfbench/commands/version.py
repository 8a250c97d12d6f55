"""
tf-bench version - Output the build version.
"""

import click

from .. import __version__


@click.command("version")
def version() -> None:
    """Output tf-bench build version."""
    click.echo(__version__)
