import click
from .commands import *


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--path", "-p", default=".", help="Path to the work directory.")
@click.pass_context
def cli(ctx, path):
    """ffdroid: FFmpeg + dav1d cross-builds for Android."""
    ctx.obj = {"path": path}

cli.add_command(build)
cli.add_command(clean)
cli.add_command(config)
cli.add_command(doctor)
cli.add_command(log)
cli.add_command(version)

if __name__ == '__main__':
    cli()
