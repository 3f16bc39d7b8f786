"""CLI entrypoint: Typer app definition and command registration"""

import typer

from litpress.cli.commands import blocks_cmd, build_cmd, clean_cmd


app = typer.Typer(name="litpress", no_args_is_help=True, help="Literate markdown static site builder")

app.command(name="build")(build_cmd)
app.command(name="clean")(clean_cmd)
app.command(name="blocks")(blocks_cmd)
