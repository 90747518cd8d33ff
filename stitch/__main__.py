"""Allow ``python -m stitch``."""

from stitch.cli.typer_commands import run

if __name__ == "__main__":
    run()
