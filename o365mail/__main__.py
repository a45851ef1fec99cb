"""Entry point for running o365mail as a module: python -m o365mail"""

from o365mail.cli.commands import app

if __name__ == "__main__":
    app()
