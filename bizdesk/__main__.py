"""Entry point for running bizdesk as a module: python -m bizdesk"""

from bizdesk.cli.commands import app

if __name__ == "__main__":
    app()
