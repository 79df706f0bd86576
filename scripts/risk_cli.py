"""Helper entrypoint for running the risk CLI via `python scripts/risk_cli.py`."""

from cli.risk import app

if __name__ == "__main__":
    app(prog_name="aegis-risk")
