"""
run_server.py — Levantar servidor.

    python run_server.py
    python run_server.py --port 3000 --reload
"""

from recibos.cli.run_server import main


if __name__ == "__main__":
    raise SystemExit(main())
